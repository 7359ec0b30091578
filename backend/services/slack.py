import logging

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

import settings
from utils.logs import ratelimited_log

logger = logging.getLogger("questlog.slack")


class SlackBot:
    """Announces challenge milestones on the community channel"""

    def __init__(self, channel: str | None = None, token: str | None = None):
        token = token if token is not None else settings.SLACK_TOKEN
        self.channel = channel or settings.SLACK_CHANNEL
        self.client = (
            WebClient(token=token) if token and not settings.TESTING_MODE else None
        )

    def announce(self, text: str, link: str | None = None) -> bool:
        message = f"{text} <{link}|Open the challenge>" if link else text
        if not self.client:
            logger.info(message)
            return False

        try:
            # a not-ok response is raised as SlackApiError by the client
            self.client.chat_postMessage(
                channel=self.channel, text=message, unfurl_links=False
            )
        except SlackApiError as e:
            ratelimited_log(logger.warning, f"Slack refused: {e.response['error']}")
            return False
        except OSError as e:
            ratelimited_log(logger.warning, f"Slack unreachable: {e}")
            return False
        return True


slack = SlackBot()
