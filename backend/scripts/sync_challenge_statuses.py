"""Persist the time-computed status of the challenges, run it from cron"""

import argparse
import datetime
import logging

from models.common import get_db
from services.challenges import sync_challenge_statuses

from utils import setup_logs, time_it

logger = logging.getLogger("questlog.sync")


@time_it
def sync_all(now: datetime.datetime | None = None) -> int:
    with get_db() as session:
        changed = sync_challenge_statuses(session, now=now)
    logger.info(f"Updated the status of {changed} challenges")
    return changed


if __name__ == "__main__":  # pragma no cover
    setup_logs()

    parser = argparse.ArgumentParser(
        description="Move challenges to their current status"
    )
    parser.add_argument(
        "--now",
        type=datetime.datetime.fromisoformat,
        default=None,
        help="Reference time in ISO format (default: the current time)",
    )
    args = parser.parse_args()

    sync_all(args.now)
