"""Activity feed sink.

Events are written after the primary transition has committed, in their own
commit. A failure here is logged and dropped: the state machines never depend
on an activity row existing.
"""

import logging
from typing import Any

from sqlalchemy import or_
from sqlmodel import Session, select

import settings
from models.activity import ActivityEvent, ActivityType
from models.auth import User
from models.friendship import Friendship, FriendshipStatus
from services.slack import slack
from utils.logs import ratelimited_log

logger = logging.getLogger("questlog.activity")

ANNOUNCED = {
    ActivityType.challenge_created: "🎮 {user} created the challenge “{title}”",
    ActivityType.challenge_completed: "🏆 {user} completed the challenge “{title}”",
}


def record_activity(
    session: Session,
    *,
    user_id: str,
    activity_type: ActivityType,
    details: dict[str, Any] | None = None,
) -> ActivityEvent | None:
    try:
        event = ActivityEvent(
            user_id=user_id, activity_type=activity_type, details=details or {}
        )
        session.add(event)
        session.commit()
    except Exception as e:
        session.rollback()
        ratelimited_log(logger.warning, f"Cannot record {activity_type.value}: {e}")
        return None

    template = ANNOUNCED.get(activity_type)
    if template:
        details = details or {}
        user = session.get(User, user_id)
        link = None
        if details.get("challenge_id"):
            link = f"{settings.BASE_URL}/challenges/{details['challenge_id']}"
        slack.announce(
            template.format(user=user or user_id, title=details.get("title", "")),
            link,
        )
    return event


def friends_feed(session: Session, *, user: User, limit: int = 20) -> list[dict]:
    """Newest events of the user and their accepted friends"""
    friendships = session.exec(
        select(Friendship).where(
            Friendship.status == FriendshipStatus.accepted,
            or_(Friendship.requester_id == user.id, Friendship.recipient_id == user.id),
        )
    ).all()
    user_ids = {user.id} | {fr.other_id(user.id) for fr in friendships}

    events = session.exec(
        select(ActivityEvent)
        .where(ActivityEvent.user_id.in_(user_ids))
        .order_by(ActivityEvent.created_at.desc())
        .limit(limit)
    ).all()
    users_map = {
        u.id: u for u in session.exec(select(User).where(User.id.in_(user_ids))).all()
    }
    results = []
    for event in events:
        item = event.to_dict()
        author = users_map.get(event.user_id)
        item["user"] = author.public() if author else {"id": event.user_id}
        results.append(item)
    return results
