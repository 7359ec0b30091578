import logging

from sqlalchemy import or_
from sqlmodel import Session, delete, select, update

from models.activity import ActivityType
from models.auth import User
from models.friendship import Friendship, FriendshipStatus
from models.types import utcnow
from services.activity import record_activity
from services.cache import cache
from services.errors import Conflict, Forbidden, NotFound, ValidationError, committing

logger = logging.getLogger("questlog.friendship")


def _find_pair(session: Session, a_id: str, b_id: str) -> Friendship | None:
    low, high = Friendship.canonical_pair(a_id, b_id)
    return session.exec(
        select(Friendship).where(
            Friendship.user_low_id == low,
            Friendship.user_high_id == high,
        )
    ).first()


def _guarded_update(
    session: Session, friendship_id: str, expected: FriendshipStatus, **values
) -> bool:
    """UPDATE ... WHERE id = :id AND status = :expected, True when a row changed"""
    result = session.exec(
        update(Friendship)
        .where(Friendship.id == friendship_id, Friendship.status == expected)
        .values(**values)
    )
    return result.rowcount == 1


def _guarded_delete(
    session: Session, friendship_id: str, expected: FriendshipStatus, *conditions
) -> bool:
    result = session.exec(
        delete(Friendship).where(
            Friendship.id == friendship_id, Friendship.status == expected, *conditions
        )
    )
    return result.rowcount == 1


def send_request(session: Session, *, requester: User, recipient: User) -> Friendship:
    if requester.id == recipient.id:
        raise ValidationError("Cannot send a friend request to yourself.")

    existing = _find_pair(session, requester.id, recipient.id)
    now = utcnow()
    if existing:
        match existing.status:
            case FriendshipStatus.accepted:
                raise Conflict("Users are already friends.")
            case FriendshipStatus.pending:
                if existing.requester_id == requester.id:
                    raise Conflict("A request is already pending.")
                raise Conflict(
                    "This user already sent you a request, accept it instead."
                )
            case _:
                # A declined request can be sent again, re-opening the row
                logger.debug(f"Re-opening declined request {existing.id}")
                with committing(session):
                    reopened = _guarded_update(
                        session,
                        existing.id,
                        FriendshipStatus.declined,
                        status=FriendshipStatus.pending,
                        requester_id=requester.id,
                        recipient_id=recipient.id,
                        created_at=now,
                        updated_at=now,
                    )
                    if not reopened:
                        raise Conflict("The request was changed meanwhile, retry.")
                session.refresh(existing)
                cache.invalidate_user_relationships(requester.id, recipient.id)
                return existing

    low, high = Friendship.canonical_pair(requester.id, recipient.id)
    friendship = Friendship(
        user_low_id=low,
        user_high_id=high,
        requester_id=requester.id,
        recipient_id=recipient.id,
        status=FriendshipStatus.pending,
        created_at=now,
        updated_at=now,
    )
    # the pair constraint catches a concurrent send from the other side
    with committing(session, conflict=Conflict("A request is already pending.")):
        session.add(friendship)
    session.refresh(friendship)
    cache.invalidate_user_relationships(requester.id, recipient.id)
    logger.info(f"{requester} sent a friend request to {recipient}")
    return friendship


def cancel_request(session: Session, *, requester: User, recipient: User) -> None:
    friendship = _find_pair(session, requester.id, recipient.id)
    if not friendship or friendship.status != FriendshipStatus.pending:
        raise NotFound("No pending request to cancel.")
    if friendship.requester_id != requester.id:
        raise Forbidden("Not your request to cancel.")

    with committing(session):
        deleted = _guarded_delete(
            session,
            friendship.id,
            FriendshipStatus.pending,
            Friendship.requester_id == requester.id,
        )
        if not deleted:
            raise NotFound("No pending request to cancel.")
    cache.invalidate_user_relationships(requester.id, recipient.id)


def _respond(
    session: Session,
    *,
    recipient: User,
    requester: User,
    new_status: FriendshipStatus,
    verb: str,
) -> Friendship:
    friendship = _find_pair(session, recipient.id, requester.id)
    if not friendship or friendship.status != FriendshipStatus.pending:
        raise NotFound(f"No pending request to {verb}.")
    if friendship.recipient_id != recipient.id:
        raise Forbidden(f"Only the recipient can {verb} this request.")

    with committing(session):
        changed = _guarded_update(
            session,
            friendship.id,
            FriendshipStatus.pending,
            status=new_status,
            updated_at=utcnow(),
        )
        if not changed:
            raise NotFound(f"No pending request to {verb}.")
    session.refresh(friendship)
    cache.invalidate_user_relationships(recipient.id, requester.id)
    return friendship


def accept_request(session: Session, *, recipient: User, requester: User) -> Friendship:
    friendship = _respond(
        session,
        recipient=recipient,
        requester=requester,
        new_status=FriendshipStatus.accepted,
        verb="accept",
    )
    for user, friend in ((recipient, requester), (requester, recipient)):
        record_activity(
            session,
            user_id=user.id,
            activity_type=ActivityType.friend_added,
            details={"friend_id": friend.id, "friend_username": friend.username},
        )
    return friendship


def decline_request(session: Session, *, recipient: User, requester: User) -> Friendship:
    return _respond(
        session,
        recipient=recipient,
        requester=requester,
        new_status=FriendshipStatus.declined,
        verb="decline",
    )


def remove_friend(session: Session, *, user: User, other: User) -> None:
    friendship = _find_pair(session, user.id, other.id)
    if not friendship or friendship.status != FriendshipStatus.accepted:
        raise NotFound("No existing friendship to remove.")
    with committing(session):
        if not _guarded_delete(session, friendship.id, FriendshipStatus.accepted):
            raise NotFound("No existing friendship to remove.")
    cache.invalidate_user_relationships(user.id, other.id)


def relationship_status(session: Session, *, viewer: User, target: User) -> str:
    """none, self, friends, pending_outgoing or pending_incoming"""
    if viewer.id == target.id:
        return "self"

    def load() -> str:
        friendship = _find_pair(session, viewer.id, target.id)
        if not friendship:
            return "none"
        if friendship.status == FriendshipStatus.accepted:
            return "friends"
        if friendship.status == FriendshipStatus.pending:
            if friendship.requester_id == viewer.id:
                return "pending_outgoing"
            return "pending_incoming"
        # a declined request is shown as no relation
        return "none"

    return cache.get_or_load(cache.statuses, (viewer.id, target.id), load)


def _requests(session: Session, condition) -> list[tuple[Friendship, User]]:
    rows = session.exec(
        select(Friendship, User)
        .join(User, User.id == Friendship.requester_id)
        .where(Friendship.status == FriendshipStatus.pending, condition)
        .order_by(Friendship.created_at.desc())
    ).all()
    return list(rows)


def pending_requests(session: Session, *, user: User) -> list[dict]:
    """Incoming requests, newest first"""
    return [
        {"user": requester.public(), "requested_at": fr.created_at.isoformat()}
        for fr, requester in _requests(session, Friendship.recipient_id == user.id)
    ]


def outgoing_requests(session: Session, *, user: User) -> list[dict]:
    rows = _requests(session, Friendship.requester_id == user.id)
    recipients = {
        u.id: u
        for u in session.exec(
            select(User).where(User.id.in_([fr.recipient_id for fr, _ in rows]))
        ).all()
    }
    return [
        {
            "user": recipients[fr.recipient_id].public(),
            "requested_at": fr.created_at.isoformat(),
        }
        for fr, _ in rows
        if fr.recipient_id in recipients
    ]


def list_friends(session: Session, *, user: User) -> list[dict]:
    def load() -> list[dict]:
        friendships = session.exec(
            select(Friendship).where(
                Friendship.status == FriendshipStatus.accepted,
                or_(
                    Friendship.requester_id == user.id,
                    Friendship.recipient_id == user.id,
                ),
            )
        ).all()
        since = {fr.other_id(user.id): fr.updated_at for fr in friendships}
        friends = session.exec(select(User).where(User.id.in_(list(since)))).all()
        return sorted(
            (
                {**friend.public(), "friends_since": since[friend.id].isoformat()}
                for friend in friends
            ),
            key=lambda f: (f["username"] or "").lower(),
        )

    return cache.get_or_load(cache.friends, user.id, load)
