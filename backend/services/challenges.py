import datetime
import logging
from typing import Any, Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, delete, select

from models.activity import ActivityType
from models.auth import User
from models.challenge import (
    Challenge,
    ChallengeGoal,
    ChallengeParticipant,
    ChallengeReward,
    ChallengeRule,
    ChallengeStatus,
    ChallengeTeam,
    ChallengeType,
    ClaimedReward,
    UserBadge,
)
from models.types import as_utc, utcnow
from services.activity import record_activity
from services.cache import cache
from services.errors import (
    AppError,
    FieldError,
    Forbidden,
    NotFound,
    PersistenceError,
    ValidationError,
    committing,
)
from services.validation import ChallengeDefinition, validate_challenge_update

logger = logging.getLogger("questlog.challenges")

# children first, the challenge row last
AGGREGATE_TABLES = (
    ClaimedReward,
    UserBadge,
    ChallengeParticipant,
    ChallengeTeam,
    ChallengeGoal,
    ChallengeReward,
    ChallengeRule,
)


def status_between(
    start: datetime.datetime,
    end: datetime.datetime,
    now: datetime.datetime | None = None,
) -> ChallengeStatus:
    now = as_utc(now) if now else utcnow()
    if now < as_utc(start):
        return ChallengeStatus.upcoming
    if now < as_utc(end):
        return ChallengeStatus.active
    return ChallengeStatus.completed


def effective_status(
    challenge: Challenge, now: datetime.datetime | None = None
) -> ChallengeStatus:
    return status_between(challenge.start_date, challenge.end_date, now)


def get_challenge(session: Session, challenge_id: str) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if not challenge:
        raise NotFound("Challenge not found")
    return challenge


def _write_rows(session: Session, rows: list[SQLModel]) -> None:
    with committing(session):
        session.add_all(rows)


def _delete_aggregate(session: Session, challenge_id: str) -> None:
    for model in AGGREGATE_TABLES:
        session.exec(delete(model).where(model.challenge_id == challenge_id))
    session.exec(delete(Challenge).where(Challenge.id == challenge_id))


def _compensate(session: Session, challenge_id: str) -> None:
    try:
        _delete_aggregate(session, challenge_id)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Cannot remove the partial challenge {challenge_id}")


def create_challenge_aggregate(
    session: Session, *, creator: User, definition: ChallengeDefinition
) -> Challenge:
    """Write the challenge and its goals, rewards and rules.

    Each step is committed on its own: when one fails, the rows already
    written are removed and the failure surfaces as a PersistenceError.
    """
    challenge = Challenge(
        title=definition.title,
        description=definition.description,
        type=definition.type,
        start_date=definition.start_date,
        end_date=definition.end_date,
        min_participants=definition.min_participants,
        max_participants=definition.max_participants,
        creator_id=creator.id,
    )
    challenge.status = effective_status(challenge)
    challenge_id = challenge.id

    steps = [
        lambda: [challenge],
        lambda: [
            ChallengeGoal(
                challenge_id=challenge_id,
                type=goal.type,
                target=goal.target,
                description=goal.description,
            )
            for goal in definition.goals
        ],
        lambda: [
            ChallengeReward(
                challenge_id=challenge_id,
                type=reward.type,
                name=reward.name,
                description=reward.description,
                badge_id=reward.badge_id,
            )
            for reward in definition.rewards
        ],
        lambda: [
            ChallengeRule(challenge_id=challenge_id, rule=rule)
            for rule in definition.rules
        ],
    ]
    written = False
    try:
        for step in steps:
            _write_rows(session, step())
            written = True
    except AppError as e:
        logger.error(f"Creating challenge {definition.title!r} failed: {e}")
        if written:
            _compensate(session, challenge_id)
        raise PersistenceError("Could not create the challenge") from e

    session.refresh(challenge)
    logger.info(f"{creator} created the challenge {challenge.title!r}")
    record_activity(
        session,
        user_id=creator.id,
        activity_type=ActivityType.challenge_created,
        details={"challenge_id": challenge_id, "title": challenge.title},
    )
    return challenge


def _summary(challenge: Challenge, now: datetime.datetime | None = None) -> dict:
    return {
        "id": challenge.id,
        "title": challenge.title,
        "description": challenge.description,
        "type": challenge.type.value,
        "status": effective_status(challenge, now).value,
        "start_date": as_utc(challenge.start_date).isoformat(),
        "end_date": as_utc(challenge.end_date).isoformat(),
        "min_participants": challenge.min_participants,
        "max_participants": challenge.max_participants,
        "participant_count": challenge.participant_count,
        "creator_id": challenge.creator_id,
    }


def _children(session: Session, model, challenge_id: str) -> list:
    return list(session.exec(select(model).where(model.challenge_id == challenge_id)))


def challenge_details(
    session: Session,
    challenge_id: str,
    viewer: User | None = None,
    now: datetime.datetime | None = None,
) -> dict:
    """The whole aggregate, plus the viewer's own progress and claims.

    The status is derived from the cached dates on every call.
    """
    viewer_id = viewer.id if viewer else None

    def load() -> dict:
        challenge = get_challenge(session, challenge_id)
        participants = session.exec(
            select(ChallengeParticipant, User)
            .join(User, User.id == ChallengeParticipant.user_id)
            .where(ChallengeParticipant.challenge_id == challenge_id)
            .order_by(ChallengeParticipant.joined_at)
        ).all()
        details = _summary(challenge)
        details["goals"] = [
            {
                "id": goal.id,
                "type": goal.type.value,
                "target": goal.target,
                "description": goal.description,
            }
            for goal in _children(session, ChallengeGoal, challenge_id)
        ]
        details["rewards"] = [
            {
                "id": reward.id,
                "type": reward.type.value,
                "name": reward.name,
                "description": reward.description,
                "badge_id": reward.badge_id,
            }
            for reward in _children(session, ChallengeReward, challenge_id)
        ]
        details["rules"] = [
            rule.rule for rule in _children(session, ChallengeRule, challenge_id)
        ]
        details["teams"] = [
            {"id": team.id, "name": team.name}
            for team in _children(session, ChallengeTeam, challenge_id)
        ]
        details["participants"] = [
            {
                "user": user.public(),
                "progress": participant.progress,
                "completed": participant.completed,
                "team_id": participant.team_id,
                "joined_at": participant.joined_at.isoformat(),
            }
            for participant, user in participants
        ]

        mine = next((p for p, _ in participants if p.user_id == viewer_id), None)
        details["user_progress"] = mine.progress if mine else None
        details["user_team"] = mine.team_id if mine else None
        details["claimed_reward_ids"] = (
            list(
                session.exec(
                    select(ClaimedReward.reward_id).where(
                        ClaimedReward.challenge_id == challenge_id,
                        ClaimedReward.user_id == viewer_id,
                    )
                )
            )
            if viewer_id
            else []
        )
        return details

    details = cache.get_or_load(cache.challenges, (challenge_id, viewer_id), load)
    status = status_between(
        datetime.datetime.fromisoformat(details["start_date"]),
        datetime.datetime.fromisoformat(details["end_date"]),
        now,
    )
    return {**details, "status": status.value}


def list_challenges(
    session: Session,
    *,
    type: ChallengeType | None = None,
    status: ChallengeStatus | None = None,
    sort: Literal["date", "participants"] = "date",
    now: datetime.datetime | None = None,
) -> list[dict]:
    now = as_utc(now) if now else utcnow()
    query = select(Challenge)
    if type:
        query = query.where(Challenge.type == type)
    if sort == "participants":
        query = query.order_by(
            Challenge.participant_count.desc(), Challenge.start_date
        )
    else:
        query = query.order_by(Challenge.start_date, Challenge.created_at)

    results = []
    for challenge in session.exec(query):
        # the stored status can lag behind the clock, filter on the real one
        if status and effective_status(challenge, now) != status:
            continue
        results.append(_summary(challenge, now))
    return results


def user_challenges(session: Session, *, user: User) -> list[dict]:
    rows = session.exec(
        select(Challenge, ChallengeParticipant)
        .join(ChallengeParticipant, ChallengeParticipant.challenge_id == Challenge.id)
        .where(ChallengeParticipant.user_id == user.id)
        .order_by(Challenge.end_date)
    ).all()
    return [
        {
            **_summary(challenge),
            "progress": participant.progress,
            "completed": participant.completed,
        }
        for challenge, participant in rows
    ]


def _owned_challenge(session: Session, user: User, challenge_id: str) -> Challenge:
    challenge = get_challenge(session, challenge_id)
    if challenge.creator_id != user.id:
        raise Forbidden("Only the creator can change this challenge")
    return challenge


def update_challenge(
    session: Session,
    *,
    user: User,
    challenge_id: str,
    payload: dict[str, Any],
    now: datetime.datetime | None = None,
) -> Challenge:
    challenge = _owned_challenge(session, user, challenge_id)
    changes = validate_challenge_update(payload, now=now).unwrap()
    values = changes.model_dump(include=changes.model_fields_set)

    start = values.get("start_date", challenge.start_date)
    end = values.get("end_date", challenge.end_date)
    kind = values.get("type", challenge.type)
    max_participants = values.get("max_participants", challenge.max_participants)
    min_participants = values.get("min_participants") or challenge.min_participants

    errors = []
    if as_utc(end) <= as_utc(start):
        errors.append(FieldError("end_date", "End date must be after start date"))
    if kind == ChallengeType.competitive and max_participants is None:
        errors.append(
            FieldError(
                "max_participants",
                "Competitive challenges must have a maximum number of participants",
            )
        )
    if max_participants is not None and min_participants > max_participants:
        errors.append(
            FieldError(
                "min_participants",
                "Minimum participants cannot exceed the maximum participants",
            )
        )
    if errors:
        raise ValidationError("Invalid challenge data", errors)

    for key, value in values.items():
        if key == "min_participants" and value is None:
            continue
        setattr(challenge, key, value)
    challenge.status = effective_status(challenge, now)
    challenge.updated_at = utcnow()
    with committing(session):
        session.add(challenge)
    session.refresh(challenge)
    cache.invalidate_challenge(challenge_id)
    logger.debug(f"Challenge {challenge_id} updated: {sorted(values)}")
    return challenge


def delete_challenge(session: Session, *, user: User, challenge_id: str) -> None:
    _owned_challenge(session, user, challenge_id)
    with committing(session):
        _delete_aggregate(session, challenge_id)
    cache.invalidate_challenge(challenge_id)
    logger.info(f"{user} deleted the challenge {challenge_id}")


def sync_challenge_statuses(
    session: Session, now: datetime.datetime | None = None
) -> int:
    """Persist the time-computed status of every challenge not yet completed"""
    now = as_utc(now) if now else utcnow()
    changed = []
    challenges = session.exec(
        select(Challenge).where(Challenge.status != ChallengeStatus.completed)
    ).all()
    with committing(session):
        for challenge in challenges:
            status = effective_status(challenge, now)
            if status != challenge.status:
                logger.debug(
                    f"{challenge.id}: {challenge.status.value} -> {status.value}"
                )
                challenge.status = status
                session.add(challenge)
                changed.append(challenge.id)
    for challenge_id in changed:
        cache.invalidate_challenge(challenge_id)
    return len(changed)


def leaderboard(session: Session, challenge_id: str) -> list[dict]:
    get_challenge(session, challenge_id)
    rows = session.exec(
        select(ChallengeParticipant, User)
        .join(User, User.id == ChallengeParticipant.user_id)
        .where(ChallengeParticipant.challenge_id == challenge_id)
        .order_by(ChallengeParticipant.progress.desc(), ChallengeParticipant.joined_at)
    ).all()
    return [
        {
            "rank": rank,
            "user": user.public(),
            "progress": participant.progress,
            "completed": participant.completed,
            "team_id": participant.team_id,
        }
        for rank, (participant, user) in enumerate(rows, start=1)
    ]
