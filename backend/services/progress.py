"""Participation, progress and rewards.

Every progress write goes through set_progress, a compare-and-set on the
previous value: two writers racing on the same participant cannot both win.
"""

import logging
import math
from dataclasses import dataclass

from sqlalchemy import or_
from sqlmodel import Session, delete, select, update

from models.activity import ActivityType
from models.auth import User
from models.challenge import (
    MAX_PROGRESS,
    Challenge,
    ChallengeGoal,
    ChallengeParticipant,
    ChallengeReward,
    ChallengeStatus,
    ChallengeTeam,
    ChallengeType,
    ClaimedReward,
    GoalType,
    RewardType,
    UserBadge,
)
from models.types import utcnow
from services.activity import record_activity
from services.cache import cache
from services.challenges import effective_status, get_challenge
from services.errors import (
    AppError,
    Conflict,
    FieldError,
    Forbidden,
    NotFound,
    ValidationError,
    committing,
)
from services.validation import validate_team_name
from utils.logs import ratelimited_log

logger = logging.getLogger("questlog.progress")

DEFAULT_INCREMENT = 10


@dataclass(frozen=True)
class ProgressUpdate:
    challenge_id: str
    user_id: str
    previous: int
    current: int

    @property
    def completed_now(self) -> bool:
        return self.previous < MAX_PROGRESS <= self.current

    def to_dict(self) -> dict:
        return {
            "challenge_id": self.challenge_id,
            "previous": self.previous,
            "progress": self.current,
            "completed": self.current >= MAX_PROGRESS,
            "completed_now": self.completed_now,
        }


def _checked_progress(value) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value != int(value)
        or not 0 <= value <= MAX_PROGRESS
    ):
        raise ValidationError(
            "Progress must be between 0 and 100",
            [FieldError("progress", "Progress must be a whole number from 0 to 100")],
        )
    return int(value)


def _participant(
    session: Session, challenge_id: str, user_id: str
) -> ChallengeParticipant | None:
    return session.get(ChallengeParticipant, (challenge_id, user_id))


def _require_participant(
    session: Session, challenge_id: str, user_id: str
) -> ChallengeParticipant:
    participant = _participant(session, challenge_id, user_id)
    if not participant:
        raise NotFound("Not a participant of this challenge")
    return participant


def _adjust_count(session: Session, challenge_id: str, delta: int) -> None:
    """Move the denormalized participant counter, never below zero"""
    query = update(Challenge).where(Challenge.id == challenge_id)
    if delta < 0:
        query = query.where(Challenge.participant_count >= -delta)
    try:
        with committing(session):
            session.exec(
                query.values(participant_count=Challenge.participant_count + delta)
            )
    except AppError as e:
        ratelimited_log(
            logger.warning, f"Cannot update the participants of {challenge_id}: {e}"
        )


def _reserve_seat(session: Session, challenge: Challenge) -> None:
    """Take one seat with a single conditional write on the counter"""
    query = update(Challenge).where(Challenge.id == challenge.id)
    if challenge.type == ChallengeType.competitive:
        query = query.where(
            or_(
                Challenge.max_participants.is_(None),
                Challenge.participant_count < Challenge.max_participants,
            )
        )
    with committing(session):
        result = session.exec(
            query.values(participant_count=Challenge.participant_count + 1)
        )
        if result.rowcount != 1:
            raise Forbidden("The challenge has reached its maximum participants")


def join_challenge(
    session: Session, *, user: User, challenge_id: str
) -> ChallengeParticipant:
    challenge = get_challenge(session, challenge_id)
    if effective_status(challenge) == ChallengeStatus.completed:
        raise Forbidden("The challenge is already completed")
    if _participant(session, challenge_id, user.id):
        raise Conflict("Already participating in this challenge")
    if challenge.is_full():
        raise Forbidden("The challenge has reached its maximum participants")

    _reserve_seat(session, challenge)
    participant = ChallengeParticipant(challenge_id=challenge_id, user_id=user.id)
    try:
        with committing(
            session, conflict=Conflict("Already participating in this challenge")
        ):
            session.add(participant)
    except AppError:
        _adjust_count(session, challenge_id, -1)
        raise
    session.refresh(participant)
    cache.invalidate_challenge(challenge_id)

    record_activity(
        session,
        user_id=user.id,
        activity_type=ActivityType.challenge_joined,
        details={"challenge_id": challenge_id, "title": challenge.title},
    )
    return participant


def leave_challenge(session: Session, *, user: User, challenge_id: str) -> None:
    get_challenge(session, challenge_id)
    with committing(session):
        result = session.exec(
            delete(ChallengeParticipant).where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.user_id == user.id,
            )
        )
        if result.rowcount != 1:
            raise NotFound("Not a participant of this challenge")
    _adjust_count(session, challenge_id, -1)
    cache.invalidate_challenge(challenge_id)
    logger.debug(f"{user} left {challenge_id}")


def set_progress(
    session: Session, participant: ChallengeParticipant, value
) -> ProgressUpdate:
    """Set the participant progress, only if nobody changed it meanwhile"""
    value = _checked_progress(value)
    previous = participant.progress
    with committing(session):
        result = session.exec(
            update(ChallengeParticipant)
            .where(
                ChallengeParticipant.challenge_id == participant.challenge_id,
                ChallengeParticipant.user_id == participant.user_id,
                ChallengeParticipant.progress == previous,
            )
            .values(
                progress=value,
                completed=value >= MAX_PROGRESS,
                updated_at=utcnow(),
            )
        )
        if result.rowcount != 1:
            raise Conflict("The progress was changed meanwhile, retry")
    session.refresh(participant)
    cache.invalidate_challenge(participant.challenge_id)
    return ProgressUpdate(
        challenge_id=participant.challenge_id,
        user_id=participant.user_id,
        previous=previous,
        current=value,
    )


def _after_progress(
    session: Session, user: User, challenge: Challenge, progress: ProgressUpdate
) -> None:
    if not progress.completed_now:
        return
    logger.info(f"{user} completed {challenge.title!r}")
    record_activity(
        session,
        user_id=user.id,
        activity_type=ActivityType.challenge_completed,
        details={"challenge_id": challenge.id, "title": challenge.title},
    )


def update_progress(
    session: Session, *, user: User, challenge_id: str, progress
) -> ProgressUpdate:
    value = _checked_progress(progress)
    challenge = get_challenge(session, challenge_id)
    participant = _require_participant(session, challenge_id, user.id)
    result = set_progress(session, participant, value)
    _after_progress(session, user, challenge, result)
    return result


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def progress_increment(goal: ChallengeGoal) -> int:
    """Progress points gained by one step towards the goal"""
    if goal.type == GoalType.complete_games:
        step = _round_half_up(100 / goal.target)
    elif goal.type == GoalType.score_points:
        # a step is 10 points
        step = _round_half_up(10 / goal.target * 100)
    else:
        return DEFAULT_INCREMENT
    return max(step, 1)


def increment_progress(
    session: Session, *, user: User, challenge_id: str, goal_id: str, steps: int = 1
) -> ProgressUpdate:
    challenge = get_challenge(session, challenge_id)
    goal = session.get(ChallengeGoal, goal_id)
    if not goal or goal.challenge_id != challenge_id:
        raise NotFound("Goal not found for this challenge")
    participant = _require_participant(session, challenge_id, user.id)
    value = participant.progress + steps * progress_increment(goal)
    result = set_progress(session, participant, min(MAX_PROGRESS, max(0, value)))
    _after_progress(session, user, challenge, result)
    return result


def claim_reward(
    session: Session, *, user: User, challenge_id: str, reward_id: str
) -> ClaimedReward:
    get_challenge(session, challenge_id)
    reward = session.get(ChallengeReward, reward_id)
    if not reward or reward.challenge_id != challenge_id:
        raise NotFound("Reward not found for this challenge")
    participant = _require_participant(session, challenge_id, user.id)
    if participant.progress < MAX_PROGRESS:
        raise Forbidden("Complete the challenge before claiming its rewards")
    if session.get(ClaimedReward, (user.id, reward_id)):
        raise Conflict("Reward already claimed")

    claim = ClaimedReward(user_id=user.id, reward_id=reward_id, challenge_id=challenge_id)
    rows = [claim]
    if (
        reward.type == RewardType.badge
        and reward.badge_id
        and not session.get(UserBadge, (user.id, reward.badge_id, challenge_id))
    ):
        rows.append(
            UserBadge(user_id=user.id, badge_id=reward.badge_id, challenge_id=challenge_id)
        )
    # the primary key of claimed_rewards rejects a concurrent second claim
    with committing(session, conflict=Conflict("Reward already claimed")):
        session.add_all(rows)
    session.refresh(claim)
    cache.invalidate_challenge(challenge_id)

    record_activity(
        session,
        user_id=user.id,
        activity_type=ActivityType.reward_claimed,
        details={
            "challenge_id": challenge_id,
            "reward_id": reward_id,
            "reward_name": reward.name,
        },
    )
    return claim


def _team_member(session: Session, challenge_id: str, user: User) -> ChallengeParticipant:
    get_challenge(session, challenge_id)
    participant = _participant(session, challenge_id, user.id)
    if not participant:
        raise Forbidden("Only participants can manage teams")
    return participant


def _set_team(
    session: Session, participant: ChallengeParticipant, team_id: str | None
) -> ChallengeParticipant:
    participant.team_id = team_id
    participant.updated_at = utcnow()
    with committing(session):
        session.add(participant)
    session.refresh(participant)
    cache.invalidate_challenge(participant.challenge_id)
    return participant


def create_team(
    session: Session, *, user: User, challenge_id: str, name: str
) -> ChallengeTeam:
    """Create a team and move its creator into it"""
    name = validate_team_name(name)
    participant = _team_member(session, challenge_id, user)
    team = ChallengeTeam(challenge_id=challenge_id, name=name)
    with committing(
        session, conflict=Conflict("A team with this name already exists")
    ):
        session.add(team)
    session.refresh(team)
    _set_team(session, participant, team.id)
    return team


def join_team(
    session: Session, *, user: User, challenge_id: str, team_id: str
) -> ChallengeParticipant:
    participant = _team_member(session, challenge_id, user)
    team = session.get(ChallengeTeam, team_id)
    if not team or team.challenge_id != challenge_id:
        raise NotFound("Team not found for this challenge")
    if participant.team_id == team_id:
        raise Conflict("Already a member of this team")
    return _set_team(session, participant, team_id)


def leave_team(
    session: Session, *, user: User, challenge_id: str
) -> ChallengeParticipant:
    participant = _team_member(session, challenge_id, user)
    if participant.team_id is None:
        raise NotFound("Not a member of any team")
    return _set_team(session, participant, None)


def team_progress(session: Session, challenge_id: str) -> list[dict]:
    """Teams of the challenge with their mean member progress"""
    get_challenge(session, challenge_id)
    teams = session.exec(
        select(ChallengeTeam)
        .where(ChallengeTeam.challenge_id == challenge_id)
        .order_by(ChallengeTeam.created_at)
    ).all()
    members: dict[str, list[int]] = {team.id: [] for team in teams}
    for participant in session.exec(
        select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.team_id.is_not(None),
        )
    ):
        members.setdefault(participant.team_id, []).append(participant.progress)

    results = []
    for team in teams:
        progress = members[team.id]
        results.append(
            {
                "id": team.id,
                "name": team.name,
                "members": len(progress),
                "progress": round(sum(progress) / len(progress), 2) if progress else 0,
            }
        )
    return sorted(results, key=lambda t: t["progress"], reverse=True)
