"""Challenges, their owned parts, and participation"""

import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Column, Index, UniqueConstraint, func
from sqlmodel import Field, SQLModel

from models.common import new_id
from models.types import UtcAwareDateTime, utcnow


class ChallengeType(str, Enum):
    competitive = "competitive"
    collaborative = "collaborative"


class ChallengeStatus(str, Enum):
    upcoming = "upcoming"
    active = "active"
    completed = "completed"


class GoalType(str, Enum):
    complete_games = "complete_games"
    achieve_trophies = "achieve_trophies"
    play_time = "play_time"
    review_games = "review_games"
    score_points = "score_points"
    reach_level = "reach_level"


class RewardType(str, Enum):
    badge = "badge"
    points = "points"
    title = "title"


MAX_PROGRESS = 100


class Challenge(SQLModel, table=True):
    __tablename__ = "challenges"
    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_challenge_dates"),
        CheckConstraint("participant_count >= 0", name="ck_challenge_count"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    description: str
    type: ChallengeType = Field(index=True)
    status: ChallengeStatus = Field(default=ChallengeStatus.upcoming, index=True)
    start_date: datetime.datetime = Field(
        sa_column=Column(UtcAwareDateTime(), nullable=False)
    )
    end_date: datetime.datetime = Field(
        sa_column=Column(UtcAwareDateTime(), nullable=False)
    )
    min_participants: int = Field(default=1)
    max_participants: int | None = Field(default=None, nullable=True)
    participant_count: int = Field(default=0)
    creator_id: str = Field(foreign_key="users.id", index=True)

    created_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )
    updated_at: datetime.datetime | None = Field(
        default=None,
        sa_column=Column(UtcAwareDateTime(), onupdate=func.now(), nullable=True),
    )

    def is_full(self, participants: int | None = None) -> bool:
        if participants is None:
            participants = self.participant_count
        return (
            self.type == ChallengeType.competitive
            and self.max_participants is not None
            and participants >= self.max_participants
        )


class ChallengeGoal(SQLModel, table=True):
    __tablename__ = "challenge_goals"

    id: str = Field(default_factory=new_id, primary_key=True)
    challenge_id: str = Field(foreign_key="challenges.id", index=True)
    type: GoalType
    target: float
    description: str | None = None
    created_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )


class Badge(SQLModel, table=True):
    __tablename__ = "badges"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    description: str
    icon_url: str | None = None


class ChallengeReward(SQLModel, table=True):
    __tablename__ = "challenge_rewards"

    id: str = Field(default_factory=new_id, primary_key=True)
    challenge_id: str = Field(foreign_key="challenges.id", index=True)
    type: RewardType
    name: str
    description: str
    badge_id: str | None = Field(default=None, foreign_key="badges.id")


class ChallengeRule(SQLModel, table=True):
    __tablename__ = "challenge_rules"

    id: str = Field(default_factory=new_id, primary_key=True)
    challenge_id: str = Field(foreign_key="challenges.id", index=True)
    rule: str


class ChallengeTeam(SQLModel, table=True):
    __tablename__ = "challenge_teams"
    __table_args__ = (
        UniqueConstraint("challenge_id", "name", name="uq_team_name"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    challenge_id: str = Field(foreign_key="challenges.id", index=True)
    name: str
    created_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )


class ChallengeParticipant(SQLModel, table=True):
    __tablename__ = "challenge_participants"
    __table_args__ = (
        CheckConstraint(
            f"progress >= 0 AND progress <= {MAX_PROGRESS}", name="ck_progress_range"
        ),
        Index("idx_participants_progress", "challenge_id", "progress"),
    )

    challenge_id: str = Field(foreign_key="challenges.id", primary_key=True)
    user_id: str = Field(foreign_key="users.id", primary_key=True)
    team_id: str | None = Field(
        default=None, foreign_key="challenge_teams.id", nullable=True
    )
    progress: int = Field(default=0)
    completed: bool = Field(default=False)
    joined_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )
    updated_at: datetime.datetime | None = Field(
        default=None,
        sa_column=Column(UtcAwareDateTime(), nullable=True),
    )


class ClaimedReward(SQLModel, table=True):
    __tablename__ = "claimed_rewards"

    # One claim per user and reward
    user_id: str = Field(foreign_key="users.id", primary_key=True)
    reward_id: str = Field(foreign_key="challenge_rewards.id", primary_key=True)
    challenge_id: str = Field(foreign_key="challenges.id", index=True)
    claimed_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )


class UserBadge(SQLModel, table=True):
    __tablename__ = "user_badges"

    user_id: str = Field(foreign_key="users.id", primary_key=True)
    badge_id: str = Field(foreign_key="badges.id", primary_key=True)
    challenge_id: str = Field(foreign_key="challenges.id", primary_key=True)
    claimed_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )
