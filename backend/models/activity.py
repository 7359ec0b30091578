import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Index
from sqlmodel import JSON, Column, Field, SQLModel

from models.common import new_id
from models.types import UtcAwareDateTime, utcnow


class ActivityType(str, Enum):
    friend_added = "friend_added"
    challenge_created = "challenge_created"
    challenge_joined = "challenge_joined"
    challenge_completed = "challenge_completed"
    reward_claimed = "reward_claimed"


class ActivityEvent(SQLModel, table=True):
    __tablename__ = "activity_events"
    __table_args__ = (Index("idx_activity_user_created", "user_id", "created_at"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id")
    activity_type: ActivityType
    details: dict[str, Any] | None = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.activity_type.value,
            "details": self.details or {},
            "created_at": self.created_at.isoformat(),
        }
