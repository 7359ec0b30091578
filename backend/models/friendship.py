import datetime
from enum import Enum

from sqlalchemy import UniqueConstraint, CheckConstraint, Column
from sqlmodel import SQLModel, Field

from models.common import new_id
from models.types import UtcAwareDateTime, utcnow


class FriendshipStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


class Friendship(SQLModel, table=True):
    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_friend_pair"),
        CheckConstraint("user_low_id < user_high_id", name="ck_friend_order"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)

    # Canonical pair (always low < high), one row per unordered pair
    user_low_id: str = Field(foreign_key="users.id", index=True)
    user_high_id: str = Field(foreign_key="users.id", index=True)

    # Request flow
    requester_id: str = Field(foreign_key="users.id", index=True)
    recipient_id: str = Field(foreign_key="users.id", index=True)
    status: FriendshipStatus = Field(default=FriendshipStatus.pending, index=True)

    created_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )
    updated_at: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )

    # Helpers
    @staticmethod
    def canonical_pair(a: str, b: str) -> tuple[str, str]:
        return (a, b) if a < b else (b, a)

    def other_id(self, user_id: str) -> str:
        return self.recipient_id if user_id == self.requester_id else self.requester_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "recipient_id": self.recipient_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
