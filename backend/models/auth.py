"""User profiles, as provided by the external auth provider"""

import datetime

from sqlalchemy import func
from sqlmodel import SQLModel, Field, Column
from .common import CamelModel
from .types import UtcAwareDateTime, utcnow


class User(SQLModel, CamelModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    email: str = Field(unique=True, index=True)
    username: str | None = Field(default=None, index=True, unique=True, nullable=True)
    display_name: str | None = None
    avatar_url: str | None = None
    join_date: datetime.datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UtcAwareDateTime(), nullable=False),
    )
    is_admin: bool = False

    updated_at: datetime.datetime | None = Field(
        default=None,
        sa_column=Column(UtcAwareDateTime(), onupdate=func.now(), nullable=True),
    )

    def public(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
        }

    def __str__(self):
        return self.username or self.email
