"""Models package for the Questlog backend"""

from .common import get_session, CamelModel
from .types import UtcAwareDateTime
from .auth import User
from .friendship import Friendship, FriendshipStatus
from .challenge import (
    Badge,
    Challenge,
    ChallengeGoal,
    ChallengeParticipant,
    ChallengeReward,
    ChallengeRule,
    ChallengeStatus,
    ChallengeTeam,
    ChallengeType,
    ClaimedReward,
    GoalType,
    RewardType,
    UserBadge,
)
from .activity import ActivityEvent, ActivityType

__all__ = [
    "ActivityEvent",
    "ActivityType",
    "Badge",
    "Challenge",
    "ChallengeGoal",
    "ChallengeParticipant",
    "ChallengeReward",
    "ChallengeRule",
    "ChallengeStatus",
    "ChallengeTeam",
    "ChallengeType",
    "ClaimedReward",
    "Friendship",
    "FriendshipStatus",
    "GoalType",
    "RewardType",
    "User",
    "UserBadge",
    "UtcAwareDateTime",
    "get_session",
    "CamelModel",
]
