# this file manages the read cache of relationship and challenge aggregates
import logging
from functools import partial
from typing import Any, Callable, Hashable

from expiringdict import ExpiringDict

import settings

logger = logging.getLogger("questlog.cache")

new_cache = partial(ExpiringDict, max_len=10_000, items={})

_MISSING = object()


class CacheService:
    """Expiring caches with explicit invalidation.

    Keys:
      friends:    user_id
      statuses:   (viewer_id, target_id)
      challenges: (challenge_id, viewer_id | None)
    Services call the invalidate_* hooks after every successful mutation.
    """

    def __init__(self, max_age_seconds: int | None = None, enabled: bool | None = None):
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled
        max_age = max_age_seconds or settings.CACHE_TTL_SECONDS
        self.friends = new_cache(max_age_seconds=max_age)
        self.statuses = new_cache(max_age_seconds=max_age)
        self.challenges = new_cache(max_age_seconds=max_age)

    def get_or_load(self, bucket: ExpiringDict, key: Hashable, loader: Callable[[], Any]):
        if not self.enabled:
            return loader()
        value = bucket.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            bucket[key] = value
        return value

    def invalidate_user_relationships(self, *user_ids: str) -> None:
        ids = set(user_ids)
        for user_id in ids:
            self.friends.pop(user_id, None)
        for key in list(self.statuses.keys()):
            if ids.intersection(key):
                self.statuses.pop(key, None)
        logger.debug(f"Invalidated relationships of {sorted(ids)}")

    def invalidate_challenge(self, challenge_id: str) -> None:
        for key in list(self.challenges.keys()):
            if key[0] == challenge_id:
                self.challenges.pop(key, None)
        logger.debug(f"Invalidated challenge {challenge_id}")

    def clear(self) -> None:
        self.friends.clear()
        self.statuses.clear()
        self.challenges.clear()


cache = CacheService()
