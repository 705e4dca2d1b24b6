"""TTL-keyed challenge storage backed by redis."""
from __future__ import annotations
import logging
import time
from typing import Callable, Optional, Protocol

import redis

from .exceptions import StorageError
from .models import Challenge

logger = logging.getLogger(__name__)


class ChallengeRepository(Protocol):
    """Storage contract used by the challenge services."""

    def save(self, key: str, challenge: Challenge) -> None: ...

    def get(self, key: str) -> Optional[Challenge]: ...

    def remove(self, key: str) -> None: ...

    def take(self, key: str) -> Optional[Challenge]: ...


class RedisChallengeRepository:
    """Store challenges as JSON documents that expire with the challenge.

    Keys are written as ``{namespace}:{key}`` where ``key`` is usually
    ``{channel}:{correlation}``, e.g. ``captcha:sms:13800000000``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str = "captcha",
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.namespace = namespace
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def save(self, key: str, challenge: Challenge) -> None:
        ttl_ms = max(1, int((challenge.expire_at - self._clock()) * 1000))
        try:
            self.redis.set(self._key(key), challenge.to_json(), px=ttl_ms)
        except redis.RedisError as e:
            raise StorageError(f"Failed to save challenge: {e}") from e

    def get(self, key: str) -> Optional[Challenge]:
        try:
            raw = self.redis.get(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Failed to read challenge: {e}") from e
        challenge = self._decode(key, raw)
        if raw is not None and challenge is None:
            self.remove(key)
        return challenge

    def take(self, key: str) -> Optional[Challenge]:
        """Read and delete the entry in one GETDEL so it is handed out at most once."""
        try:
            raw = self.redis.getdel(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Failed to take challenge: {e}") from e
        return self._decode(key, raw)

    def _decode(self, key: str, raw) -> Optional[Challenge]:
        if raw is None:
            return None
        try:
            challenge = Challenge.from_json(raw)
        except ValueError as e:
            logger.warning("Discarding corrupt challenge entry %s: %s", self._key(key), e)
            return None

        # The store TTL and expire_at can disagree by clock skew
        if challenge.is_expired(self._clock()):
            return None
        return challenge

    def remove(self, key: str) -> None:
        try:
            self.redis.delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Failed to remove challenge: {e}") from e
