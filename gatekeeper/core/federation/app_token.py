"""Redis cache for vendor application tokens (Feishu app token, WeChat Work corp token)."""
from __future__ import annotations
import logging
from typing import Callable, Optional

import redis

logger = logging.getLogger(__name__)

# Refresh this many seconds before the vendor-declared expiry
EXPIRY_MARGIN = 60


class AppTokenCache:
    """Keys: ``{namespace}:{provider}:{client_id}``.

    A redis outage is logged and treated as a cache miss; the vendor is then
    asked for a fresh token.
    """

    def __init__(self, redis_client: Optional[redis.Redis], namespace: str = "oauth2:app_token"):
        self.redis = redis_client
        self.namespace = namespace

    def _key(self, provider: str, client_id: str) -> str:
        return f"{self.namespace}:{provider}:{client_id}"

    def get(self, provider: str, client_id: str) -> Optional[str]:
        if self.redis is None:
            return None
        try:
            value = self.redis.get(self._key(provider, client_id))
        except redis.RedisError as e:
            logger.warning("App token cache read failed for %s: %s", provider, e)
            return None
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def put(self, provider: str, client_id: str, token: str, expires_in: Optional[int]) -> None:
        if self.redis is None or not expires_in:
            return
        ttl = int(expires_in) - EXPIRY_MARGIN
        if ttl <= 0:
            return
        try:
            self.redis.set(self._key(provider, client_id), token, ex=ttl)
        except redis.RedisError as e:
            logger.warning("App token cache write failed for %s: %s", provider, e)

    def remaining(self, provider: str, client_id: str) -> Optional[int]:
        """Seconds left on a cached token, or None when unknown."""
        if self.redis is None:
            return None
        try:
            ttl = self.redis.ttl(self._key(provider, client_id))
        except redis.RedisError as e:
            logger.warning("App token cache TTL read failed for %s: %s", provider, e)
            return None
        return ttl if ttl and ttl > 0 else None

    def get_or_fetch(
        self, provider: str, client_id: str, fetch: Callable[[], tuple[str, Optional[int]]]
    ) -> tuple[str, Optional[int]]:
        """Return ``(token, expires_in)``, calling ``fetch`` on a miss."""
        cached = self.get(provider, client_id)
        if cached:
            return cached, self.remaining(provider, client_id)
        token, expires_in = fetch()
        self.put(provider, client_id, token, expires_in)
        return token, expires_in
