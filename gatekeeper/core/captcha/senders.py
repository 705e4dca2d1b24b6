"""Challenge delivery and resend throttling."""
from __future__ import annotations
import logging
import math
import time
from typing import Callable, Optional

import redis
from flask import Response, jsonify

from gatekeeper.core.messaging import DispatchError, MessageDispatcher, mask_target
from .exceptions import SendError, StorageError, ThrottleExceeded
from .models import Challenge

logger = logging.getLogger(__name__)


class ResendThrottle:
    """Per-target resend guard.

    ``acquire`` records the send with a single ``SET NX PX`` so that two
    concurrent requests for the same target cannot both pass.
    """

    def __init__(self, redis_client: Optional[redis.Redis], channel: str, interval: int,
                 namespace: str = "captcha:throttle"):
        self.redis = redis_client
        self.channel = channel
        self.interval = interval
        self.namespace = namespace

    @property
    def enabled(self) -> bool:
        return self.interval > 0 and self.redis is not None

    def _key(self, target: str) -> str:
        return f"{self.namespace}:{self.channel}:{target}"

    def acquire(self, target: Optional[str]) -> None:
        """Record a send for ``target``.

        Raises:
            ThrottleExceeded: If the previous send is younger than the interval
            StorageError: If the throttle store is unavailable
        """
        if not self.enabled or not target:
            return
        key = self._key(target)
        try:
            acquired = self.redis.set(key, "1", nx=True, px=self.interval * 1000)
            if acquired:
                return
            remaining_ms = self.redis.pttl(key)
        except redis.RedisError as e:
            raise StorageError(f"Failed to check resend throttle: {e}") from e

        retry_after = math.ceil(remaining_ms / 1000) if remaining_ms and remaining_ms > 0 else self.interval
        raise ThrottleExceeded(max(1, retry_after))

    def release(self, target: Optional[str]) -> None:
        if not self.enabled or not target:
            return
        try:
            self.redis.delete(self._key(target))
        except redis.RedisError as e:
            raise StorageError(f"Failed to release resend throttle: {e}") from e


class ChallengeSender:
    """Base sender. Subclasses deliver ``challenge`` and build the response."""

    def __init__(self, throttle: ResendThrottle):
        self.throttle = throttle

    def send(self, target: Optional[str], challenge: Challenge) -> Response:
        raise NotImplementedError


class ImageChallengeSender(ChallengeSender):
    """Write the rendered PNG straight to the response."""

    def send(self, target: Optional[str], challenge: Challenge) -> Response:
        if not challenge.payload:
            raise SendError("Image challenge has no rendered payload")
        response = Response(challenge.payload, mimetype="image/png")
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response


class SmsChallengeSender(ChallengeSender):
    """Hand the code to the message dispatcher and acknowledge with JSON."""

    def __init__(
        self,
        throttle: ResendThrottle,
        dispatcher: MessageDispatcher,
        template_id: str,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(throttle)
        self.dispatcher = dispatcher
        self.template_id = template_id
        self._clock = clock

    def send(self, target: Optional[str], challenge: Challenge) -> Response:
        if not target:
            raise SendError("SMS challenge requires a target mobile number")
        try:
            self.dispatcher.send(target, self.template_id, {"code": challenge.code, "mobile": target})
        except DispatchError as e:
            logger.warning("SMS dispatch to %s failed: %s", mask_target(target), e)
            raise SendError(f"SMS delivery failed: {e}") from e
        return jsonify({"message": "Verification code sent", "expires_in": max(0, int(challenge.expire_at - self._clock()))})
