"""Request-time routing for challenge send and validate requests.

Each channel is served by one ``ChallengeService``. The registry picks the
service for an incoming request:

    registry = ChallengeServiceRegistry(type_param="captchaType")
    registry.register(sms_service)
    match = registry.resolve(request)
    if match and match.action == "send":
        return match.service.send(request)
"""
from __future__ import annotations
import fnmatch
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

from flask import Request, Response

from gatekeeper.core.messaging import mask_target
from .exceptions import ChallengeInvalid, MissingParameter, SendError, UnknownChannel
from .generators import ChallengeGenerator
from .models import Challenge
from .repository import ChallengeRepository
from .senders import ChallengeSender

logger = logging.getLogger(__name__)

SEND = "send"
VALIDATE = "validate"

PASSWORD_GRANT_MARKERS = ("password", "sms")


def request_param(request: Request, name: str) -> Optional[str]:
    """Read ``name`` from the query string, form body or JSON body."""
    value = request.values.get(name)
    if value is None and request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict) and body.get(name) is not None:
            value = str(body[name])
    if value is not None:
        value = value.strip()
    return value or None


class ChallengeService:
    """Send and validate challenges for one channel."""

    def __init__(
        self,
        channel: str,
        repository: ChallengeRepository,
        generator: ChallengeGenerator,
        sender: ChallengeSender,
        *,
        code_param: str,
        target_param: str,
        send_url: str,
        validate_urls: Iterable[str] = (),
        login_url: Optional[str] = None,
        oauth2_token_url: Optional[str] = None,
        case_sensitive: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.channel = channel
        self.repository = repository
        self.generator = generator
        self.sender = sender
        self.code_param = code_param
        self.target_param = target_param
        self.send_url = send_url
        self.validate_urls = tuple(validate_urls)
        self.login_url = login_url
        self.oauth2_token_url = oauth2_token_url
        self.case_sensitive = case_sensitive
        self._clock = clock

    def storage_key(self, target: str) -> str:
        return f"{self.channel}:{target}"

    # ── matching ─────────────────────────────────────────────────────────────
    def is_send_request(self, request: Request) -> bool:
        return request.path == self.send_url

    def is_validate_request(self, request: Request) -> bool:
        path = request.path
        if any(fnmatch.fnmatchcase(path, pattern) for pattern in self.validate_urls):
            return True

        has_target = request_param(request, self.target_param) is not None
        if self.login_url and path == self.login_url and has_target:
            return True

        if self.oauth2_token_url and path == self.oauth2_token_url:
            grant_type = (request_param(request, "grant_type") or "").lower()
            return any(marker in grant_type for marker in PASSWORD_GRANT_MARKERS)
        return False

    # ── operations ───────────────────────────────────────────────────────────
    def create(self, target: str) -> Challenge:
        """Generate and store a challenge for ``target`` without delivering it."""
        challenge = self.generator.generate(target)
        self.repository.save(self.storage_key(target), challenge)
        return challenge

    def send(self, request: Request) -> Response:
        """Generate, store and deliver a challenge for the request's target.

        Raises:
            MissingParameter: If the correlation parameter is absent
            ThrottleExceeded: If the target was served too recently
            SendError: If delivery failed (the stored challenge is removed)
        """
        target = request_param(request, self.target_param)
        if target is None:
            raise MissingParameter(self.target_param)

        self.sender.throttle.acquire(target)
        try:
            challenge = self.create(target)
        except Exception:
            self.sender.throttle.release(target)
            raise

        try:
            response = self.sender.send(target, challenge)
        except SendError:
            try:
                self.repository.remove(self.storage_key(target))
            finally:
                self.sender.throttle.release(target)
            raise

        logger.info("Issued %s challenge for %s", self.channel, mask_target(target))
        return response

    def verify(self, target: Optional[str], code: Optional[str]) -> Challenge:
        """Check ``code`` against the challenge stored for ``target`` and consume it.

        Any present entry is removed whether or not the code matches.

        Raises:
            ChallengeInvalid: If the code is missing, absent, expired or wrong
        """
        if not target:
            raise ChallengeInvalid(f"{self.target_param} is required")
        if not code:
            raise ChallengeInvalid("Verification code is required")

        stored = self.repository.take(self.storage_key(target))
        if stored is None:
            raise ChallengeInvalid("Verification code not found or expired")

        if stored.is_expired(self._clock()):
            raise ChallengeInvalid("Verification code expired")
        if not self._matches(stored.code, code):
            logger.info("Rejected %s challenge for %s: mismatch", self.channel, mask_target(target))
            raise ChallengeInvalid("Verification code mismatch")
        return stored

    def validate(self, request: Request) -> Challenge:
        return self.verify(
            request_param(request, self.target_param),
            request_param(request, self.code_param),
        )

    def _matches(self, expected: str, submitted: str) -> bool:
        if not self.case_sensitive:
            expected, submitted = expected.lower(), submitted.lower()
        return hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8"))


@dataclass(frozen=True)
class ChallengeMatch:
    service: ChallengeService
    action: str


class ChallengeServiceRegistry:
    """Channel name → service, consulted in registration order."""

    def __init__(self, type_param: str = "captchaType"):
        self.type_param = type_param
        self._services: dict[str, ChallengeService] = {}

    def register(self, service: ChallengeService) -> None:
        self._services[service.channel] = service

    def get(self, channel: str) -> ChallengeService:
        try:
            return self._services[channel]
        except KeyError:
            raise UnknownChannel(channel) from None

    def __iter__(self) -> Iterator[ChallengeService]:
        return iter(self._services.values())

    def __len__(self) -> int:
        return len(self._services)

    def _match(self, request: Request, candidates: list[ChallengeService]) -> Optional[ChallengeMatch]:
        for service in candidates:
            if service.is_send_request(request):
                return ChallengeMatch(service, SEND)
        gated = [service for service in candidates if service.is_validate_request(request)]
        if not gated:
            return None
        # The token URL gates every channel; prefer the one whose target was sent
        for service in gated:
            if request_param(request, service.target_param) is not None:
                return ChallengeMatch(service, VALIDATE)
        return ChallengeMatch(gated[0], VALIDATE)

    def resolve(self, request: Request) -> Optional[ChallengeMatch]:
        """Return the service and action for ``request``, or None to pass through.

        Send URLs are checked before validate rules. With the discriminator
        parameter present only the named channel is considered.

        Raises:
            UnknownChannel: If the discriminator names an unregistered channel
        """
        if not self._services:
            return None
        requested = request_param(request, self.type_param)
        if requested is None:
            return self._match(request, list(self._services.values()))
        if requested not in self._services:
            # Only fail requests that would otherwise have hit the gate
            if self._match(request, list(self._services.values())) is not None:
                raise UnknownChannel(requested)
            return None
        return self._match(request, [self._services[requested]])
