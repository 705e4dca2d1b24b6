"""Verification-challenge gate: image and SMS codes.

Modules:
- models: Challenge and Channel
- repository: TTL-keyed redis storage
- generators: per-channel code generation (Pillow rendering for images)
- senders: delivery and resend throttling
- service: per-channel send/validate and request routing
"""
from .exceptions import (
    CaptchaError,
    ChallengeInvalid,
    MissingParameter,
    SendError,
    StorageError,
    ThrottleExceeded,
    UnknownChannel,
)
from .generators import ChallengeGenerator, ImageChallengeGenerator, SmsChallengeGenerator
from .models import Challenge, Channel
from .repository import ChallengeRepository, RedisChallengeRepository
from .senders import ChallengeSender, ImageChallengeSender, ResendThrottle, SmsChallengeSender
from .service import ChallengeMatch, ChallengeService, ChallengeServiceRegistry, request_param

__all__ = [
    "CaptchaError",
    "Challenge",
    "ChallengeGenerator",
    "ChallengeInvalid",
    "ChallengeMatch",
    "ChallengeRepository",
    "ChallengeSender",
    "ChallengeService",
    "ChallengeServiceRegistry",
    "Channel",
    "ImageChallengeGenerator",
    "ImageChallengeSender",
    "MissingParameter",
    "RedisChallengeRepository",
    "ResendThrottle",
    "SendError",
    "SmsChallengeGenerator",
    "SmsChallengeSender",
    "StorageError",
    "ThrottleExceeded",
    "UnknownChannel",
    "request_param",
]
