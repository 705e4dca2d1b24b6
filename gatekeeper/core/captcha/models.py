"""Challenge data model."""
from __future__ import annotations
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Channel(str, Enum):
    """Delivery channels supported by the challenge gate."""
    IMAGE = "image"
    SMS = "sms"


@dataclass
class Challenge:
    """A one-time verification code.

    ``payload`` holds the rendered image for the image channel. It is handed to
    the sender but never persisted.
    """
    code: str
    expire_at: float
    target: Optional[str] = None
    payload: Optional[bytes] = field(default=None, repr=False, compare=False)

    def is_expired(self, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expire_at

    def to_json(self) -> str:
        return json.dumps({"code": self.code, "target": self.target, "expire_at": self.expire_at})

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Challenge":
        """Parse a stored challenge.

        Raises:
            ValueError: If the document is not a valid challenge
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Challenge document must be an object")
        try:
            return cls(
                code=str(data["code"]),
                expire_at=float(data["expire_at"]),
                target=data.get("target"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed challenge document: {e}") from e
