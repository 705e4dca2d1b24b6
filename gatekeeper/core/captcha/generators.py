"""Per-channel challenge code generation.

Image codes are drawn from an alphabet without look-alike glyphs (no 0/O,
1/I/L) and rendered to PNG with Pillow. SMS codes are numeric.
"""
from __future__ import annotations
import io
import random
import string
import time
from typing import Callable, Optional

from PIL import Image, ImageDraw, ImageFont

from .models import Challenge

IMAGE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SMS_ALPHABET = string.digits


class ChallengeGenerator:
    """Base generator: random code of fixed length with a fixed lifetime."""

    alphabet = SMS_ALPHABET

    def __init__(
        self,
        length: int,
        expire_in: int,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        if length <= 0:
            raise ValueError(f"Code length must be positive, got {length}")
        if expire_in <= 0:
            raise ValueError(f"Expiry must be positive, got {expire_in}")
        self.length = length
        self.expire_in = expire_in
        # SystemRandom unless a seeded instance is injected
        self._rng = rng or random.SystemRandom()
        self._clock = clock

    def _random_code(self) -> str:
        return "".join(self._rng.choice(self.alphabet) for _ in range(self.length))

    def generate(self, target: Optional[str] = None) -> Challenge:
        return Challenge(
            code=self._random_code(),
            expire_at=self._clock() + self.expire_in,
            target=target,
        )


class SmsChallengeGenerator(ChallengeGenerator):
    """Numeric codes bound to the recipient mobile number."""

    alphabet = SMS_ALPHABET


class ImageChallengeGenerator(ChallengeGenerator):
    """Alphanumeric codes rendered into a noisy PNG image."""

    alphabet = IMAGE_ALPHABET

    def __init__(
        self,
        length: int,
        expire_in: int,
        width: int = 120,
        height: int = 40,
        line_count: int = 20,
        font_size: int = 28,
        alphabet: Optional[str] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(length, expire_in, rng=rng, clock=clock)
        if width <= 0 or height <= 0:
            raise ValueError(f"Image size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.line_count = max(0, line_count)
        self.font_size = font_size
        if alphabet:
            self.alphabet = alphabet

    def generate(self, target: Optional[str] = None) -> Challenge:
        challenge = super().generate(target)
        challenge.payload = self.render(challenge.code)
        return challenge

    def _color(self, low: int, high: int) -> tuple[int, int, int]:
        return tuple(self._rng.randint(low, high) for _ in range(3))  # type: ignore[return-value]

    def render(self, code: str) -> bytes:
        """Render ``code`` to PNG bytes."""
        image = Image.new("RGB", (self.width, self.height), (255, 255, 255))
        draw = ImageDraw.Draw(image)

        for _ in range(self.line_count):
            start = (self._rng.randint(0, self.width), self._rng.randint(0, self.height))
            end = (self._rng.randint(0, self.width), self._rng.randint(0, self.height))
            draw.line([start, end], fill=self._color(160, 220), width=1)

        font = ImageFont.load_default(size=self.font_size)
        slot = self.width / (len(code) + 1)
        for index, char in enumerate(code):
            x = int(slot * (index + 0.5)) + self._rng.randint(-2, 2)
            y = self._rng.randint(0, max(0, self.height - self.font_size))
            draw.text((x, y), char, font=font, fill=self._color(20, 120))

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()
