"""AnalysisInput - what the caller hands to the engine.

One request is either image bytes (full analysis or name-only detection)
or a free-text meal description, optionally with the caller's local time.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AnalysisMode(str, Enum):
    """Which backend operation a request maps to."""

    IMAGE = "image"  # analyze_image(bytes)
    TEXT = "text"  # analyze_text(text, time_context)
    NAMES = "names"  # detect_names(bytes)


@dataclass(frozen=True)
class TimeContext:
    """
    Value Object: caller-local time of day.

    Only used to phrase the text-analysis prompt ("had this for breakfast").

    Example:
        >>> TimeContext(hour=8, minute=15).meal_period()
        'breakfast'
    """

    hour: int
    minute: int = 0
    timezone: Optional[str] = None  # IANA name, informational

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"Minute must be between 0 and 59, got {self.minute}")

    def meal_period(self) -> str:
        """Map the hour onto breakfast / lunch / dinner / snack."""
        if 5 <= self.hour < 11:
            return "breakfast"
        if 11 <= self.hour < 15:
            return "lunch"
        if 17 <= self.hour < 22:
            return "dinner"
        return "snack"

    def describe(self) -> str:
        suffix = f" ({self.timezone})" if self.timezone else ""
        return f"{self.hour:02d}:{self.minute:02d}{suffix}, likely {self.meal_period()}"


def normalize_text(text: str) -> str:
    """Collapse whitespace and lower-case a meal description."""
    return " ".join(text.lower().split())


@dataclass(frozen=True)
class AnalysisInput:
    """
    Entity: a single resolution request.

    Invariants:
    - IMAGE / NAMES carry non-empty image bytes
    - TEXT carries a non-blank description
    """

    mode: AnalysisMode
    image_bytes: Optional[bytes] = None
    text: Optional[str] = None
    time_context: Optional[TimeContext] = None

    def __post_init__(self) -> None:
        if self.mode in (AnalysisMode.IMAGE, AnalysisMode.NAMES):
            if not self.image_bytes:
                raise ValueError(f"{self.mode.value} analysis requires image bytes")
        elif self.mode == AnalysisMode.TEXT:
            if not self.text or not self.text.strip():
                raise ValueError("Text analysis requires a non-empty description")

    @classmethod
    def from_image(cls, image_bytes: bytes) -> "AnalysisInput":
        return cls(mode=AnalysisMode.IMAGE, image_bytes=image_bytes)

    @classmethod
    def from_text(cls, text: str, time_context: Optional[TimeContext] = None) -> "AnalysisInput":
        return cls(mode=AnalysisMode.TEXT, text=text, time_context=time_context)

    @classmethod
    def names_from_image(cls, image_bytes: bytes) -> "AnalysisInput":
        return cls(mode=AnalysisMode.NAMES, image_bytes=image_bytes)

    def fingerprint(self) -> str:
        """
        Cache key for this request.

        SHA-256 of the image bytes, or of the whitespace-collapsed,
        lower-cased text, prefixed by the mode so that full analysis and
        name-only detection of the same photo never collide.

        Example:
            >>> a = AnalysisInput.from_text("Two  Eggs")
            >>> b = AnalysisInput.from_text("two eggs")
            >>> a.fingerprint() == b.fingerprint()
            True
        """
        if self.mode == AnalysisMode.TEXT:
            payload = normalize_text(self.text or "").encode("utf-8")
        else:
            payload = self.image_bytes or b""
        return f"{self.mode.value}:{hashlib.sha256(payload).hexdigest()}"
