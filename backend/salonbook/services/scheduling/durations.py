# backend/salonbook/services/scheduling/durations.py
"""
Duration and wall-clock parsing.

One typed Duration for every service/appointment length crossing the
boundary, and one "HH:MM" clock parse/format pair for working hours.
"""

import re
from dataclasses import dataclass
from datetime import timedelta

from ...errors import ValidationError

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, order=True)
class Duration:
    minutes: int

    def __post_init__(self):
        if self.minutes <= 0:
            raise ValidationError(f"Duration must be positive, got {self.minutes} minutes")

    @classmethod
    def parse(cls, value) -> "Duration":
        """
        Parse minutes (int), "HH:MM" or "HH:MM:SS".

        For "HH:MM:SS" with zero hours and minutes, a non-zero seconds
        field is read as minutes (stored services use that encoding).
        """
        if isinstance(value, Duration):
            return value
        if isinstance(value, bool):
            raise ValidationError(f"Invalid duration: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, timedelta):
            return cls(round(value.total_seconds() / 60))
        if not isinstance(value, str):
            raise ValidationError(f"Invalid duration: {value!r}")

        text = value.strip()
        if text.isdigit():
            return cls(int(text))

        match = _CLOCK_RE.match(text)
        if not match:
            raise ValidationError(f"Invalid duration: {value!r}")

        hours, minutes = int(match.group(1)), int(match.group(2))
        seconds = int(match.group(3) or 0)
        if minutes >= 60 or seconds >= 60:
            raise ValidationError(f"Invalid duration: {value!r}")
        if hours or minutes:
            return cls(hours * 60 + minutes)
        if seconds:
            return cls(seconds)
        raise ValidationError(f"Duration must be positive: {value!r}")

    @classmethod
    def between(cls, start, end) -> "Duration":
        """Duration of [start, end), rounded to whole minutes."""
        if end <= start:
            raise ValidationError("End time must be after start time")
        return cls(round((end - start).total_seconds() / 60))

    def format(self) -> str:
        hours, minutes = divmod(self.minutes, 60)
        return f"{hours:02d}:{minutes:02d}:00"

    @property
    def delta(self) -> timedelta:
        return timedelta(minutes=self.minutes)


def parse_clock(value: str) -> int:
    """Convert "HH:MM" (or "HH:MM:SS") to minutes since midnight."""
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time: {value!r}")
    match = _CLOCK_RE.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 24 or minutes >= 60 or (hours == 24 and minutes):
        raise ValidationError(f"Invalid time: {value!r}")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    hours, minute = divmod(minutes, 60)
    return f"{hours:02d}:{minute:02d}"
