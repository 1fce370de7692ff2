from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, field_validator

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FixedClock(BaseModel, frozen=True):
    """A clock that always returns the same instant; handy in tests."""

    now: datetime

    @field_validator("now")
    @classmethod
    def now_must_be_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("FixedClock value must be timezone-aware")
        return value

    def __call__(self) -> datetime:
        return self.now


def age_ms(then: datetime, now: datetime) -> int:
    """Milliseconds elapsed from ``then`` to ``now`` (never negative)."""
    return max(0, int((now - then).total_seconds() * 1000))
