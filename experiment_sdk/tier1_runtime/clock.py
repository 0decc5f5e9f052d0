"""
experiment_sdk.tier1_runtime.clock
──────────────────────────────────
Injectable UTC time source. Assignment timestamps and experiment schedule
windows read the time through a Clock so tests can pin it.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable


class Clock:
    """UTC clock. Pass ``now_fn`` (or use ``frozen``) to control time in tests."""

    def __init__(self, now_fn: Callable[[], datetime] | None = None) -> None:
        self._now_fn = now_fn or (lambda: datetime.now(tz=timezone.utc))

    def now(self) -> datetime:
        value = self._now_fn()
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def frozen(cls, at: datetime) -> "Clock":
        """A clock that always reports *at*."""
        return cls(now_fn=lambda: at)

    def shifted(self, **delta: float) -> "Clock":
        """A clock offset from this one, e.g. ``clock.shifted(days=1)``."""
        offset = timedelta(**delta)
        return Clock(now_fn=lambda: self.now() + offset)


SYSTEM_CLOCK = Clock()


def utcnow() -> datetime:
    return SYSTEM_CLOCK.now()


__all__ = ["Clock", "SYSTEM_CLOCK", "utcnow"]
