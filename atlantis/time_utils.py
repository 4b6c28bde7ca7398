"""Clock, delay and timestamp helpers.

Every component that needs "now" takes a :class:`Clock`, and every artificial
wait goes through a :class:`Delay`, so tests can freeze time, jump past a
lockout window and run without real sleeps.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialise ``dt`` as an ISO-8601 UTC string with a ``Z`` suffix."""

    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting the ``Z`` suffix.

    Raises ``ValueError`` for anything that is not a timestamp string.
    """

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utc_now()


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = ensure_utc(start) if start is not None else utc_now()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)

    def advance(self, delta: Optional[timedelta] = None, **kwargs: float) -> datetime:
        """Move forward by ``delta`` or by ``timedelta(**kwargs)``."""

        step = delta if delta is not None else timedelta(**kwargs)
        self._now = self._now + step
        return self._now


class Delay(Protocol):
    def __call__(self, seconds: Optional[float] = None) -> None:
        ...


class NoDelay:
    """Delay that returns immediately; records what was requested."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: Optional[float] = None) -> None:
        self.calls.append(float(seconds or 0.0))


class SleepDelay:
    """Blocking delay that paces simulated API calls."""

    def __init__(self, default_seconds: float = 0.0) -> None:
        self.default_seconds = max(0.0, default_seconds)

    def __call__(self, seconds: Optional[float] = None) -> None:
        duration = self.default_seconds if seconds is None else max(0.0, seconds)
        if duration:
            time.sleep(duration)


__all__ = [
    "utc_now",
    "ensure_utc",
    "to_iso",
    "parse_iso",
    "Clock",
    "SystemClock",
    "ManualClock",
    "Delay",
    "NoDelay",
    "SleepDelay",
]
