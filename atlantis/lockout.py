"""Account lockout policy shared by every role."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Optional

LOCKOUT_THRESHOLD = 5
LOCKOUT_DURATION = timedelta(minutes=15)
LOCKOUT_DURATION_SECONDS = int(LOCKOUT_DURATION.total_seconds())

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"
ACCOUNT_LOCKED_NOW_MESSAGE = (
    "Account has been locked due to too many failed login attempts. "
    "Please contact support for account recovery."
)


def is_locked(credential: Any, now: datetime) -> bool:
    """True while ``credential.locked_until`` lies in the future."""

    locked_until: Optional[datetime] = getattr(credential, "locked_until", None)
    return locked_until is not None and locked_until > now


def lock_until_after_failure(attempts: int, now: datetime) -> Optional[datetime]:
    """Lock expiry to set after the ``attempts``-th consecutive failure."""

    if attempts >= LOCKOUT_THRESHOLD:
        return now + LOCKOUT_DURATION
    return None


def remaining_attempts(attempts: int) -> int:
    return max(LOCKOUT_THRESHOLD - attempts, 0)


def remaining_lock_minutes(credential: Any, now: datetime) -> int:
    """Whole minutes (rounded up) until the lock lifts; 0 when unlocked."""

    if not is_locked(credential, now):
        return 0
    seconds = (credential.locked_until - now).total_seconds()
    return max(1, math.ceil(seconds / 60))


def lockout_message(minutes: int) -> str:
    return (
        "Account is locked due to too many failed login attempts. "
        f"Please try again in {minutes} minute(s) or contact support for account recovery."
    )


def invalid_credentials_message(remaining: int) -> str:
    return f"{INVALID_CREDENTIALS_MESSAGE}. {remaining} attempt(s) remaining."


__all__ = [
    "LOCKOUT_THRESHOLD",
    "LOCKOUT_DURATION",
    "LOCKOUT_DURATION_SECONDS",
    "INVALID_CREDENTIALS_MESSAGE",
    "ACCOUNT_LOCKED_NOW_MESSAGE",
    "is_locked",
    "lock_until_after_failure",
    "remaining_attempts",
    "remaining_lock_minutes",
    "lockout_message",
    "invalid_credentials_message",
]
