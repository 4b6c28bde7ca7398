"""Exception types raised at the seams of the Atlantis core."""

from __future__ import annotations


class AtlantisError(Exception):
    """Base class for errors raised by the Atlantis core."""


class UnknownRoleError(AtlantisError, ValueError):
    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Unknown role: {role!r}")


class DuplicateUsernameError(AtlantisError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username!r}")


class SessionRequiredError(AtlantisError):
    """Raised when a protected operation runs without a matching session."""

    def __init__(self, role: str | None = None, status: str | None = None):
        self.role = role
        self.status = status
        message = "Active session required"
        if role:
            message = f"Active {role} session required"
        super().__init__(message)


__all__ = [
    "AtlantisError",
    "UnknownRoleError",
    "DuplicateUsernameError",
    "SessionRequiredError",
]
