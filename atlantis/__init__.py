"""Atlantis HMS session, lockout and audit core."""

__version__ = "0.1.0"
