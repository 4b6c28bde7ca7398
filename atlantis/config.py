"""Runtime configuration for the Atlantis core."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from atlantis.storage import SESSION_STORAGE_KEY


def _get_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class AuthSettings:
    """Resolved settings for the authentication flows."""

    simulated_delay_ms: int = 0
    session_warning_minutes: int = 5
    seed_demo_data: bool = True
    session_storage_key: str = SESSION_STORAGE_KEY
    log_level: str = "INFO"

    @property
    def simulated_delay_seconds(self) -> float:
        return self.simulated_delay_ms / 1000.0


@lru_cache()
def get_auth_settings() -> AuthSettings:
    """Return settings resolved from the environment (cached)."""

    delay_ms = _get_int_env("ATLANTIS_SIMULATED_DELAY_MS")
    warning_minutes = _get_int_env("ATLANTIS_SESSION_WARNING_MINUTES")
    storage_key = os.getenv("ATLANTIS_SESSION_STORAGE_KEY", "").strip()
    return AuthSettings(
        simulated_delay_ms=max(0, delay_ms) if delay_ms is not None else 0,
        session_warning_minutes=max(0, warning_minutes) if warning_minutes is not None else 5,
        seed_demo_data=_env_flag("ATLANTIS_SEED_DEMO_DATA", True),
        session_storage_key=storage_key or SESSION_STORAGE_KEY,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


__all__ = ["AuthSettings", "get_auth_settings"]
