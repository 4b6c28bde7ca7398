"""Client-held login sessions.

A session is a self-asserted JSON document written into one of the two
client storage scopes.  Nothing signs it and nothing on the server side
tracks it; validity is purely ``now < expires_at`` checked when the session
is read.  Dead sessions are ignored, never swept.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from atlantis.credentials import Credential, normalize_role
from atlantis.storage import SESSION_STORAGE_KEY, ClientStorage, KeyValueStore
from atlantis.time_utils import Clock, SystemClock, ensure_utc, parse_iso, to_iso

logger = structlog.get_logger(__name__)

SESSION_DURATION = timedelta(hours=8)
REMEMBER_ME_DURATION = timedelta(days=30)
DEFAULT_EXPIRY_WARNING = timedelta(minutes=5)


@dataclass(frozen=True)
class Session:
    user_id: str
    username: str
    role: str
    full_name: str
    login_time: datetime
    expires_at: datetime
    remember_me: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "role": self.role,
            "fullName": self.full_name,
            "loginTime": to_iso(self.login_time),
            "expiresAt": to_iso(self.expires_at),
            "rememberMe": self.remember_me,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Any) -> "Session":
        """Build a session from its stored form; raises ``ValueError``."""

        if not isinstance(data, dict):
            raise ValueError("Session payload must be an object")
        missing = [
            key
            for key in ("userId", "username", "role", "fullName", "loginTime", "expiresAt")
            if key not in data
        ]
        if missing:
            raise ValueError(f"Session payload missing {', '.join(missing)}")
        return cls(
            user_id=str(data["userId"]),
            username=str(data["username"]),
            role=normalize_role(str(data["role"])),
            full_name=str(data["fullName"]),
            login_time=parse_iso(data["loginTime"]),
            expires_at=parse_iso(data["expiresAt"]),
            remember_me=bool(data.get("rememberMe", False)),
        )

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Session data is not valid JSON: {exc.msg}") from exc
        return cls.from_dict(payload)


class SessionStatus(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    EXPIRED = "expired"
    CORRUPT = "corrupt"


@dataclass(frozen=True)
class SessionLookup:
    """Outcome of reading the session out of client storage."""

    status: SessionStatus
    session: Optional[Session] = None
    scope: Optional[str] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is SessionStatus.FOUND


class SessionManager:
    def __init__(
        self,
        storage: Optional[ClientStorage] = None,
        clock: Optional[Clock] = None,
        storage_key: str = SESSION_STORAGE_KEY,
    ) -> None:
        self.storage = storage or ClientStorage()
        self.clock = clock or SystemClock()
        self.storage_key = storage_key

    def create_session(self, credential: Credential, remember_me: bool = False) -> Session:
        login_time = self.clock.now()
        duration = REMEMBER_ME_DURATION if remember_me else SESSION_DURATION
        return Session(
            user_id=credential.id,
            username=credential.username,
            role=credential.role,
            full_name=credential.full_name,
            login_time=login_time,
            expires_at=login_time + duration,
            remember_me=bool(remember_me),
        )

    def save_session(self, session: Session) -> KeyValueStore:
        """Write ``session`` into the scope its remember-me flag selects.

        The other scope is not touched, so an older session stored there
        survives the write.
        """

        scope = self.storage.scope_for(session.remember_me)
        scope.set_item(self.storage_key, session.to_json())
        logger.debug(
            "session_saved",
            user_id=session.user_id,
            role=session.role,
            scope=scope.name,
            expires_at=to_iso(session.expires_at),
        )
        return scope

    def is_session_valid(self, session: Session, now: Optional[datetime] = None) -> bool:
        current = ensure_utc(now) if now is not None else self.clock.now()
        return current < session.expires_at

    def lookup(self) -> SessionLookup:
        """Read the session, ephemeral scope first, and classify it."""

        scope, raw = self.storage.first_value(self.storage_key)
        if scope is None or raw is None:
            return SessionLookup(status=SessionStatus.ABSENT)
        try:
            session = Session.from_json(raw)
        except (ValueError, TypeError) as exc:
            logger.warning("session_parse_failed", scope=scope.name, error=str(exc))
            return SessionLookup(status=SessionStatus.CORRUPT, scope=scope.name, error=str(exc))
        if not self.is_session_valid(session):
            return SessionLookup(status=SessionStatus.EXPIRED, session=session, scope=scope.name)
        return SessionLookup(status=SessionStatus.FOUND, session=session, scope=scope.name)

    def get_session(self) -> Optional[Session]:
        result = self.lookup()
        return result.session if result.found else None

    def clear_session(self) -> None:
        self.storage.remove_everywhere(self.storage_key)

    def time_until_expiry(self, session: Session) -> timedelta:
        return session.expires_at - self.clock.now()

    def should_warn_before_expiry(
        self, session: Session, warning: timedelta = DEFAULT_EXPIRY_WARNING
    ) -> bool:
        remaining = self.time_until_expiry(session)
        return timedelta(0) < remaining <= warning

    def extend_session(self, session: Session) -> Session:
        """Re-create ``session`` with a fresh expiry and save it.

        The replacement is issued without remember-me, so it always gets the
        short lifetime and lands in the ephemeral scope.
        """

        now = self.clock.now()
        extended = replace(
            session,
            login_time=now,
            expires_at=now + SESSION_DURATION,
            remember_me=False,
        )
        self.save_session(extended)
        return extended


__all__ = [
    "SESSION_DURATION",
    "REMEMBER_ME_DURATION",
    "DEFAULT_EXPIRY_WARNING",
    "Session",
    "SessionStatus",
    "SessionLookup",
    "SessionManager",
]
