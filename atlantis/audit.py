"""Append-only audit trail of security-relevant actions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional

import structlog

from atlantis.metrics import AUDIT_ENTRIES_TOTAL
from atlantis.time_utils import Clock, SystemClock, ensure_utc, to_iso

logger = structlog.get_logger(__name__)

ACTION_LOGIN = "LOGIN"
ACTION_FAILED_LOGIN = "FAILED_LOGIN"
ACTION_LOGIN_LOCKED = "LOGIN_LOCKED"
ACTION_LOGOUT = "LOGOUT"
ACTION_SESSION_EXTENDED = "SESSION_EXTENDED"
ACTION_PATIENT_REGISTRATION = "PATIENT_REGISTRATION"
ACTION_PATIENT_SELF_REGISTRATION = "PATIENT_SELF_REGISTRATION"
ACTION_INSURANCE_VERIFICATION = "INSURANCE_VERIFICATION"
ACTION_UPDATE_EMERGENCY_CONTACT = "UPDATE_EMERGENCY_CONTACT"
ACTION_PASSWORD_RESET_REQUEST = "PASSWORD_RESET_REQUEST"
ACTION_PASSWORD_RESET = "PASSWORD_RESET"


@dataclass(frozen=True)
class AuditLogEntry:
    id: str
    user_id: str
    user_role: str
    action: str
    details: str
    timestamp: datetime
    ip_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "userRole": self.user_role,
            "action": self.action,
            "details": self.details,
            "timestamp": to_iso(self.timestamp),
        }
        if self.ip_address:
            payload["ipAddress"] = self.ip_address
        return payload


class AuditLog:
    """Insertion-ordered log; entries are never mutated or removed."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self._entries: List[AuditLogEntry] = []

    def append(
        self,
        actor_id: str,
        actor_role: str,
        action: str,
        detail: str = "",
        *,
        ip_address: Optional[str] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=f"audit{len(self._entries) + 1:06d}",
            user_id=actor_id,
            user_role=actor_role,
            action=action,
            details=detail or "",
            timestamp=self.clock.now(),
            ip_address=ip_address,
        )
        self._entries.append(entry)
        AUDIT_ENTRIES_TOTAL.labels(action=action).inc()
        logger.info(
            "audit_log_appended",
            audit_id=entry.id,
            user_id=actor_id,
            user_role=actor_role,
            action=action,
        )
        return entry

    def entries(self) -> List[AuditLogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AuditLogEntry]:
        return iter(list(self._entries))


def filter_entries(
    entries: Iterable[AuditLogEntry],
    *,
    actor_id: Optional[str] = None,
    role: Optional[str] = None,
    action: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> List[AuditLogEntry]:
    """Select entries for display, preserving their order."""

    start = ensure_utc(since) if since is not None else None
    end = ensure_utc(until) if until is not None else None
    wanted_action = action.upper() if action else None
    selected: List[AuditLogEntry] = []
    for entry in entries:
        if actor_id and entry.user_id != actor_id:
            continue
        if role and entry.user_role != role:
            continue
        if wanted_action and entry.action != wanted_action:
            continue
        if start is not None and entry.timestamp < start:
            continue
        if end is not None and entry.timestamp > end:
            continue
        selected.append(entry)
    return selected


__all__ = [
    "ACTION_LOGIN",
    "ACTION_FAILED_LOGIN",
    "ACTION_LOGIN_LOCKED",
    "ACTION_LOGOUT",
    "ACTION_SESSION_EXTENDED",
    "ACTION_PATIENT_REGISTRATION",
    "ACTION_PATIENT_SELF_REGISTRATION",
    "ACTION_INSURANCE_VERIFICATION",
    "ACTION_UPDATE_EMERGENCY_CONTACT",
    "ACTION_PASSWORD_RESET_REQUEST",
    "ACTION_PASSWORD_RESET",
    "AuditLogEntry",
    "AuditLog",
    "filter_entries",
]
