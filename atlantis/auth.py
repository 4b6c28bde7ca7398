"""Login flow tying together credentials, lockout, sessions and the audit log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import structlog

from atlantis.audit import (
    ACTION_FAILED_LOGIN,
    ACTION_LOGIN,
    ACTION_LOGIN_LOCKED,
    ACTION_LOGOUT,
    ACTION_SESSION_EXTENDED,
    AuditLog,
)
from atlantis.config import AuthSettings, get_auth_settings
from atlantis.credentials import CredentialStore, normalize_role, seed_demo_credentials
from atlantis.exceptions import SessionRequiredError
from atlantis.lockout import (
    ACCOUNT_LOCKED_NOW_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    LOCKOUT_DURATION_SECONDS,
    LOCKOUT_THRESHOLD,
    invalid_credentials_message,
    is_locked,
    lockout_message,
    remaining_attempts,
    remaining_lock_minutes,
)
from atlantis.metrics import LOGIN_ATTEMPTS_TOTAL
from atlantis.sessions import Session, SessionManager
from atlantis.storage import ClientStorage
from atlantis.time_utils import Clock, Delay, NoDelay, SleepDelay, SystemClock, to_iso
from atlantis.validation import LoginForm, validate_form

logger = structlog.get_logger(__name__)

CODE_INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
CODE_ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
CODE_VALIDATION_ERROR = "VALIDATION_ERROR"

_ROLE_LABELS = {
    "patient": "patient",
    "provider": "service provider",
    "receptionist": "receptionist",
}


@dataclass
class LoginResult:
    success: bool
    session: Optional[Session] = None
    code: Optional[str] = None
    message: Optional[str] = None
    field_errors: Dict[str, str] = field(default_factory=dict)
    locked_until: Optional[datetime] = None
    remaining_attempts: Optional[int] = None
    remaining_minutes: Optional[int] = None

    def error_detail(self) -> Dict[str, Any]:
        """Body used by the HTTP layer when the attempt failed."""

        detail: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.field_errors:
            detail["fieldErrors"] = dict(self.field_errors)
        if self.remaining_attempts is not None:
            detail["remainingAttempts"] = self.remaining_attempts
        if self.remaining_minutes is not None:
            detail["remainingMinutes"] = self.remaining_minutes
        if self.locked_until is not None:
            detail["lockedUntil"] = to_iso(self.locked_until)
        if self.code == CODE_ACCOUNT_LOCKED:
            detail["lockoutThreshold"] = LOCKOUT_THRESHOLD
            detail["lockoutDurationSeconds"] = LOCKOUT_DURATION_SECONDS
        return detail


class AuthService:
    """Role-scoped login, logout and session access for one client."""

    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionManager,
        audit: AuditLog,
        clock: Optional[Clock] = None,
        delay: Optional[Delay] = None,
        settings: Optional[AuthSettings] = None,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.audit = audit
        self.clock = clock or sessions.clock
        self.delay = delay or NoDelay()
        self.settings = settings or AuthSettings()

    def _fail(self, role: str, outcome: str, result: LoginResult) -> LoginResult:
        LOGIN_ATTEMPTS_TOTAL.labels(role=role, outcome=outcome).inc()
        return result

    def login(
        self, role: str, username: str, password: str, remember_me: Any = False
    ) -> LoginResult:
        """Run one login attempt.

        ``remember_me`` is parsed by :class:`LoginForm`, so raw client values
        such as ``"false"`` are accepted and unparseable ones come back as a
        field error.
        """

        role = normalize_role(role)
        form, errors = validate_form(
            LoginForm,
            {"username": username, "password": password, "rememberMe": remember_me},
        )
        if form is None:
            return self._fail(
                role,
                "invalid_form",
                LoginResult(
                    success=False,
                    code=CODE_VALIDATION_ERROR,
                    message="Please correct the highlighted fields",
                    field_errors=errors,
                ),
            )

        self.delay(self.settings.simulated_delay_seconds)

        credential = self.store.find_by_username(role, form.username)
        if credential is None:
            logger.info("login_failed", role=role, reason="unknown_user")
            return self._fail(
                role,
                "invalid_credentials",
                LoginResult(
                    success=False,
                    code=CODE_INVALID_CREDENTIALS,
                    message=INVALID_CREDENTIALS_MESSAGE,
                ),
            )

        now = self.clock.now()
        if is_locked(credential, now):
            minutes = remaining_lock_minutes(credential, now)
            self.audit.append(
                credential.id,
                role,
                ACTION_LOGIN_LOCKED,
                f"Login attempt on locked account: {credential.username}",
            )
            logger.info("login_locked", role=role, user_id=credential.id, remaining_minutes=minutes)
            return self._fail(
                role,
                "locked",
                LoginResult(
                    success=False,
                    code=CODE_ACCOUNT_LOCKED,
                    message=lockout_message(minutes),
                    locked_until=credential.locked_until,
                    remaining_minutes=minutes,
                ),
            )

        if credential.password != form.password:
            self.store.record_failed_attempt(role, credential.username)
            self.audit.append(
                credential.id,
                role,
                ACTION_FAILED_LOGIN,
                f"Failed login attempt from username: {credential.username}",
            )
            attempts = credential.failed_login_attempts
            logger.info(
                "login_failed",
                role=role,
                user_id=credential.id,
                reason="invalid_password",
                attempts=attempts,
            )
            if is_locked(credential, now):
                return self._fail(
                    role,
                    "locked",
                    LoginResult(
                        success=False,
                        code=CODE_ACCOUNT_LOCKED,
                        message=ACCOUNT_LOCKED_NOW_MESSAGE,
                        locked_until=credential.locked_until,
                        remaining_attempts=0,
                        remaining_minutes=remaining_lock_minutes(credential, now),
                    ),
                )
            left = remaining_attempts(attempts)
            return self._fail(
                role,
                "invalid_credentials",
                LoginResult(
                    success=False,
                    code=CODE_INVALID_CREDENTIALS,
                    message=invalid_credentials_message(left),
                    remaining_attempts=left,
                ),
            )

        self.store.record_successful_login(role, credential.username)
        session = self.sessions.create_session(credential, remember_me=form.remember_me)
        self.sessions.save_session(session)
        detail = f"Successful login for {_ROLE_LABELS[role]}: {credential.full_name}"
        if form.remember_me:
            detail += " (Remember Me enabled)"
        self.audit.append(credential.id, role, ACTION_LOGIN, detail)
        LOGIN_ATTEMPTS_TOTAL.labels(role=role, outcome="success").inc()
        logger.info(
            "login_succeeded",
            role=role,
            user_id=credential.id,
            remember_me=form.remember_me,
        )
        return LoginResult(success=True, session=session)

    def logout(self) -> Optional[Session]:
        session = self.sessions.get_session()
        if session is not None:
            self.audit.append(
                session.user_id,
                session.role,
                ACTION_LOGOUT,
                f"User logged out: {session.username}",
            )
            logger.info("logout", role=session.role, user_id=session.user_id)
        self.sessions.clear_session()
        return session

    def current_session(self, role: Optional[str] = None) -> Optional[Session]:
        session = self.sessions.get_session()
        if session is None:
            return None
        if role is not None and session.role != normalize_role(role):
            return None
        return session

    def require_session(self, role: Optional[str] = None) -> Session:
        """Return the live session for ``role`` or raise ``SessionRequiredError``."""

        lookup = self.sessions.lookup()
        if not lookup.found or lookup.session is None:
            raise SessionRequiredError(role=role, status=lookup.status.value)
        if role is not None and lookup.session.role != normalize_role(role):
            raise SessionRequiredError(role=role, status="forbidden")
        return lookup.session

    def extend_session(self) -> Optional[Session]:
        session = self.sessions.get_session()
        if session is None:
            return None
        extended = self.sessions.extend_session(session)
        self.audit.append(
            extended.user_id,
            extended.role,
            ACTION_SESSION_EXTENDED,
            "Session extended by user",
        )
        logger.info("session_extended", role=extended.role, user_id=extended.user_id)
        return extended

    def should_warn(self, session: Session) -> bool:
        warning = timedelta(minutes=self.settings.session_warning_minutes)
        return self.sessions.should_warn_before_expiry(session, warning)

    def policy(self) -> Dict[str, Any]:
        return {
            "lockoutThreshold": LOCKOUT_THRESHOLD,
            "lockoutDurationSeconds": LOCKOUT_DURATION_SECONDS,
        }


def build_auth_service(
    settings: Optional[AuthSettings] = None,
    clock: Optional[Clock] = None,
    delay: Optional[Delay] = None,
    storage: Optional[ClientStorage] = None,
) -> AuthService:
    """Wire a service with fresh stores, seeded according to ``settings``."""

    settings = settings or get_auth_settings()
    clock = clock or SystemClock()
    store = CredentialStore(clock=clock)
    if settings.seed_demo_data:
        seed_demo_credentials(store)
    sessions = SessionManager(
        storage=storage or ClientStorage(),
        clock=clock,
        storage_key=settings.session_storage_key,
    )
    audit = AuditLog(clock=clock)
    if delay is None:
        delay = SleepDelay(settings.simulated_delay_seconds)
    return AuthService(store, sessions, audit, clock=clock, delay=delay, settings=settings)


__all__ = [
    "CODE_INVALID_CREDENTIALS",
    "CODE_ACCOUNT_LOCKED",
    "CODE_VALIDATION_ERROR",
    "LoginResult",
    "AuthService",
    "build_auth_service",
]
