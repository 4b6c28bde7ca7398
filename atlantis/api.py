"""FastAPI routes standing in for the portal's login and registration pages.

One application instance models one client: its session lives in the
in-process storage scopes owned by the app's :class:`AuthService`.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from atlantis import __version__
from atlantis.audit import filter_entries
from atlantis.auth import CODE_ACCOUNT_LOCKED, CODE_VALIDATION_ERROR, AuthService, build_auth_service
from atlantis.config import AuthSettings
from atlantis.credentials import ROLE_PATIENT, ROLE_PROVIDER, ROLE_RECEPTIONIST
from atlantis.exceptions import SessionRequiredError, UnknownRoleError
from atlantis.managers import AccountRecovery, InsuranceVerifier, PatientManager
from atlantis.sessions import Session
from atlantis.time_utils import Clock, Delay, to_iso

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def require_roles(*roles: str) -> Callable[[Request], Session]:
    """Dependency returning the live session when its role is allowed."""

    def checker(request: Request) -> Session:
        service = get_service(request)
        try:
            session = service.require_session()
        except SessionRequiredError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"error": str(exc), "code": "SESSION_REQUIRED", "status": exc.status},
            ) from exc
        if roles and session.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "Insufficient permissions", "code": "FORBIDDEN"},
            )
        return session

    return checker


def _validation_error(errors: Dict[str, str]) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "error": "Please correct the highlighted fields",
            "code": CODE_VALIDATION_ERROR,
            "fieldErrors": errors,
        },
    )


@router.get("/health", tags=["system"])
async def health() -> Dict[str, Any]:
    return {"status": "ok", "version": __version__}


@router.get("/api/auth/policy", tags=["auth"])
async def auth_policy(service: AuthService = Depends(get_service)) -> Dict[str, Any]:
    """Expose lockout guardrails to the login pages."""

    return service.policy()


@router.post("/api/auth/{role}/login", tags=["auth"])
def login(
    role: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    service: AuthService = Depends(get_service),
) -> Dict[str, Any]:
    payload = payload or {}
    try:
        result = service.login(
            role,
            payload.get("username") or "",
            payload.get("password") or "",
            remember_me=payload.get("rememberMe") or False,
        )
    except UnknownRoleError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": str(exc), "code": "UNKNOWN_ROLE"},
        ) from exc

    if result.success and result.session is not None:
        return {
            "success": True,
            "session": result.session.to_dict(),
            "redirect": f"/{result.session.role}/dashboard",
        }
    if result.code == CODE_VALIDATION_ERROR:
        status_code = 422
    elif result.code == CODE_ACCOUNT_LOCKED:
        status_code = status.HTTP_423_LOCKED
    else:
        status_code = status.HTTP_401_UNAUTHORIZED
    raise HTTPException(status_code=status_code, detail=result.error_detail())


@router.post("/api/auth/logout", tags=["auth"])
async def logout(service: AuthService = Depends(get_service)) -> Dict[str, Any]:
    session = service.logout()
    return {"success": True, "userId": session.user_id if session else None}


@router.get("/api/auth/session", tags=["auth"])
async def current_session(service: AuthService = Depends(get_service)) -> Dict[str, Any]:
    lookup = service.sessions.lookup()
    if not lookup.found or lookup.session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "No active session",
                "code": "SESSION_REQUIRED",
                "status": lookup.status.value,
            },
        )
    session = lookup.session
    return {
        "session": session.to_dict(),
        "scope": lookup.scope,
        "expiresInSeconds": int(service.sessions.time_until_expiry(session).total_seconds()),
        "showTimeoutWarning": service.should_warn(session),
    }


@router.post("/api/auth/session/extend", tags=["auth"])
async def extend_session(
    session: Session = Depends(require_roles()),
    service: AuthService = Depends(get_service),
) -> Dict[str, Any]:
    extended = service.extend_session()
    if extended is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "No active session", "code": "SESSION_REQUIRED"},
        )
    return {"session": extended.to_dict()}


@router.get("/api/audit", tags=["audit"])
async def audit_log(
    userId: Optional[str] = None,
    role: Optional[str] = None,
    action: Optional[str] = None,
    session: Session = Depends(require_roles(ROLE_PROVIDER, ROLE_RECEPTIONIST)),
    service: AuthService = Depends(get_service),
) -> Dict[str, Any]:
    entries = filter_entries(service.audit.entries(), actor_id=userId, role=role, action=action)
    return {"entries": [entry.to_dict() for entry in entries], "total": len(entries)}


@router.post("/api/patients/register", tags=["patients"], status_code=status.HTTP_201_CREATED)
async def self_register(
    request: Request, payload: Optional[Dict[str, Any]] = Body(default=None)
) -> Dict[str, Any]:
    payload = payload or {}
    credential, errors = request.app.state.patients.self_register(payload)
    if credential is None:
        raise _validation_error(errors)
    return {"success": True, "patient": credential.public_dict()}


@router.post("/api/receptionist/patients", tags=["receptionist"], status_code=status.HTTP_201_CREATED)
async def register_patient(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    session: Session = Depends(require_roles(ROLE_RECEPTIONIST)),
) -> Dict[str, Any]:
    payload = payload or {}
    credential, errors = request.app.state.patients.register_patient(payload, registered_by=session)
    if credential is None:
        raise _validation_error(errors)
    return {"success": True, "patient": credential.public_dict()}


@router.post("/api/receptionist/insurance/verify", tags=["receptionist"])
async def verify_insurance(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    session: Session = Depends(require_roles(ROLE_RECEPTIONIST)),
) -> Dict[str, Any]:
    payload = payload or {}
    result = request.app.state.insurance.verify(
        session, payload.get("provider") or "", payload.get("policyNumber") or ""
    )
    if result.get("fieldErrors"):
        raise _validation_error(result["fieldErrors"])
    return result


@router.get("/api/patients/me/emergency-contact", tags=["patients"])
async def get_emergency_contact(
    request: Request, session: Session = Depends(require_roles(ROLE_PATIENT))
) -> Dict[str, Any]:
    contact = request.app.state.patients.get_emergency_contact(session.user_id)
    return {"emergencyContact": contact}


@router.put("/api/patients/me/emergency-contact", tags=["patients"])
async def update_emergency_contact(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    session: Session = Depends(require_roles(ROLE_PATIENT)),
) -> Dict[str, Any]:
    payload = payload or {}
    contact, errors = request.app.state.patients.update_emergency_contact(session, payload)
    if contact is None:
        raise _validation_error(errors)
    return {"success": True, "emergencyContact": contact}


@router.post("/api/account/recover", tags=["account"])
async def recover_account(
    request: Request, payload: Optional[Dict[str, Any]] = Body(default=None)
) -> Dict[str, Any]:
    payload = payload or {}
    result = request.app.state.recovery.request_reset(
        email=payload.get("email"), phone=payload.get("phone")
    )
    if result.get("fieldErrors"):
        raise _validation_error(result["fieldErrors"])
    if not result["success"]:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": result["error"], "code": "NO_MATCH"},
        )
    return result


@router.post("/api/account/reset-password", tags=["account"])
async def reset_password(
    request: Request, payload: Optional[Dict[str, Any]] = Body(default=None)
) -> Dict[str, Any]:
    payload = payload or {}
    ok, errors = request.app.state.recovery.reset_password(
        payload.get("token") or "",
        payload.get("newPassword") or "",
        payload.get("confirmPassword") or "",
    )
    if not ok:
        raise _validation_error(errors)
    return {"success": True}


@router.get("/metrics", response_model=None)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(
    settings: Optional[AuthSettings] = None,
    clock: Optional[Clock] = None,
    delay: Optional[Delay] = None,
    service: Optional[AuthService] = None,
) -> FastAPI:
    """Build an app with its own stores, session scopes and audit log."""

    service = service or build_auth_service(settings=settings, clock=clock, delay=delay)
    app = FastAPI(title="Atlantis HMS", version=__version__)
    app.state.auth_service = service
    app.state.patients = PatientManager(service.store, service.audit, clock=service.clock)
    app.state.insurance = InsuranceVerifier(service.audit, clock=service.clock)
    app.state.recovery = AccountRecovery(service.store, service.audit, clock=service.clock)
    app.include_router(router)
    logger.info(
        "app_created",
        credentials=len(service.store),
        started_at=to_iso(service.clock.now()),
    )
    return app


__all__ = ["router", "get_service", "require_roles", "create_app"]
