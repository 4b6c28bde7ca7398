"""Feature-area managers that sit on top of the credential store and audit log.

Each manager talks to the core only through credential lookup and mutation
and through :class:`~atlantis.audit.AuditLog`.  Form problems come back as
``{field: message}`` maps rather than exceptions.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import structlog

from atlantis.audit import (
    ACTION_INSURANCE_VERIFICATION,
    ACTION_PASSWORD_RESET,
    ACTION_PASSWORD_RESET_REQUEST,
    ACTION_PATIENT_REGISTRATION,
    ACTION_PATIENT_SELF_REGISTRATION,
    ACTION_UPDATE_EMERGENCY_CONTACT,
    AuditLog,
)
from atlantis.credentials import ROLE_PATIENT, Credential, CredentialStore
from atlantis.sessions import Session
from atlantis.time_utils import Clock, SystemClock, to_iso
from atlantis.validation import (
    AccountRecoveryForm,
    EmergencyContactForm,
    PasswordResetForm,
    PatientRegistrationForm,
    SelfRegistrationForm,
    validate_form,
)

logger = structlog.get_logger(__name__)

RESET_TOKEN_TTL = timedelta(minutes=15)
RECOVERY_NO_MATCH_MESSAGE = "Provided details do not match our records"

INSURANCE_ACTIVE = "active"
INSURANCE_INACTIVE = "inactive"
INSURANCE_INVALID = "invalid"


def _digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


class PatientManager:
    def __init__(self, store: CredentialStore, audit: AuditLog, clock: Optional[Clock] = None):
        self.store = store
        self.audit = audit
        self.clock = clock or SystemClock()

    def _check_unique(self, username: str, email: str) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.store.is_username_globally_unique(username):
            errors["username"] = "Username is already taken"
        if not self.store.is_email_unique(email):
            errors["email"] = "An account with this email already exists"
        return errors

    def register_patient(
        self, data: Any, registered_by: Optional[Session] = None
    ) -> Tuple[Optional[Credential], Dict[str, str]]:
        """Create an unverified patient on behalf of a receptionist."""

        form, errors = validate_form(PatientRegistrationForm, data)
        if form is None:
            return None, errors
        errors = self._check_unique(form.username, form.email)
        if errors:
            return None, errors

        profile: Dict[str, Any] = {
            "dateOfBirth": form.date_of_birth,
            "isVerified": False,
            "registrationDate": to_iso(self.clock.now()),
        }
        if form.insurance_provider:
            profile["insuranceProvider"] = form.insurance_provider
        if form.policy_number:
            profile["policyNumber"] = form.policy_number
        credential = self.store.add(
            Credential(
                id=self.store.next_id(ROLE_PATIENT),
                username=form.username,
                password=form.password,
                role=ROLE_PATIENT,
                full_name=form.full_name,
                email=form.email,
                phone=form.phone,
                profile=profile,
            )
        )
        actor_id = registered_by.user_id if registered_by else credential.id
        actor_role = registered_by.role if registered_by else ROLE_PATIENT
        self.audit.append(
            actor_id,
            actor_role,
            ACTION_PATIENT_REGISTRATION,
            f"Registered new patient: {credential.full_name} ({credential.username})",
        )
        logger.info("patient_registered", patient_id=credential.id, registered_by=actor_id)
        return credential, {}

    def self_register(self, data: Any) -> Tuple[Optional[Credential], Dict[str, str]]:
        """Sign-up page flow; the email doubles as the username."""

        form, errors = validate_form(SelfRegistrationForm, data)
        if form is None:
            return None, errors
        if self._check_unique(form.email, form.email):
            return None, {"email": "An account with this email already exists"}

        profile: Dict[str, Any] = {
            "isVerified": False,
            "registrationDate": to_iso(self.clock.now()),
        }
        if form.company_name:
            profile["companyName"] = form.company_name
        credential = self.store.add(
            Credential(
                id=self.store.next_id(ROLE_PATIENT),
                username=form.email,
                password=form.password,
                role=ROLE_PATIENT,
                full_name=form.name,
                email=form.email,
                profile=profile,
            )
        )
        self.audit.append(
            credential.id,
            ROLE_PATIENT,
            ACTION_PATIENT_SELF_REGISTRATION,
            f"Patient self-registered: {credential.full_name} ({credential.email})",
        )
        logger.info("patient_self_registered", patient_id=credential.id)
        return credential, {}

    def get_emergency_contact(self, patient_id: str) -> Optional[Dict[str, Any]]:
        credential = self.store.find_by_id(patient_id)
        if credential is None or credential.role != ROLE_PATIENT:
            return None
        contact = credential.profile.get("emergencyContact")
        return dict(contact) if contact else None

    def update_emergency_contact(
        self, session: Session, data: Any
    ) -> Tuple[Optional[Dict[str, Any]], Dict[str, str]]:
        credential = self.store.find_by_id(session.user_id)
        if credential is None or credential.role != ROLE_PATIENT:
            return None, {"form": "Patient record not found"}
        form, errors = validate_form(EmergencyContactForm, data)
        if form is None:
            return None, errors

        contact: Dict[str, Any] = {
            "name": form.name,
            "relation": form.relation,
            "phone": form.phone,
        }
        if form.email:
            contact["email"] = form.email
        credential.profile["emergencyContact"] = contact
        self.audit.append(
            credential.id,
            ROLE_PATIENT,
            ACTION_UPDATE_EMERGENCY_CONTACT,
            f"Emergency contact updated: {form.name} ({form.relation})",
        )
        return dict(contact), {}


class InsuranceVerifier:
    """Mock eligibility check keyed on the policy number text."""

    def __init__(self, audit: AuditLog, clock: Optional[Clock] = None):
        self.audit = audit
        self.clock = clock or SystemClock()

    def verify(self, session: Session, provider: str, policy_number: str) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        if not (provider or "").strip():
            errors["provider"] = "Insurance provider is required"
        if not (policy_number or "").strip():
            errors["policyNumber"] = "Policy number is required"
        if errors:
            return {"status": None, "fieldErrors": errors}

        lowered = policy_number.lower()
        if "invalid" in lowered:
            status = INSURANCE_INVALID
            message = "Policy number not found"
        elif "expired" in lowered:
            status = INSURANCE_INACTIVE
            message = "Policy has expired"
        else:
            status = INSURANCE_ACTIVE
            message = "Coverage verified"
        self.audit.append(
            session.user_id,
            session.role,
            ACTION_INSURANCE_VERIFICATION,
            f"Insurance verification for {provider} policy {policy_number}: {status}",
        )
        return {
            "status": status,
            "provider": provider,
            "policyNumber": policy_number,
            "message": message,
            "verifiedAt": to_iso(self.clock.now()),
        }


@dataclass
class ResetToken:
    token: str
    user_id: str
    expires_at: datetime


class AccountRecovery:
    def __init__(self, store: CredentialStore, audit: AuditLog, clock: Optional[Clock] = None):
        self.store = store
        self.audit = audit
        self.clock = clock or SystemClock()
        self._tokens: Dict[str, ResetToken] = {}

    def pending_tokens(self) -> int:
        return len(self._tokens)

    def _purge_expired(self, now: datetime) -> None:
        expired = [key for key, entry in self._tokens.items() if now >= entry.expires_at]
        for key in expired:
            del self._tokens[key]

    def _match_patient(self, email: Optional[str], phone: Optional[str]) -> Optional[Credential]:
        wanted_digits = _digits(phone)
        for credential in self.store.all(ROLE_PATIENT):
            if not credential.is_active:
                continue
            if email and credential.email.lower() == email.lower():
                return credential
            if wanted_digits and _digits(credential.phone) == wanted_digits:
                return credential
        return None

    def request_reset(
        self, email: Optional[str] = None, phone: Optional[str] = None
    ) -> Dict[str, Any]:
        form, errors = validate_form(AccountRecoveryForm, {"email": email, "phone": phone})
        now = self.clock.now()
        self._purge_expired(now)
        if form is None:
            return {"success": False, "fieldErrors": errors}
        credential = self._match_patient(form.email, form.phone)
        if credential is None:
            logger.info("password_reset_no_match")
            return {"success": False, "error": RECOVERY_NO_MATCH_MESSAGE}

        token = ResetToken(
            token=secrets.token_urlsafe(24),
            user_id=credential.id,
            expires_at=now + RESET_TOKEN_TTL,
        )
        self._tokens[token.token] = token
        channel = "email" if form.email else "phone"
        self.audit.append(
            credential.id,
            ROLE_PATIENT,
            ACTION_PASSWORD_RESET_REQUEST,
            f"Password reset requested via {channel}",
        )
        return {
            "success": True,
            "resetToken": token.token,
            "expiresAt": to_iso(token.expires_at),
        }

    def reset_password(
        self, token: str, new_password: str, confirm_password: str
    ) -> Tuple[bool, Dict[str, str]]:
        form, errors = validate_form(
            PasswordResetForm,
            {"token": token, "newPassword": new_password, "confirmPassword": confirm_password},
        )
        if form is None:
            return False, errors
        entry = self._tokens.get(form.token)
        if entry is None or self.clock.now() >= entry.expires_at:
            self._tokens.pop(form.token, None)
            return False, {"token": "Reset link is invalid or has expired"}
        credential = self.store.find_by_id(entry.user_id)
        if credential is None:
            self._tokens.pop(form.token, None)
            return False, {"token": "Reset link is invalid or has expired"}

        del self._tokens[form.token]
        credential.password = form.new_password
        credential.failed_login_attempts = 0
        credential.locked_until = None
        self.audit.append(
            credential.id,
            credential.role,
            ACTION_PASSWORD_RESET,
            "Password reset completed",
        )
        logger.info("password_reset_completed", user_id=credential.id)
        return True, {}


__all__ = [
    "RESET_TOKEN_TTL",
    "RECOVERY_NO_MATCH_MESSAGE",
    "INSURANCE_ACTIVE",
    "INSURANCE_INACTIVE",
    "INSURANCE_INVALID",
    "PatientManager",
    "InsuranceVerifier",
    "ResetToken",
    "AccountRecovery",
]
