"""Form validation for the portal's login, registration and profile forms.

Validation failures are never raised out of the flows: they are turned into
a ``{field: message}`` map the caller shows next to each input.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_REGEX = re.compile(r"^[\+]?[1-9][\d]{0,15}$|^\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}$")
NAME_REGEX = re.compile(r"^[a-zA-Z\s'-]+$")
USERNAME_REGEX = re.compile(r"^[a-zA-Z0-9_.-]+$")
PASSWORD_SPECIAL_REGEX = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")

MAX_NAME_LENGTH = 128
MAX_USERNAME_LENGTH = 128
MAX_EMAIL_LENGTH = 256
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 256

FormT = TypeVar("FormT", bound=BaseModel)


def check_password_policy(password: str) -> str:
    """Return ``password`` or raise ``ValueError`` naming the first unmet rule."""

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError("Password must be at least 8 characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValueError("Password must not exceed 256 characters")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain at least one number")
    if not PASSWORD_SPECIAL_REGEX.search(password):
        raise ValueError("Password must contain at least one special character")
    return password


def _require(value: Any, message: str) -> str:
    text = "" if value is None else str(value)
    if not text.strip():
        raise ValueError(message)
    return text


def _check_email(value: str) -> str:
    if len(value) > MAX_EMAIL_LENGTH:
        raise ValueError("Email must not exceed 256 characters")
    if not EMAIL_REGEX.match(value):
        raise ValueError("Please enter a valid email address")
    return value


def _check_phone(value: str) -> str:
    if not PHONE_REGEX.match(value):
        raise ValueError("Please enter a valid phone number")
    return value


def _check_person_name(value: str, label: str = "Name") -> str:
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"{label} must not exceed 128 characters")
    if not NAME_REGEX.match(value):
        raise ValueError(f"{label} can only contain letters, spaces, hyphens, and apostrophes")
    return value


class _Form(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", validate_default=True)


class LoginForm(_Form):
    username: str = ""
    password: str = ""
    remember_me: bool = Field(default=False, alias="rememberMe")

    @field_validator("username", mode="before")
    @classmethod
    def _username(cls, value: Any) -> str:
        text = _require(value, "Username is required")
        if len(text) > MAX_USERNAME_LENGTH:
            raise ValueError("Username must not exceed 128 characters")
        return text

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value: Any) -> str:
        return _require(value, "Password is required")


class PatientRegistrationForm(_Form):
    """Receptionist-assisted patient registration."""

    full_name: str = Field(default="", alias="fullName")
    date_of_birth: str = Field(default="", alias="dateOfBirth")
    email: str = ""
    phone: str = ""
    insurance_provider: Optional[str] = Field(default=None, alias="insuranceProvider")
    policy_number: Optional[str] = Field(default=None, alias="policyNumber")
    username: str = ""
    password: str = ""

    @field_validator("full_name", mode="before")
    @classmethod
    def _full_name(cls, value: Any) -> str:
        return _check_person_name(_require(value, "Full name is required"), "Full name")

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _date_of_birth(cls, value: Any) -> str:
        text = _require(value, "Date of birth is required")
        try:
            born = date.fromisoformat(text)
        except ValueError:
            raise ValueError("Please enter a valid date of birth") from None
        today = date.today()
        age = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
        if age < 0 or age > 150:
            raise ValueError("Please enter a valid date of birth")
        return text

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> str:
        return _check_email(_require(value, "Email is required"))

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, value: Any) -> str:
        return _check_phone(_require(value, "Phone number is required"))

    @field_validator("insurance_provider", "policy_number", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        if value is None or not str(value).strip():
            return None
        return str(value)

    @field_validator("username", mode="before")
    @classmethod
    def _username(cls, value: Any) -> str:
        text = _require(value, "Username is required")
        if len(text) > MAX_USERNAME_LENGTH:
            raise ValueError("Username must not exceed 128 characters")
        if not USERNAME_REGEX.match(text):
            raise ValueError(
                "Username can only contain letters, numbers, underscores, dots, and hyphens"
            )
        return text

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value: Any) -> str:
        return check_password_policy(_require(value, "Password is required"))


class SelfRegistrationForm(_Form):
    """Patient self-registration from the public sign-up page."""

    name: str = ""
    company_name: Optional[str] = Field(default=None, alias="companyName")
    email: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        text = _require(value, "Name is required")
        if len(text) > MAX_NAME_LENGTH:
            raise ValueError("Name must be 128 characters or less")
        return text

    @field_validator("company_name", mode="before")
    @classmethod
    def _company(cls, value: Any) -> Optional[str]:
        if value is None or not str(value).strip():
            return None
        if len(str(value)) > 256:
            raise ValueError("Company name must be 256 characters or less")
        return str(value)

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> str:
        return _check_email(_require(value, "Email is required"))

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value: Any) -> str:
        return check_password_policy(_require(value, "Password is required"))

    @field_validator("confirm_password", mode="before")
    @classmethod
    def _confirm(cls, value: Any, info: ValidationInfo) -> str:
        text = _require(value, "Please confirm your password")
        password = info.data.get("password")
        if password is not None and text != password:
            raise ValueError("Passwords don't match")
        return text


class EmergencyContactForm(_Form):
    name: str = ""
    relation: str = ""
    phone: str = ""
    email: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        return _check_person_name(_require(value, "Emergency contact name is required"))

    @field_validator("relation", mode="before")
    @classmethod
    def _relation(cls, value: Any) -> str:
        return _require(value, "Relationship is required")

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, value: Any) -> str:
        return _check_phone(_require(value, "Contact phone number is required"))

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> Optional[str]:
        if value is None or not str(value).strip():
            return None
        return _check_email(str(value))


class AccountRecoveryForm(_Form):
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> Optional[str]:
        if value is None or not str(value).strip():
            return None
        return _check_email(str(value))

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, value: Any) -> Optional[str]:
        if value is None or not str(value).strip():
            return None
        return _check_phone(str(value))

    @model_validator(mode="after")
    def _one_contact(self) -> "AccountRecoveryForm":
        if not self.email and not self.phone:
            raise ValueError("Please provide an email address or phone number")
        return self


class PasswordResetForm(_Form):
    token: str = ""
    new_password: str = Field(default="", alias="newPassword")
    confirm_password: str = Field(default="", alias="confirmPassword")

    @field_validator("token", mode="before")
    @classmethod
    def _token(cls, value: Any) -> str:
        return _require(value, "Reset token is required")

    @field_validator("new_password", mode="before")
    @classmethod
    def _new_password(cls, value: Any) -> str:
        return check_password_policy(_require(value, "Password is required"))

    @field_validator("confirm_password", mode="before")
    @classmethod
    def _confirm(cls, value: Any, info: ValidationInfo) -> str:
        text = "" if value is None else str(value)
        password = info.data.get("new_password")
        if password is not None and text != password:
            raise ValueError("Passwords don't match")
        return text


def _error_message(error: Dict[str, Any]) -> str:
    message = str(error.get("msg", "Invalid value"))
    prefix = "Value error, "
    if message.startswith(prefix):
        message = message[len(prefix):]
    return message


def validate_form(form_cls: Type[FormT], data: Any) -> Tuple[Optional[FormT], Dict[str, str]]:
    """Return ``(form, {})`` on success or ``(None, field_errors)`` on failure."""

    payload = data if isinstance(data, dict) else {}
    try:
        return form_cls.model_validate(payload), {}
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for error in exc.errors():
            path = ".".join(str(part) for part in error.get("loc", ())) or "form"
            errors.setdefault(path, _error_message(error))
        return None, errors


__all__ = [
    "EMAIL_REGEX",
    "PHONE_REGEX",
    "check_password_policy",
    "LoginForm",
    "PatientRegistrationForm",
    "SelfRegistrationForm",
    "EmergencyContactForm",
    "AccountRecoveryForm",
    "PasswordResetForm",
    "validate_form",
]
