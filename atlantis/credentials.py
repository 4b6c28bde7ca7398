"""In-memory credential store for patients, providers and receptionists."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import structlog

from atlantis.exceptions import DuplicateUsernameError, UnknownRoleError
from atlantis.lockout import lock_until_after_failure
from atlantis.time_utils import Clock, SystemClock, parse_iso

logger = structlog.get_logger(__name__)

ROLE_PATIENT = "patient"
ROLE_PROVIDER = "provider"
ROLE_RECEPTIONIST = "receptionist"
ROLES = (ROLE_PATIENT, ROLE_PROVIDER, ROLE_RECEPTIONIST)

_ID_PREFIXES = {
    ROLE_PATIENT: "pat",
    ROLE_PROVIDER: "prov",
    ROLE_RECEPTIONIST: "rec",
}


def normalize_role(role: str) -> str:
    """Return ``role`` if it is one of the three portal roles."""

    value = (role or "").strip().lower()
    if value not in ROLES:
        raise UnknownRoleError(role)
    return value


@dataclass
class Credential:
    """Login record for one user of any role."""

    id: str
    username: str
    password: str  # plaintext stand-in for a hash
    role: str
    full_name: str
    email: str = ""
    phone: str = ""
    is_active: bool = True
    failed_login_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_login: Optional[datetime] = None
    profile: Dict[str, Any] = field(default_factory=dict)

    def public_dict(self) -> Dict[str, Any]:
        """Identity fields safe to hand to a client (no password)."""

        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "fullName": self.full_name,
            "email": self.email,
            "isActive": self.is_active,
        }


class CredentialStore:
    """Three role-scoped sub-stores sharing one username namespace."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self._stores: Dict[str, Dict[str, Credential]] = {role: {} for role in ROLES}

    def _role_store(self, role: str) -> Dict[str, Credential]:
        return self._stores[normalize_role(role)]

    def add(self, credential: Credential) -> Credential:
        role = normalize_role(credential.role)
        if not self.is_username_globally_unique(credential.username):
            raise DuplicateUsernameError(credential.username)
        credential.role = role
        self._stores[role][credential.username] = credential
        return credential

    def all(self, role: Optional[str] = None) -> List[Credential]:
        if role is not None:
            return list(self._role_store(role).values())
        return [cred for store in self._stores.values() for cred in store.values()]

    def __iter__(self) -> Iterator[Credential]:
        return iter(self.all())

    def __len__(self) -> int:
        return sum(len(store) for store in self._stores.values())

    def find_by_username(self, role: str, username: str) -> Optional[Credential]:
        """Case-sensitive lookup of an active credential within one role."""

        credential = self._role_store(role).get(username)
        if credential is None or not credential.is_active:
            return None
        return credential

    def find_any(self, username: str) -> Optional[Credential]:
        """Lookup across all roles, inactive credentials included."""

        for store in self._stores.values():
            credential = store.get(username)
            if credential is not None:
                return credential
        return None

    def find_by_id(self, user_id: str) -> Optional[Credential]:
        for credential in self.all():
            if credential.id == user_id:
                return credential
        return None

    def is_username_globally_unique(self, username: str) -> bool:
        return self.find_any(username) is None

    def is_email_unique(self, email: str, exclude_id: Optional[str] = None) -> bool:
        """Patient emails must be unique among patients."""

        for credential in self._stores[ROLE_PATIENT].values():
            if credential.email == email and credential.id != exclude_id:
                return False
        return True

    def next_id(self, role: str) -> str:
        role = normalize_role(role)
        prefix = _ID_PREFIXES[role]
        taken = {cred.id for cred in self._stores[role].values()}
        ordinal = len(taken) + 1
        candidate = f"{prefix}{ordinal:03d}"
        while candidate in taken:
            ordinal += 1
            candidate = f"{prefix}{ordinal:03d}"
        return candidate

    def record_failed_attempt(self, role: str, username: str) -> Optional[Credential]:
        """Increment the failure counter and arm the lock at the threshold."""

        credential = self._role_store(role).get(username)
        if credential is None:
            return None
        now = self.clock.now()
        credential.failed_login_attempts += 1
        lock_until = lock_until_after_failure(credential.failed_login_attempts, now)
        if lock_until is not None:
            credential.locked_until = lock_until
            logger.warning(
                "account_locked",
                role=credential.role,
                user_id=credential.id,
                attempts=credential.failed_login_attempts,
                locked_until=lock_until.isoformat(),
            )
        return credential

    def record_successful_login(self, role: str, username: str) -> Optional[Credential]:
        credential = self._role_store(role).get(username)
        if credential is None:
            return None
        credential.failed_login_attempts = 0
        credential.locked_until = None
        credential.last_login = self.clock.now()
        return credential

    def deactivate(self, role: str, username: str) -> bool:
        credential = self._role_store(role).get(username)
        if credential is None:
            return False
        credential.is_active = False
        return True


_DEMO_RECEPTIONISTS: List[Dict[str, Any]] = [
    {
        "id": "rec001",
        "username": "receptionist1",
        "password": "Recept123!",
        "full_name": "Sarah Johnson",
        "email": "sarah.johnson@atlantishms.com",
        "phone": "(555) 123-4567",
        "last_login": "2025-07-13T10:30:00Z",
    },
    {
        "id": "rec002",
        "username": "frontdesk",
        "password": "FrontDesk456!",
        "full_name": "Maria Rodriguez",
        "email": "maria.rodriguez@atlantishms.com",
        "phone": "(555) 234-5678",
    },
]

_DEMO_PROVIDERS: List[Dict[str, Any]] = [
    {
        "id": "prov001",
        "username": "drsmith",
        "password": "Doctor123!",
        "full_name": "Dr. John Smith",
        "email": "john.smith@atlantishms.com",
        "phone": "(555) 345-6789",
        "profile": {"specialty": "Family Medicine", "licenseNumber": "MD123456"},
        "last_login": "2025-07-13T08:15:00Z",
    },
    {
        "id": "prov002",
        "username": "drwilson",
        "password": "Provider456!",
        "full_name": "Dr. Emily Wilson",
        "email": "emily.wilson@atlantishms.com",
        "phone": "(555) 456-7890",
        "profile": {"specialty": "Cardiology", "licenseNumber": "MD789012"},
    },
]

_DEMO_PATIENTS: List[Dict[str, Any]] = [
    {
        "id": "pat001",
        "username": "johndoe",
        "password": "Patient123!",
        "full_name": "John Doe",
        "email": "john.doe@email.com",
        "phone": "(555) 567-8901",
        "profile": {
            "dateOfBirth": "1985-03-15",
            "insuranceProvider": "Blue Cross Blue Shield",
            "emergencyContact": {
                "name": "Jane Doe",
                "relation": "Spouse",
                "phone": "(555) 678-9012",
                "email": "jane.doe@email.com",
            },
            "isVerified": True,
            "registrationDate": "2025-07-01T09:00:00Z",
        },
    },
]


def seed_demo_credentials(store: CredentialStore) -> CredentialStore:
    """Load the demo accounts used by the portal login pages."""

    for role, records in (
        (ROLE_RECEPTIONIST, _DEMO_RECEPTIONISTS),
        (ROLE_PROVIDER, _DEMO_PROVIDERS),
        (ROLE_PATIENT, _DEMO_PATIENTS),
    ):
        for record in records:
            data = copy.deepcopy(record)
            last_login = data.pop("last_login", None)
            store.add(
                Credential(
                    role=role,
                    last_login=parse_iso(last_login) if last_login else None,
                    **data,
                )
            )
    logger.info("demo_credentials_seeded", count=len(store))
    return store


__all__ = [
    "ROLE_PATIENT",
    "ROLE_PROVIDER",
    "ROLE_RECEPTIONIST",
    "ROLES",
    "normalize_role",
    "Credential",
    "CredentialStore",
    "seed_demo_credentials",
]
