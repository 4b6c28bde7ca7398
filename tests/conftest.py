import os
import sys
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

# Ensure the repository root is on sys.path so tests can import the atlantis package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from atlantis.api import create_app
from atlantis.audit import AuditLog
from atlantis.auth import AuthService
from atlantis.config import AuthSettings, get_auth_settings
from atlantis.credentials import CredentialStore, seed_demo_credentials
from atlantis.sessions import SessionManager
from atlantis.storage import ClientStorage
from atlantis.time_utils import ManualClock, NoDelay

START = datetime(2025, 7, 14, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_auth_settings.cache_clear()
    yield
    get_auth_settings.cache_clear()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture()
def store(clock) -> CredentialStore:
    return seed_demo_credentials(CredentialStore(clock=clock))


@pytest.fixture()
def storage() -> ClientStorage:
    return ClientStorage()


@pytest.fixture()
def sessions(storage, clock) -> SessionManager:
    return SessionManager(storage=storage, clock=clock)


@pytest.fixture()
def audit(clock) -> AuditLog:
    return AuditLog(clock=clock)


@pytest.fixture()
def delay() -> NoDelay:
    return NoDelay()


@pytest.fixture()
def service(store, sessions, audit, clock, delay) -> AuthService:
    return AuthService(store, sessions, audit, clock=clock, delay=delay, settings=AuthSettings())


@pytest.fixture()
def app(service):
    return create_app(service=service)


@pytest.fixture()
def api_client(app) -> TestClient:
    """Return a FastAPI test client bound to a fresh in-memory client state."""

    return TestClient(app)


@pytest.fixture()
def login(api_client):
    """Log in through the HTTP facade and return the response."""

    def _login(role, username, password, remember_me=False):
        return api_client.post(
            f'/api/auth/{role}/login',
            json={'username': username, 'password': password, 'rememberMe': remember_me},
        )

    return _login
