"""HTTP facade tests using the FastAPI test client."""

import threading

from fastapi.testclient import TestClient

from atlantis.api import create_app
from atlantis.auth import AuthService
from atlantis.config import AuthSettings


def test_health_and_policy(api_client):
    assert api_client.get('/health').json()['status'] == 'ok'
    resp = api_client.get('/api/auth/policy')
    assert resp.json() == {'lockoutThreshold': 5, 'lockoutDurationSeconds': 900}


def test_login_success_returns_session(login, api_client):
    resp = login('provider', 'drsmith', 'Doctor123!')
    assert resp.status_code == 200
    body = resp.json()
    assert body['session']['userId'] == 'prov001'
    assert body['redirect'] == '/provider/dashboard'

    resp = api_client.get('/api/auth/session')
    assert resp.status_code == 200
    assert resp.json()['scope'] == 'ephemeral'
    assert resp.json()['session']['username'] == 'drsmith'


def test_login_invalid_credentials(login):
    resp = login('patient', 'johndoe', 'wrong')
    assert resp.status_code == 401
    detail = resp.json()['detail']
    assert detail['code'] == 'INVALID_CREDENTIALS'
    assert detail['remainingAttempts'] == 4


def test_login_lockout_returns_423(login):
    for _ in range(4):
        assert login('provider', 'drsmith', 'wrong').status_code == 401
    resp = login('provider', 'drsmith', 'wrong')
    assert resp.status_code == 423
    resp = login('provider', 'drsmith', 'Doctor123!')
    assert resp.status_code == 423
    detail = resp.json()['detail']
    assert detail['code'] == 'ACCOUNT_LOCKED'
    assert 'locked' in detail['error']
    assert detail['lockoutThreshold'] == 5


def test_login_validation_error(api_client):
    resp = api_client.post('/api/auth/patient/login', json={})
    assert resp.status_code == 422
    detail = resp.json()['detail']
    assert detail['code'] == 'VALIDATION_ERROR'
    assert detail['fieldErrors']['username'] == 'Username is required'


def test_login_unknown_role(login):
    resp = login('admin', 'drsmith', 'Doctor123!')
    assert resp.status_code == 404
    assert resp.json()['detail']['code'] == 'UNKNOWN_ROLE'


def test_session_status_reported(api_client, storage, clock, login):
    resp = api_client.get('/api/auth/session')
    assert resp.status_code == 401
    assert resp.json()['detail']['status'] == 'absent'

    login('patient', 'johndoe', 'Patient123!')
    clock.advance(hours=8)
    resp = api_client.get('/api/auth/session')
    assert resp.json()['detail']['status'] == 'expired'

    storage.ephemeral.set_item('userSession', 'garbage')
    resp = api_client.get('/api/auth/session')
    assert resp.json()['detail']['status'] == 'corrupt'


def test_logout_clears_session(api_client, login, service):
    login('patient', 'johndoe', 'Patient123!', remember_me=True)
    resp = api_client.post('/api/auth/logout')
    assert resp.json() == {'success': True, 'userId': 'pat001'}
    assert api_client.get('/api/auth/session').status_code == 401
    assert service.audit.entries()[-1].action == 'LOGOUT'


def test_extend_session(api_client, login, clock):
    login('receptionist', 'receptionist1', 'Recept123!')
    clock.advance(hours=7)
    resp = api_client.post('/api/auth/session/extend')
    assert resp.status_code == 200
    assert resp.json()['session']['rememberMe'] is False


def test_extend_requires_session(api_client):
    resp = api_client.post('/api/auth/session/extend')
    assert resp.status_code == 401
    assert resp.json()['detail']['code'] == 'SESSION_REQUIRED'


def test_audit_requires_staff_session(api_client, login):
    assert api_client.get('/api/audit').status_code == 401

    login('patient', 'johndoe', 'Patient123!')
    assert api_client.get('/api/audit').status_code == 403

    login('provider', 'drsmith', 'Doctor123!')
    resp = api_client.get('/api/audit', params={'action': 'login'})
    assert resp.status_code == 200
    body = resp.json()
    assert body['total'] == 2
    assert [entry['userId'] for entry in body['entries']] == ['pat001', 'prov001']


def test_receptionist_registers_patient(api_client, login):
    payload = {
        'fullName': 'Mary Major',
        'dateOfBirth': '1990-05-01',
        'email': 'mary@example.com',
        'phone': '(555) 111-2222',
        'username': 'mmajor',
        'password': 'Secure123!',
    }
    assert api_client.post('/api/receptionist/patients', json=payload).status_code == 401

    login('receptionist', 'receptionist1', 'Recept123!')
    resp = api_client.post('/api/receptionist/patients', json=payload)
    assert resp.status_code == 201
    assert resp.json()['patient']['username'] == 'mmajor'
    assert 'password' not in resp.json()['patient']

    resp = api_client.post('/api/receptionist/patients', json=payload)
    assert resp.status_code == 422
    assert resp.json()['detail']['fieldErrors']['username'] == 'Username is already taken'


def test_insurance_verify_endpoint(api_client, login):
    login('receptionist', 'frontdesk', 'FrontDesk456!')
    resp = api_client.post(
        '/api/receptionist/insurance/verify',
        json={'provider': 'Aetna', 'policyNumber': 'expired-77'},
    )
    assert resp.status_code == 200
    assert resp.json()['status'] == 'inactive'


def test_self_registration_endpoint(api_client):
    resp = api_client.post(
        '/api/patients/register',
        json={
            'name': 'Sam Lee',
            'email': 'sam@example.com',
            'password': 'Secure123!',
            'confirmPassword': 'Secure123!',
        },
    )
    assert resp.status_code == 201
    assert resp.json()['patient']['role'] == 'patient'


def test_emergency_contact_endpoints(api_client, login):
    login('patient', 'johndoe', 'Patient123!')
    resp = api_client.get('/api/patients/me/emergency-contact')
    assert resp.json()['emergencyContact']['name'] == 'Jane Doe'

    resp = api_client.put(
        '/api/patients/me/emergency-contact',
        json={'name': 'Jim Doe', 'relation': 'Brother', 'phone': '(555) 222-3333'},
    )
    assert resp.status_code == 200
    assert resp.json()['emergencyContact']['relation'] == 'Brother'

    resp = api_client.put('/api/patients/me/emergency-contact', json={'name': 'Jim Doe'})
    assert resp.status_code == 422


def test_account_recovery_endpoints(api_client, login):
    resp = api_client.post('/api/account/recover', json={'email': 'nobody@example.com'})
    assert resp.status_code == 404
    assert resp.json()['detail']['error'] == 'Provided details do not match our records'

    resp = api_client.post('/api/account/recover', json={})
    assert resp.status_code == 422

    token = api_client.post('/api/account/recover', json={'email': 'john.doe@email.com'}).json()['resetToken']
    resp = api_client.post(
        '/api/account/reset-password',
        json={'token': token, 'newPassword': 'NewSecret1!', 'confirmPassword': 'NewSecret1!'},
    )
    assert resp.status_code == 200
    assert login('patient', 'johndoe', 'NewSecret1!').status_code == 200


def test_metrics_exposition(api_client, login):
    login('patient', 'johndoe', 'Patient123!')
    resp = api_client.get('/metrics')
    assert resp.status_code == 200
    assert 'atlantis_login_attempts_total' in resp.text


def test_default_app_module():
    from atlantis import main

    client = TestClient(main.app)
    assert client.get('/health').status_code == 200
    assert main.app.state.auth_service.store.find_by_username('provider', 'drsmith') is not None


def test_login_parses_remember_me_string(api_client):
    resp = api_client.post(
        '/api/auth/patient/login',
        json={'username': 'johndoe', 'password': 'Patient123!', 'rememberMe': 'false'},
    )
    assert resp.status_code == 200
    assert resp.json()['session']['rememberMe'] is False
    assert api_client.get('/api/auth/session').json()['scope'] == 'ephemeral'


def test_login_rejects_unparseable_remember_me(api_client):
    resp = api_client.post(
        '/api/auth/patient/login',
        json={'username': 'johndoe', 'password': 'Patient123!', 'rememberMe': 'maybe'},
    )
    assert resp.status_code == 422
    assert 'rememberMe' in resp.json()['detail']['fieldErrors']


class _GatedDelay:
    """Blocks the login call until the test releases it."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.released_in_time = None

    def __call__(self, seconds=None):
        self.started.set()
        self.released_in_time = self.release.wait(timeout=5)


def test_health_answers_while_login_is_delayed(store, sessions, audit, clock):
    gate = _GatedDelay()
    service = AuthService(store, sessions, audit, clock=clock, delay=gate, settings=AuthSettings())
    responses = []

    with TestClient(create_app(service=service)) as client:
        worker = threading.Thread(
            target=lambda: responses.append(
                client.post(
                    '/api/auth/provider/login',
                    json={'username': 'drsmith', 'password': 'Doctor123!'},
                )
            )
        )
        worker.start()
        assert gate.started.wait(timeout=5)
        assert client.get('/health').status_code == 200
        gate.release.set()
        worker.join(timeout=5)

    assert gate.released_in_time is True
    assert responses[0].status_code == 200
