"""Audit log ordering, ids and filtering."""

from datetime import timedelta

from prometheus_client import REGISTRY

from atlantis.audit import AuditLog, filter_entries


def test_entries_kept_in_insertion_order(audit, clock):
    for index in range(25):
        audit.append(f'user{index}', 'patient', 'LOGIN', f'entry {index}')
        clock.advance(seconds=1)

    entries = audit.entries()
    assert len(audit) == 25
    assert [entry.details for entry in entries] == [f'entry {i}' for i in range(25)]
    assert entries[0].id == 'audit000001'
    assert entries[-1].id == 'audit000025'
    assert entries[1].timestamp - entries[0].timestamp == timedelta(seconds=1)


def test_entries_returns_copy(audit):
    audit.append('pat001', 'patient', 'LOGIN')
    snapshot = audit.entries()
    snapshot.clear()
    assert len(audit) == 1


def test_to_dict_shape(audit):
    entry = audit.append('rec001', 'receptionist', 'PATIENT_REGISTRATION', 'Registered', ip_address='10.0.0.1')
    data = entry.to_dict()
    assert data['userId'] == 'rec001'
    assert data['userRole'] == 'receptionist'
    assert data['ipAddress'] == '10.0.0.1'
    assert 'ipAddress' not in audit.append('x', 'patient', 'LOGOUT').to_dict()


def test_filter_entries(audit, clock):
    audit.append('pat001', 'patient', 'LOGIN')
    clock.advance(minutes=5)
    audit.append('prov001', 'provider', 'FAILED_LOGIN')
    audit.append('pat001', 'patient', 'LOGOUT')

    entries = audit.entries()
    assert [e.action for e in filter_entries(entries, actor_id='pat001')] == ['LOGIN', 'LOGOUT']
    assert [e.user_id for e in filter_entries(entries, action='failed_login')] == ['prov001']
    assert len(filter_entries(entries, role='patient')) == 2
    since = clock.now() - timedelta(minutes=1)
    assert len(filter_entries(entries, since=since)) == 2


def test_append_increments_counter(clock):
    before = REGISTRY.get_sample_value('atlantis_audit_entries_total', {'action': 'TEST_ACTION'}) or 0.0
    AuditLog(clock=clock).append('x', 'patient', 'TEST_ACTION')
    after = REGISTRY.get_sample_value('atlantis_audit_entries_total', {'action': 'TEST_ACTION'})
    assert after == before + 1
