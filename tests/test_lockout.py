"""Lockout policy predicate and message tests."""

from datetime import timedelta

from atlantis import lockout
from atlantis.credentials import Credential


def _cred(**kwargs):
    return Credential(id='prov001', username='drsmith', password='x', role='provider', full_name='Dr', **kwargs)


def test_constants_are_fixed():
    assert lockout.LOCKOUT_THRESHOLD == 5
    assert lockout.LOCKOUT_DURATION == timedelta(minutes=15)
    assert lockout.LOCKOUT_DURATION_SECONDS == 900


def test_is_locked_only_while_lock_in_future(clock):
    now = clock.now()
    assert not lockout.is_locked(_cred(), now)
    assert lockout.is_locked(_cred(locked_until=now + timedelta(seconds=1)), now)
    assert not lockout.is_locked(_cred(locked_until=now), now)
    assert not lockout.is_locked(_cred(locked_until=now - timedelta(minutes=1)), now)


def test_lock_armed_at_threshold(clock):
    now = clock.now()
    assert lockout.lock_until_after_failure(4, now) is None
    assert lockout.lock_until_after_failure(5, now) == now + timedelta(minutes=15)
    assert lockout.lock_until_after_failure(7, now) == now + timedelta(minutes=15)


def test_remaining_attempts_never_negative():
    assert lockout.remaining_attempts(0) == 5
    assert lockout.remaining_attempts(4) == 1
    assert lockout.remaining_attempts(9) == 0


def test_remaining_minutes_rounds_up(clock):
    now = clock.now()
    cred = _cred(locked_until=now + timedelta(minutes=14, seconds=1))
    assert lockout.remaining_lock_minutes(cred, now) == 15
    cred = _cred(locked_until=now + timedelta(seconds=5))
    assert lockout.remaining_lock_minutes(cred, now) == 1
    assert lockout.remaining_lock_minutes(_cred(), now) == 0


def test_messages():
    assert 'locked' in lockout.lockout_message(3)
    assert '3 minute(s)' in lockout.lockout_message(3)
    assert lockout.invalid_credentials_message(2) == (
        'Invalid username or password. 2 attempt(s) remaining.'
    )
    assert 'locked' in lockout.ACCOUNT_LOCKED_NOW_MESSAGE
