"""Tests for pitlane.lockout: attempt ledger and lockout policy."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from pitlane import db
from pitlane.errors import StoreUnavailable
from pitlane.lockout import (is_locked, lock_status, lockout_duration, record_attempt)
from pitlane.models import AccountLockout, LockoutState, LoginAttempt, utcnow

EMAIL = "driver@pitlane.test"


def _fail(email=EMAIL, times=1, identity=None):
    count = 0
    for _ in range(times):
        count = record_attempt(email, False, "10.0.0.1", "pytest", reason="invalid_password",
                               identity=identity)
    return count


def _db_count(email=EMAIL):
    return db.session.execute(
        select(LockoutState.failed_count).where(LockoutState.email == email)
    ).scalar_one()


class TestLockoutThreshold:
    """Lock engages after MAX_LOGIN_ATTEMPTS consecutive failures."""

    def test_unknown_email_not_locked(self, app):
        assert not is_locked("nobody@pitlane.test")
        assert lock_status("nobody@pitlane.test").failed_count == 0

    def test_below_threshold_not_locked(self, app, identity):
        count = _fail(times=app.config["MAX_LOGIN_ATTEMPTS"] - 1, identity=identity)
        assert count == 4
        assert not is_locked(EMAIL)

    def test_threshold_locks_account(self, app, identity):
        before = utcnow()
        count = _fail(times=app.config["MAX_LOGIN_ATTEMPTS"], identity=identity)
        assert count == 5
        assert is_locked(EMAIL)

        state = LockoutState.query.filter_by(email=EMAIL).one()
        assert state.lock_reason == "too many failed attempts"
        assert before + timedelta(minutes=14) < state.locked_until <= utcnow() + timedelta(minutes=15)

        lockouts = AccountLockout.query.filter_by(email=EMAIL).all()
        assert len(lockouts) == 1
        assert lockouts[0].user_id == identity.id

    def test_lock_status_reports_retry_after(self, app, identity):
        _fail(times=5, identity=identity)
        status = lock_status(EMAIL)
        assert status.locked is True
        assert status.failed_count == 5
        assert 0 < status.retry_after <= 15 * 60

    def test_email_is_case_insensitive(self, app, identity):
        _fail(email="Driver@PitLane.TEST", times=5, identity=identity)
        assert is_locked(EMAIL)

    def test_lock_expires(self, app, identity):
        _fail(times=5, identity=identity)
        state = LockoutState.query.filter_by(email=EMAIL).one()
        state.locked_until = utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert not is_locked(EMAIL)


class TestProgressiveLockout:
    """Counter survives lock expiry; further failures re-lock for longer."""

    def test_failure_after_expiry_relocks_with_backoff(self, app, identity):
        _fail(times=5, identity=identity)
        state = LockoutState.query.filter_by(email=EMAIL).one()
        state.locked_until = utcnow() - timedelta(seconds=1)
        db.session.commit()

        count = _fail(identity=identity)
        assert count == 6
        assert is_locked(EMAIL)
        state = LockoutState.query.filter_by(email=EMAIL).one()
        remaining = state.locked_until - utcnow()
        assert timedelta(minutes=29) < remaining <= timedelta(minutes=30)
        assert AccountLockout.query.filter_by(email=EMAIL).count() == 2

    def test_failures_while_locked_do_not_extend_lock(self, app, identity):
        _fail(times=5, identity=identity)
        locked_until = LockoutState.query.filter_by(email=EMAIL).one().locked_until

        _fail(times=2, identity=identity)
        state = LockoutState.query.filter_by(email=EMAIL).one()
        assert state.failed_count == 7
        assert state.locked_until == locked_until
        assert AccountLockout.query.filter_by(email=EMAIL).count() == 1

    def test_duration_is_capped(self, app):
        assert lockout_duration(5) == timedelta(minutes=15)
        assert lockout_duration(7) == timedelta(minutes=60)
        assert lockout_duration(500) == app.config["MAX_LOCKOUT_DURATION"]


class TestSuccessReset:
    """A verified success clears the counter and any lock."""

    @pytest.mark.parametrize("prior_failures", [0, 1, 4, 5, 12])
    def test_success_resets_counter(self, app, identity, prior_failures):
        _fail(times=prior_failures, identity=identity)
        assert record_attempt(EMAIL, True, "10.0.0.2", "pytest", identity=identity) == 0

        state = LockoutState.query.filter_by(email=EMAIL).first()
        if state is not None:
            assert state.failed_count == 0
            assert state.locked_until is None
            assert state.lock_reason is None
        assert not is_locked(EMAIL)

    def test_success_stamps_last_login(self, app, identity):
        record_attempt(EMAIL, True, "10.0.0.2", "pytest", identity=identity)
        assert identity.last_login_ip == "10.0.0.2"
        assert identity.last_login_at is not None


class TestAttemptLedger:
    """Every submission appends a LoginAttempt before the counter update."""

    def test_each_attempt_is_recorded(self, app, identity):
        _fail(times=2, identity=identity)
        record_attempt(EMAIL, True, "10.0.0.1", "pytest", identity=identity)

        attempts = LoginAttempt.query.order_by(LoginAttempt.id).all()
        assert [a.success for a in attempts] == [False, False, True]
        assert attempts[0].failure_reason == "invalid_password"
        assert attempts[0].user_agent == "pytest"
        assert attempts[2].failure_reason is None
        assert all(a.user_id == identity.id for a in attempts)

    def test_unknown_account_gets_placeholder(self, app):
        count = _fail(email="ghost@pitlane.test", times=2)
        assert count == 2
        state = LockoutState.query.filter_by(email="ghost@pitlane.test").one()
        assert state.user_id is None

    def test_unknown_account_can_be_locked(self, app):
        _fail(email="ghost@pitlane.test", times=5)
        assert is_locked("ghost@pitlane.test")

    def test_ledger_survives_counter_failure(self, app, identity):
        with patch("pitlane.lockout._register_failure",
                   side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            with pytest.raises(StoreUnavailable):
                _fail(identity=identity)
        assert LoginAttempt.query.count() == 1

    def test_ledger_failure_raises_store_unavailable(self, app, identity):
        with patch("pitlane.lockout.append_attempt",
                   side_effect=OperationalError("INSERT", {}, Exception("db down"))):
            with pytest.raises(StoreUnavailable):
                _fail(identity=identity)
        assert LockoutState.query.count() == 0


class TestAtomicCounter:
    """Increment happens in the database, not on a stale in-process value."""

    def test_concurrent_increment_is_not_lost(self, app, identity):
        _fail(identity=identity)
        stale = LockoutState.query.filter_by(email=EMAIL).one()
        assert stale.failed_count == 1

        # another request increments the same row behind this session's back
        db.session.execute(
            text("UPDATE lockout_states SET failed_count = failed_count + 2 WHERE email = :email"),
            {"email": EMAIL},
        )

        assert _fail(identity=identity) == 4
        assert _db_count() == 4

    def test_concurrent_increment_reaching_threshold_locks(self, app, identity):
        _fail(times=2, identity=identity)
        db.session.execute(
            text("UPDATE lockout_states SET failed_count = failed_count + 2 WHERE email = :email"),
            {"email": EMAIL},
        )
        assert _fail(identity=identity) == 5
        assert is_locked(EMAIL)


class TestClock:

    def test_utcnow_is_naive_utc(self):
        now = utcnow()
        assert now.tzinfo is None
        assert abs(datetime.now(timezone.utc).replace(tzinfo=None) - now) < timedelta(seconds=5)
