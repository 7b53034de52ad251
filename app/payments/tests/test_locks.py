"""
Tests for distributed locking utilities.

Tests the DistributedLock class which provides Redis-based mutual exclusion
across processes for escrow operations, the per-booking lock builder and
optimistic version checks.
"""

import pytest

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError
from payments.locks import DistributedLock, booking_lock, check_version
from payments.models import Booking


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire lock when available."""
        lock = DistributedLock("test:key", ttl=30, blocking=False)
        result = lock.acquire()

        assert result is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:test:key"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 30

    def test_acquire_generates_unique_token(self, mock_redis):
        """Should generate unique token for each acquisition."""
        lock1 = DistributedLock("test:key1", ttl=30, blocking=False)
        lock2 = DistributedLock("test:key2", ttl=30, blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token is not None
        assert lock1._token != lock2._token

    def test_acquire_non_blocking_raises_when_held(self, mock_redis):
        """Non-blocking mode should raise immediately if lock unavailable."""
        mock_redis.set.return_value = False

        lock = DistributedLock("test:key", ttl=30, blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:test:key"
        assert lock.is_held is False

    def test_acquire_blocking_waits_and_acquires(self, mock_redis):
        """Blocking mode should wait and eventually acquire."""
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("test:key", ttl=30, blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_acquire_blocking_timeout_raises_error(self, mock_redis):
        """Should raise after timeout in blocking mode."""
        mock_redis.set.return_value = False

        lock = DistributedLock("test:key", ttl=30, blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "within 0.1s" in str(exc_info.value)
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_runs_owner_checked_script(self, mock_redis):
        """Should release through the Lua script with our token."""
        lock = DistributedLock("test:key", ttl=30, blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True
        assert lock.is_held is False
        args = mock_redis.eval.call_args[0]
        assert args[1:] == (1, "lock:test:key", token)

    def test_release_without_acquire_returns_false(self, mock_redis):
        lock = DistributedLock("test:key", ttl=30, blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_extend_requires_ownership(self, mock_redis):
        lock = DistributedLock("test:key", ttl=30, blocking=False)
        assert lock.extend() is False

        lock.acquire()
        assert lock.extend(90) is True
        assert mock_redis.eval.call_args[0][-1] == 90

    def test_context_manager_releases_on_error(self, mock_redis):
        lock = DistributedLock("test:key", ttl=30, blocking=False)

        with pytest.raises(RuntimeError):
            with lock:
                raise RuntimeError("boom")

        mock_redis.eval.assert_called_once()
        assert lock.is_held is False


class TestDistributedLockWithRedis:
    """Behaviour against an in-memory Redis."""

    def test_second_holder_is_refused(self):
        first = DistributedLock("escrow:booking:1", ttl=30, blocking=False)
        second = DistributedLock("escrow:booking:1", ttl=30, blocking=False)

        with first:
            with pytest.raises(LockAcquisitionError):
                second.acquire()

        # Released: now available
        assert second.acquire() is True
        second.release()

    def test_release_does_not_free_someone_elses_lock(self, fake_redis):
        lock = DistributedLock("escrow:booking:2", ttl=30, blocking=False)
        lock.acquire()
        fake_redis.set("lock:escrow:booking:2", "other-token")

        assert lock.release() is False
        assert fake_redis.get("lock:escrow:booking:2") == b"other-token"

    def test_extend_renews_ttl_only_while_owned(self, fake_redis):
        lock = DistributedLock("escrow:booking:3", ttl=30, blocking=False)
        lock.acquire()
        fake_redis.expire("lock:escrow:booking:3", 2)

        assert lock.extend() is True
        assert fake_redis.ttl("lock:escrow:booking:3") > 2

        # Expired and taken by another worker
        fake_redis.set("lock:escrow:booking:3", "other-token", ex=30)
        assert lock.extend() is False
        assert fake_redis.get("lock:escrow:booking:3") == b"other-token"

    def test_different_bookings_do_not_contend(self):
        with DistributedLock("escrow:booking:a", blocking=False):
            with DistributedLock("escrow:booking:b", blocking=False) as other:
                assert other.is_held


class TestBookingLock:
    """Tests for booking_lock."""

    def test_key_is_namespaced_per_booking(self):
        lock = booking_lock("abc", ttl=15, timeout=2.0)

        assert lock.key == "lock:escrow:booking:abc"
        assert lock.ttl == 15
        assert lock.timeout == 2.0
        assert lock.blocking is True

    def test_dispute_namespace_is_separate(self):
        assert booking_lock("abc", namespace="dispute").key == "lock:dispute:booking:abc"

    def test_escrow_and_dispute_locks_nest(self):
        with booking_lock("abc", namespace="dispute", timeout=0.1):
            with booking_lock("abc", namespace="escrow", timeout=0.1) as inner:
                assert inner.is_held


@pytest.mark.django_db
class TestCheckVersion:
    """Tests for optimistic version checks."""

    def test_matching_version_returns_instance(self, booking):
        locked = check_version(Booking, booking.pk, booking.version)

        assert locked.pk == booking.pk

    def test_stale_version_raises(self, booking):
        booking.service_id = "svc_changed"
        booking.save()  # version 1 -> 2

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(Booking, booking.pk, 1)

        assert exc_info.value.details["current_version"] == 2

    def test_missing_record_raises_not_found(self, db):
        import uuid

        with pytest.raises(NotFoundError) as exc_info:
            check_version(Booking, uuid.uuid4(), 1)

        assert exc_info.value.error_code == "BOOKING_NOT_FOUND"
