"""
Concurrency control utilities for escrow operations.

Two complementary mechanisms serialize work on a single booking while
leaving different bookings fully parallel:

1. **Distributed Locks** (DistributedLock, booking_lock)
   - Redis-based mutual exclusion across web workers and Celery workers
   - TTL prevents deadlocks from crashed processes
   - One lock per booking id; bookings never contend with each other

2. **Optimistic Locking** (check_version)
   - Version-based conflict detection for records edited by humans
     (manual review decisions) where a stale form must not win

Usage:

    from payments.locks import booking_lock

    with booking_lock(booking_id, ttl=60, timeout=10.0):
        with transaction.atomic():
            escrow = EscrowAccount.objects.select_for_update().get(...)
            ...

Note:
    The lock is always taken before the database transaction is opened,
    and the state is re-read inside both, so a caller that loses a race
    sees the winner's committed state.
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents accidental release by other processes
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        lock = DistributedLock("escrow:booking:123", ttl=60, timeout=5.0)
        try:
            with lock:
                release_funds()
        except LockAcquisitionError:
            # Another worker is mutating this booking's escrow
            ...

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Atomic check-and-extend
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.monotonic() + self.timeout
            while True:
                if self._try_acquire(redis):
                    return True
                if time.monotonic() >= end_time:
                    break
                time.sleep(0.05)  # 50ms between retries

            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it
            (never acquired, already released, or expired and taken over)
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """
        Reset the lock TTL if we hold it.

        Args:
            additional_ttl: New TTL in seconds (defaults to original TTL)

        Returns:
            True if lock was extended, False if we don't hold it
        """
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False  # Don't suppress exceptions


def booking_lock(
    booking_id: Any,
    ttl: int = 60,
    timeout: float = 10.0,
    namespace: str = "escrow",
) -> DistributedLock:
    """
    Build the lock that serializes mutations of one booking.

    Args:
        booking_id: Booking primary key
        ttl: Lock TTL in seconds
        timeout: How long to wait for a competing holder
        namespace: "escrow" for fund movement, "dispute" for the dispute
            workflow (which takes the escrow lock again inside freeze)

    Returns:
        An unacquired DistributedLock keyed "<namespace>:booking:<id>"
    """
    return DistributedLock(
        f"{namespace}:booking:{booking_id}",
        ttl=ttl,
        blocking=True,
        timeout=timeout,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Atomically check version and lock a record for update.

    Args:
        model_class: Django model class (must have 'version' field)
        pk: Primary key of the record
        expected_version: Version the caller expects

    Returns:
        The locked model instance

    Raises:
        StaleRecordError: If version doesn't match (concurrent modification)
        NotFoundError: If record doesn't exist

    Note:
        Call inside the caller's transaction so the row lock is held
        until it commits.
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )

        if instance is None:
            model_name = model_class.__name__
            current = model_class.objects.filter(pk=pk).first()
            if current is None:
                raise NotFoundError(
                    f"{model_name} {pk} not found",
                    error_code=f"{model_name.upper()}_NOT_FOUND",
                    details={"pk": str(pk)},
                )

            raise StaleRecordError(
                f"{model_name} {pk} has been modified "
                f"(expected version {expected_version}, current {current.version})",
                details={
                    "pk": str(pk),
                    "expected_version": expected_version,
                    "current_version": current.version,
                },
            )

        return instance


__all__ = [
    "DistributedLock",
    "booking_lock",
    "check_version",
]
