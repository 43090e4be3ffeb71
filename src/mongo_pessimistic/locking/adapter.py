"""
Conventional lock interface over a store-backed pessimistic lock.
"""

import logging
import uuid
from typing import Optional

from ..errors import LockWaitTimeoutError, UnsupportedLockOperationError
from .base import PessimisticLock, PessimisticLocking

logger = logging.getLogger(__name__)


class MongoLock:
    """
    Lock on a single key with one ownership token per instance.

    Mirrors the threading.Lock interface (acquire/release/locked and the
    context manager protocol). Reentrancy is scoped to the instance, not to
    threads: any thread using the same MongoLock acts as the same owner, and
    a single release frees the key however many times it was acquired.
    """

    def __init__(self, locking: PessimisticLocking, key: str, token: Optional[str] = None):
        """
        Initialize the lock.

        Args:
            locking: Lock table backing this lock
            key: Key of the protected resource
            token: Ownership token (random UUID if not provided)
        """
        self._lock = PessimisticLock(locking, key)
        self.token = token or uuid.uuid4().hex

    @property
    def key(self) -> str:
        return self._lock.key

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        """
        Acquire the lock.

        Args:
            blocking: If False make a single attempt
            timeout: Seconds to wait when blocking, -1 to wait indefinitely

        Returns:
            True if the lock was acquired
        """
        if not blocking:
            if timeout != -1:
                raise ValueError("can't specify a timeout for a non-blocking call")
            timeout_ms = 0
        elif timeout == -1:
            timeout_ms = None
        elif timeout < 0:
            raise ValueError("timeout value must be a non-negative number or -1")
        else:
            timeout_ms = int(timeout * 1000)

        try:
            self._lock.try_lock(self.token, timeout_ms)
            return True
        except LockWaitTimeoutError:
            return False

    def lock(self) -> None:
        """Wait until the lock is acquired."""
        self._lock.try_lock(self.token, None)

    def try_lock(self) -> bool:
        """Make a single non-blocking attempt."""
        return self.acquire(blocking=False)

    def try_lock_for(self, seconds: float) -> bool:
        """Wait at most the given number of seconds."""
        return self.acquire(timeout=seconds)

    def release(self) -> None:
        self._lock.unlock(self.token)

    unlock = release

    def locked(self) -> bool:
        """Return True if any owner holds the key."""
        return self._lock.locking.is_locked(self.key)

    def is_locked_by_me(self) -> bool:
        return self._lock.is_locked_by_me(self.token)

    def __enter__(self) -> "MongoLock":
        self.lock()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    # threading.Condition picks these hooks up from its lock. Waiting would
    # need to block on an OS primitive, which a polling lock does not have.

    def _is_owned(self):
        raise UnsupportedLockOperationError("MongoLock does not support condition variables")

    def _release_save(self):
        raise UnsupportedLockOperationError("MongoLock does not support condition variables")

    def _acquire_restore(self, state):
        raise UnsupportedLockOperationError("MongoLock does not support condition variables")

    def __repr__(self) -> str:
        return f"<MongoLock key={self.key!r} token={self.token}>"
