"""
Abstract keyed repository guarded by pessimistic locks.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Set

from ..locking.base import PessimisticLocking


class PessimisticRepo(ABC):
    """
    Keyed value store whose read-modify-write cycles are guarded by a lock
    sharing the record's key.

    The locked operations are meant to be used in pairs:

        value = repo.try_lock_and_get(key, timeout_ms)
        repo.put_and_unlock(key, update(value))

    The unlocked operations bypass the lock entirely and are meant for
    callers that coordinate by other means.
    """

    @abstractmethod
    def try_lock_and_get(self, key: str, timeout_ms: Optional[int]) -> Any:
        """
        Lock the key and read its current value.

        Raises:
            LockWaitTimeoutError: If the lock was not acquired in time
            ConcurrentReadWriteError: If the lock was lost before the read
        """
        pass

    @abstractmethod
    def put_and_unlock(self, key: str, value: Any) -> None:
        """
        Write the value and release the lock.

        Raises:
            InvalidLockOwnerError: If this repo does not hold the lock
            ConcurrentReadWriteError: If an unlocked write changed the record
                since it was read
        """
        pass

    @abstractmethod
    def remove_and_unlock(self, key: str) -> None:
        """
        Delete the record and release the lock.

        Raises:
            InvalidLockOwnerError: If this repo does not hold the lock
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete without locking."""
        pass

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Write without locking."""
        pass

    @abstractmethod
    def get(self, key: str) -> Any:
        """Read without locking. Returns None for a missing key."""
        pass

    @abstractmethod
    def key_set(self) -> Set[str]:
        """Return a point-in-time snapshot of the stored keys."""
        pass

    @abstractmethod
    def get_lock(self) -> PessimisticLocking:
        """Return the lock table guarding this repo."""
        pass
