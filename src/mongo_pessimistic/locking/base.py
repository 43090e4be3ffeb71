"""
Abstract interfaces for store-backed pessimistic locking.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Protocol


class PessimisticLocking(ABC):
    """
    Lock table keyed by arbitrary strings and owned by opaque tokens.

    The backing store is the only authority on who holds a key; instances
    keep no lock state of their own and can be shared between threads.
    """

    @abstractmethod
    def try_lock(self, key: str, owner: str, timeout_ms: Optional[int]) -> None:
        """
        Claim the key for owner, retrying until the deadline.

        Args:
            key: Key of the protected resource
            owner: Ownership token
            timeout_ms: 0 for a single attempt, None to wait indefinitely

        Raises:
            LockWaitTimeoutError: If the key is still held by another owner
                when the deadline expires
        """
        pass

    @abstractmethod
    def unlock(self, key: str, owner: str) -> None:
        """
        Release the key if owner holds it.

        Raises:
            InvalidLockOwnerError: If owner is not the current holder,
                including when the key is not locked at all
        """
        pass

    @abstractmethod
    def is_locked(self, key: str) -> bool:
        """Return True if any owner holds the key."""
        pass

    @abstractmethod
    def is_locked_by(self, key: str, owner: str) -> bool:
        """Return True if owner currently holds the key."""
        pass

    @abstractmethod
    def get_claim(self, key: str, owner: str) -> Optional[Any]:
        """
        Return an identifier of owner's current claim on the key.

        Every successful try_lock produces a new identifier, so a value taken
        before an unlock never equals one taken after a later re-lock.

        Returns:
            Claim identifier, or None if owner does not hold the key
        """
        pass

    @abstractmethod
    def get_owner(self, key: str) -> Optional[str]:
        """Return the current owner of the key, or None if it is free."""
        pass

    @abstractmethod
    def force_unlock(self, key: str) -> bool:
        """
        Clear the key regardless of its owner.

        Holders are never expired automatically, so this is the recovery
        path for a key left behind by a crashed process.

        Returns:
            True if a lock was removed
        """
        pass

    @abstractmethod
    def locked_keys(self) -> List[str]:
        """Return a snapshot of the keys currently held."""
        pass


class PessimisticLock:
    """Single-key view of a PessimisticLocking table."""

    def __init__(self, locking: PessimisticLocking, key: str):
        self.locking = locking
        self.key = key

    def try_lock(self, token: str, timeout_ms: Optional[int]) -> None:
        self.locking.try_lock(self.key, token, timeout_ms)

    def unlock(self, token: str) -> None:
        self.locking.unlock(self.key, token)

    def is_locked_by_me(self, token: str) -> bool:
        return self.locking.is_locked_by(self.key, token)

    def __repr__(self) -> str:
        return f"PessimisticLock(key={self.key!r})"


class DistributedLock(Protocol):
    """
    Operations supported by a lock whose acquisition polls the store.

    Interruptible waits and condition variables are deliberately absent.
    """

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        ...

    def release(self) -> None:
        ...

    def is_locked_by_me(self) -> bool:
        ...
