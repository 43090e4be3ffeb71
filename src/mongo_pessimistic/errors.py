"""
Exceptions raised by the locking, repository and queue primitives.
"""

from typing import Optional


class MongoPessimisticError(Exception):
    """Base class for all errors raised by this package."""
    pass


class LockWaitTimeoutError(MongoPessimisticError):
    """Raised when a lock could not be acquired before the deadline."""
    def __init__(self, key: str, owner: str, timeout_ms: Optional[int]):
        super().__init__(f"Failed to acquire lock '{key}' for owner {owner} within {timeout_ms} ms")
        self.key = key
        self.owner = owner
        self.timeout_ms = timeout_ms


class InvalidLockOwnerError(MongoPessimisticError):
    """Raised when a lock is released or used by a token that does not hold it."""
    def __init__(self, key: str, owner: str, current_owner: Optional[str]):
        if current_owner is None:
            message = f"Lock '{key}' is not held, owner {owner} cannot release it"
        else:
            message = f"Lock '{key}' is held by {current_owner}, not by {owner}"
        super().__init__(message)
        self.key = key
        self.owner = owner
        self.current_owner = current_owner


class ConcurrentReadWriteError(MongoPessimisticError):
    """Raised when an unlocked write races a locked read-modify-write cycle."""
    def __init__(self, key: str, message: str):
        super().__init__(f"Concurrent modification of '{key}': {message}")
        self.key = key


class UnsupportedLockOperationError(MongoPessimisticError, NotImplementedError):
    """Raised for lock operations that a polling lock cannot provide."""
    pass
