"""
Coordination primitives for processes sharing a MongoDB deployment.

This package provides a pessimistic lock built on single-document atomic
updates, a keyed repository that uses it for locked read-modify-write
cycles, and a bounded pub/sub queue on a capped collection.

Key Features:
- Keyed locks owned by opaque tokens, with bounded and unbounded waits
- threading.Lock compatible adapter with instance-scoped ownership
- Repository with conflict detection for unlocked writes
- Tailing queue with ordered delivery and automatic resubscription
"""

from .config import Config
from .errors import (
    ConcurrentReadWriteError,
    InvalidLockOwnerError,
    LockWaitTimeoutError,
    MongoPessimisticError,
    UnsupportedLockOperationError,
)
from .locking import LockBackoff, MongoLock, MongoPessimisticLocking, PessimisticLock
from .queue import MongoTailingQueue, QueueConsumer, StopToken
from .repo import MongoPessimisticRepo

__version__ = "0.1.0"

__all__ = [
    'Config',
    'ConcurrentReadWriteError',
    'InvalidLockOwnerError',
    'LockBackoff',
    'LockWaitTimeoutError',
    'MongoLock',
    'MongoPessimisticError',
    'MongoPessimisticLocking',
    'MongoPessimisticRepo',
    'MongoTailingQueue',
    'PessimisticLock',
    'QueueConsumer',
    'StopToken',
    'UnsupportedLockOperationError',
]
