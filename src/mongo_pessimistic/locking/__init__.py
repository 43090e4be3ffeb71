"""
Pessimistic locking on top of single-document atomic updates.
"""

from .adapter import MongoLock
from .backoff import LockBackoff
from .base import DistributedLock, PessimisticLock, PessimisticLocking
from .mongo import MongoPessimisticLocking

__all__ = [
    'DistributedLock',
    'LockBackoff',
    'MongoLock',
    'MongoPessimisticLocking',
    'PessimisticLock',
    'PessimisticLocking',
]
