"""
MongoDB implementation of pessimistic locking.

Each held key is one document in the lock collection:

    {'_id': key, 'owner': token, 'claim': ObjectId, 'locked_at': datetime, 'generation': int}

A claim is a single upsert filtered on both the key and the claiming owner.
When another owner holds the key the filter does not match and the insert
collides with the existing _id, so the unique _id index decides every race.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from bson.objectid import ObjectId
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from ..errors import InvalidLockOwnerError, LockWaitTimeoutError
from .backoff import LockBackoff
from .base import PessimisticLocking

logger = logging.getLogger(__name__)


class MongoPessimisticLocking(PessimisticLocking):
    """Lock table stored in a MongoDB collection."""

    def __init__(self, collection: Collection,
                 backoff: Optional[LockBackoff] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the lock table.

        Args:
            collection: Collection holding one document per locked key
            backoff: Retry schedule used while a key is contended
            clock: Monotonic clock in seconds, used for deadlines
            sleep: Sleep function taking seconds
        """
        self.collection = collection
        self.backoff = backoff or LockBackoff()
        self._clock = clock
        self._sleep = sleep

    def try_lock(self, key: str, owner: str, timeout_ms: Optional[int]) -> None:
        if timeout_ms is not None and timeout_ms < 0:
            raise ValueError(f"timeout_ms must be >= 0 or None, got {timeout_ms}")

        deadline = None if timeout_ms is None else self._clock() + timeout_ms / 1000.0
        intervals = self.backoff.intervals()
        attempts = 0

        while True:
            attempts += 1
            if self._claim(key, owner):
                logger.debug(f"Owner {owner} acquired lock '{key}' after {attempts} attempt(s)")
                return

            if deadline is None:
                delay = next(intervals) / 1000.0
            else:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.debug(f"Owner {owner} gave up on lock '{key}' after {attempts} attempt(s)")
                    raise LockWaitTimeoutError(key, owner, timeout_ms)
                delay = min(next(intervals) / 1000.0, remaining)

            self._sleep(delay)

    def _claim(self, key: str, owner: str) -> bool:
        """Make one atomic claim attempt. Returns False on contention."""
        try:
            self.collection.update_one(
                {'_id': key, 'owner': owner},
                {
                    '$set': {'owner': owner, 'claim': ObjectId(), 'locked_at': datetime.now(timezone.utc)},
                    '$inc': {'generation': 1},
                },
                upsert=True
            )
            return True
        except DuplicateKeyError:
            return False

    def unlock(self, key: str, owner: str) -> None:
        result = self.collection.delete_one({'_id': key, 'owner': owner})
        if result.deleted_count == 0:
            raise InvalidLockOwnerError(key, owner, self.get_owner(key))
        logger.debug(f"Owner {owner} released lock '{key}'")

    def is_locked(self, key: str) -> bool:
        return self.collection.find_one({'_id': key}, {'_id': 1}) is not None

    def is_locked_by(self, key: str, owner: str) -> bool:
        return self.collection.find_one({'_id': key, 'owner': owner}, {'_id': 1}) is not None

    def get_claim(self, key: str, owner: str) -> Optional[ObjectId]:
        doc = self.collection.find_one({'_id': key, 'owner': owner}, {'claim': 1})
        return doc.get('claim') if doc else None

    def get_owner(self, key: str) -> Optional[str]:
        doc = self.collection.find_one({'_id': key}, {'owner': 1})
        return doc.get('owner') if doc else None

    def force_unlock(self, key: str) -> bool:
        result = self.collection.delete_one({'_id': key})
        if result.deleted_count:
            logger.warning(f"Lock '{key}' was forcibly released")
            return True
        return False

    def locked_keys(self) -> List[str]:
        return [doc['_id'] for doc in self.collection.find({}, {'_id': 1})]
