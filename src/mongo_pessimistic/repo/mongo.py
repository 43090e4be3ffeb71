"""
MongoDB implementation of the pessimistic repository.

Records are stored as:

    {'_id': key, 'object': Binary, 'version': int, 'updated_at': datetime}

Every write increments version. try_lock_and_get remembers the version it
read together with the lock claim it read under, and put_and_unlock only
writes if the record still carries that version, which exposes unlocked
writes that slipped into a locked cycle. A remembered version is ignored once
the claim it was read under has ended.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Tuple

from bson.binary import Binary
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from ..errors import ConcurrentReadWriteError, InvalidLockOwnerError
from ..locking.base import PessimisticLocking
from ..serialization import PickleSerializer
from .base import PessimisticRepo

logger = logging.getLogger(__name__)

# Marks keys locked without a try_lock_and_get read.
_NOT_READ = object()


class MongoPessimisticRepo(PessimisticRepo):
    """Pessimistic repository backed by a MongoDB collection."""

    def __init__(self, collection: Collection, locking: PessimisticLocking,
                 owner: Optional[str] = None, serializer=None):
        """
        Initialize the repository.

        Args:
            collection: Collection holding the records
            locking: Lock table guarding the records, keyed by record key
            owner: Ownership token used for all locks taken by this repo
            serializer: Codec for stored values (pickle if not provided)
        """
        self.collection = collection
        self.locking = locking
        self.owner = owner or uuid.uuid4().hex
        self.serializer = serializer or PickleSerializer()
        self._read_versions: Dict[str, Tuple[Optional[int], Any]] = {}
        self._versions_lock = threading.Lock()

    def try_lock_and_get(self, key: str, timeout_ms: Optional[int]) -> Any:
        self.locking.try_lock(key, self.owner, timeout_ms)

        try:
            doc = self.collection.find_one({'_id': key})
            claim = self.locking.get_claim(key, self.owner)
            if claim is not None:
                value = self._decode(doc)
        except Exception:
            self.locking.unlock(key, self.owner)
            raise

        if claim is None:
            raise ConcurrentReadWriteError(key, "lock ownership was lost before the value was read")

        with self._versions_lock:
            self._read_versions[key] = (doc.get('version') if doc else None, claim)
        return value

    def put_and_unlock(self, key: str, value: Any) -> None:
        claim = self._check_owner(key)
        try:
            self._write(key, value, self._pop_read_version(key, claim))
        finally:
            self.locking.unlock(key, self.owner)

    def remove_and_unlock(self, key: str) -> None:
        claim = self._check_owner(key)
        try:
            self._pop_read_version(key, claim)
            self.collection.delete_one({'_id': key})
        finally:
            self.locking.unlock(key, self.owner)

    def remove(self, key: str) -> None:
        self.collection.delete_one({'_id': key})

    def put(self, key: str, value: Any) -> None:
        self._write(key, value, _NOT_READ)

    def get(self, key: str) -> Any:
        return self._decode(self.collection.find_one({'_id': key}))

    def key_set(self) -> Set[str]:
        return {doc['_id'] for doc in self.collection.find({}, {'_id': 1})}

    def get_lock(self) -> PessimisticLocking:
        return self.locking

    def _check_owner(self, key: str):
        """Return the current claim on key, dropping any stale read if it is not held."""
        claim = self.locking.get_claim(key, self.owner)
        if claim is None:
            with self._versions_lock:
                self._read_versions.pop(key, None)
            raise InvalidLockOwnerError(key, self.owner, self.locking.get_owner(key))
        return claim

    def _pop_read_version(self, key: str, claim):
        with self._versions_lock:
            entry = self._read_versions.pop(key, None)
        if entry is None:
            return _NOT_READ
        version, read_claim = entry
        if read_claim != claim:
            logger.debug(f"Ignoring version read for '{key}' under an earlier lock claim")
            return _NOT_READ
        return version

    def _write(self, key: str, value: Any, expected_version) -> None:
        update = {
            '$set': {
                'object': Binary(self.serializer.dumps(value)),
                'updated_at': datetime.now(timezone.utc),
            },
            '$inc': {'version': 1},
        }

        if expected_version is _NOT_READ:
            self.collection.update_one({'_id': key}, update, upsert=True)
            return

        if expected_version is None:
            # The record was absent when read; inserting collides if it appeared since.
            try:
                self.collection.update_one({'_id': key, 'version': {'$exists': False}}, update, upsert=True)
            except DuplicateKeyError:
                raise ConcurrentReadWriteError(key, "record was created by an unlocked write")
            return

        result = self.collection.update_one({'_id': key, 'version': expected_version}, update)
        if result.matched_count == 0:
            logger.debug(f"Record '{key}' no longer at version {expected_version}")
            raise ConcurrentReadWriteError(key, f"record changed since version {expected_version} was read")

    def _decode(self, doc: Optional[Dict[str, Any]]) -> Any:
        if doc is None:
            return None
        return self.serializer.loads(doc['object'])
