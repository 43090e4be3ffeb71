"""
Shared fixtures: in-memory stand-ins for the pymongo objects used by the
locking, repository and queue modules.
"""

import copy
import itertools
import os
import sys
import threading
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from pymongo import CursorType
from pymongo.errors import AutoReconnect, CollectionInvalid, DuplicateKeyError, OperationFailure

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mongo_pessimistic.locking import LockBackoff, MongoPessimisticLocking  # noqa: E402


class UpdateResult:
    def __init__(self, matched_count: int, upserted_id=None):
        self.matched_count = matched_count
        self.modified_count = matched_count
        self.upserted_id = upserted_id


class DeleteResult:
    def __init__(self, deleted_count: int):
        self.deleted_count = deleted_count


class InsertOneResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


def _matches(doc: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    """Equality matching plus $exists; a None value matches a missing field."""
    for field, value in (query or {}).items():
        if isinstance(value, dict) and "$exists" in value:
            if (field in doc) != bool(value["$exists"]):
                return False
        elif value is None:
            if doc.get(field) is not None:
                return False
        elif doc.get(field) != value:
            return False
    return True


def _apply_update(doc: Dict[str, Any], update: Dict[str, Any]) -> None:
    for field, value in update.get('$set', {}).items():
        doc[field] = value
    for field, value in update.get('$inc', {}).items():
        doc[field] = doc.get(field, 0) + value


class MockCollection:
    """Thread-safe in-memory collection with optional capped semantics."""

    def __init__(self, name: str, database: "MockDatabase" = None,
                 capped: bool = False, max_documents: Optional[int] = None):
        self.name = name
        self.database = database
        self.capped = capped
        self.max_documents = max_documents
        self._entries: List[tuple] = []  # (seq, doc) in natural order
        self._seq = itertools.count()
        self.condition = threading.Condition(threading.RLock())
        self.fail_next_fetch = False

    def _mark_created(self):
        if self.database is not None:
            self.database._created.add(self.name)

    def _docs(self):
        return [doc for _, doc in self._entries]

    def find_one(self, query=None, projection=None):
        with self.condition:
            for doc in self._docs():
                if _matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    def find(self, query=None, projection=None, cursor_type=None, batch_size=None):
        if cursor_type == CursorType.TAILABLE_AWAIT:
            return MockTailableCursor(self)
        with self.condition:
            return [copy.deepcopy(doc) for doc in self._docs() if _matches(doc, query)]

    def update_one(self, query, update, upsert=False):
        with self.condition:
            for doc in self._docs():
                if _matches(doc, query):
                    _apply_update(doc, update)
                    return UpdateResult(1)
            if not upsert:
                return UpdateResult(0)

            new_doc = {k: v for k, v in query.items() if v is not None and not isinstance(v, dict)}
            if '_id' in new_doc and any(d['_id'] == new_doc['_id'] for d in self._docs()):
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}", 11000)
            _apply_update(new_doc, update)
            new_doc.setdefault('_id', ObjectId())
            self._append(new_doc)
            return UpdateResult(0, upserted_id=new_doc['_id'])

    def insert_one(self, doc):
        with self.condition:
            new_doc = copy.deepcopy(doc)
            new_doc.setdefault('_id', ObjectId())
            if any(d['_id'] == new_doc['_id'] for d in self._docs()):
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}", 11000)
            self._append(new_doc)
            return InsertOneResult(new_doc['_id'])

    def _append(self, doc):
        self._mark_created()
        self._entries.append((next(self._seq), doc))
        if self.capped and self.max_documents is not None:
            while len(self._entries) > self.max_documents:
                self._entries.pop(0)
        self.condition.notify_all()

    def delete_one(self, query):
        with self.condition:
            for index, (_, doc) in enumerate(self._entries):
                if _matches(doc, query):
                    del self._entries[index]
                    return DeleteResult(1)
        return DeleteResult(0)

    def estimated_document_count(self):
        with self.condition:
            return len(self._entries)

    def drop(self):
        with self.condition:
            self._entries.clear()
        if self.database is not None:
            self.database._drop(self.name)


class MockTailableCursor:
    """
    Tailable-await cursor over a MockCollection.

    Like MongoDB, a cursor opened on an empty collection dies after its first
    fetch, and a cursor whose position was evicted fails with
    CappedPositionLost.
    """

    def __init__(self, collection: MockCollection):
        self.collection = collection
        self.alive = True
        self.await_seconds = 1.0
        self._last_seq = None
        self._fetched = False

    def max_await_time_ms(self, max_await_time_ms):
        self.await_seconds = max_await_time_ms / 1000.0
        return self

    def __iter__(self):
        return self

    def _next_entry(self):
        for seq, doc in self.collection._entries:
            if self._last_seq is None or seq > self._last_seq:
                return seq, doc
        return None

    def __next__(self):
        if not self.alive:
            raise StopIteration
        with self.collection.condition:
            if self.collection.fail_next_fetch:
                self.collection.fail_next_fetch = False
                self.alive = False
                raise AutoReconnect("connection closed")

            entries = self.collection._entries
            if not self._fetched:
                self._fetched = True
                if not entries:
                    self.alive = False
                    raise StopIteration

            if self._last_seq is not None and entries and entries[0][0] > self._last_seq:
                self.alive = False
                raise OperationFailure("CappedPositionLost", 136)

            entry = self._next_entry()
            if entry is None:
                self.collection.condition.wait(self.await_seconds)
                entry = self._next_entry()
            if entry is None:
                raise StopIteration

            self._last_seq = entry[0]
            return copy.deepcopy(entry[1])

    def close(self):
        self.alive = False


class MockDatabase:
    """In-memory database handing out MockCollections by name."""

    def __init__(self, name: str = "test_db"):
        self.name = name
        self._collections: Dict[str, MockCollection] = {}
        self._created = set()
        self.create_calls = 0
        self.lock = threading.Lock()

    def __getitem__(self, name: str) -> MockCollection:
        with self.lock:
            if name not in self._collections:
                self._collections[name] = MockCollection(name, self)
            return self._collections[name]

    def list_collection_names(self, filter=None):
        names = sorted(self._created)
        if filter and 'name' in filter:
            names = [n for n in names if n == filter['name']]
        return names

    def create_collection(self, name, capped=False, size=None, max=None):
        with self.lock:
            self.create_calls += 1
            if name in self._created:
                raise CollectionInvalid(f"collection {name} already exists")
            collection = MockCollection(name, self, capped=capped, max_documents=max)
            collection.size_bytes = size
            self._collections[name] = collection
            self._created.add(name)
            return collection

    def _drop(self, name: str):
        with self.lock:
            self._collections.pop(name, None)
            self._created.discard(name)


class FakeClock:
    """Manual clock; sleeping advances time instead of blocking."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []
        self.on_sleep = None

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(self)


@pytest.fixture
def mock_db():
    """Create a mock database."""
    return MockDatabase()


@pytest.fixture
def lock_collection(mock_db):
    return mock_db['locks']


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def locking(lock_collection):
    """Lock table with real time and a short backoff, for threaded tests."""
    return MongoPessimisticLocking(
        lock_collection,
        backoff=LockBackoff(initial_interval_ms=5, max_interval_ms=20)
    )


@pytest.fixture
def simulated_locking(lock_collection, fake_clock):
    """Lock table driven by the fake clock."""
    return MongoPessimisticLocking(
        lock_collection,
        backoff=LockBackoff(initial_interval_ms=10, max_interval_ms=80),
        clock=fake_clock,
        sleep=fake_clock.sleep
    )
