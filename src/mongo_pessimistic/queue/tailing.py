"""
Tailing queue on a MongoDB capped collection.

Producers insert into a capped collection; consumers follow it with a
tailable, awaiting cursor which returns documents in insertion order and
blocks for up to max_await_time_ms waiting for new ones. MongoDB evicts the
oldest documents once the collection is full.
"""

import logging
import threading
from typing import Any, Callable, Optional

from bson.binary import Binary
from pymongo import CursorType
from pymongo.database import Database
from pymongo.errors import CollectionInvalid, PyMongoError

from ..serialization import PickleSerializer
from .base import TailingQueue

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
ASSUMED_MAX_DOC_SIZE = 1024 * 1024  # 1mb
BATCH_SIZE = 100
SLEEP_BETWEEN_FAILURES_MS = 500
MAX_AWAIT_TIME_MS = 1000


class StopToken:
    """Cooperative cancellation flag observed by poll loops."""

    def __init__(self):
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep until the token is set or the timeout elapses."""
        return self._event.wait(timeout)


class MongoTailingQueue(TailingQueue):
    """Bounded pub/sub channel backed by a capped collection."""

    def __init__(self, db: Database, queue_name: str,
                 max_size: int = DEFAULT_MAX_SIZE,
                 serializer=None,
                 assumed_max_doc_size: int = ASSUMED_MAX_DOC_SIZE,
                 batch_size: int = BATCH_SIZE,
                 failure_backoff_ms: int = SLEEP_BETWEEN_FAILURES_MS,
                 max_await_time_ms: int = MAX_AWAIT_TIME_MS,
                 stop_token: Optional[StopToken] = None):
        """
        Initialize the queue.

        Args:
            db: Database holding the queue collection
            queue_name: Name of the capped collection
            max_size: Maximum number of entries kept
            serializer: Codec for entries (pickle if not provided)
            assumed_max_doc_size: Byte size budgeted per entry; the collection
                is capped at assumed_max_doc_size * max_size bytes
            batch_size: Cursor batch size
            failure_backoff_ms: Wait before reopening a failed or dead cursor
            max_await_time_ms: How long one cursor fetch blocks for new entries
            stop_token: Cancellation token (a fresh one if not provided)
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.db = db
        self.queue_name = queue_name
        self.max_size = max_size
        self.serializer = serializer or PickleSerializer()
        self.assumed_max_doc_size = assumed_max_doc_size
        self.batch_size = batch_size
        self.failure_backoff_ms = failure_backoff_ms
        self.max_await_time_ms = max_await_time_ms
        self.stop_token = stop_token or StopToken()

    @property
    def full_name(self) -> str:
        return f"{self.db.name}.{self.queue_name}"

    @property
    def is_stopped(self) -> bool:
        return self.stop_token.is_set()

    def init(self) -> None:
        if self.queue_name in self.db.list_collection_names(filter={'name': self.queue_name}):
            return
        try:
            self.db.create_collection(
                self.queue_name,
                capped=True,
                size=self.assumed_max_doc_size * self.max_size,
                max=self.max_size
            )
            logger.info(f"Created capped collection {self.full_name} (max {self.max_size} entries)")
        except CollectionInvalid:
            logger.debug(f"Capped collection {self.full_name} was created concurrently")

    def add(self, item: Any) -> None:
        self._collection().insert_one({'object': Binary(self.serializer.dumps(item))})

    def poll(self, callback: Callable[[Any], None]) -> None:
        """
        Deliver entries to callback until the queue is stopped.

        Existing entries are delivered first, then new ones as they arrive.
        Cursor failures are logged and the cursor is reopened after
        failure_backoff_ms; entries already delivered are skipped on reopen.
        Exceptions raised by callback propagate and end the loop.

        Args:
            callback: Called once per entry with the deserialized item
        """
        if self.stop_token.is_set():
            logger.warning(f"Queue {self.full_name} is already stopped")
            return

        last_id = None
        while not self.stop_token.is_set():
            cursor = None
            try:
                skip_until = last_id
                if skip_until is not None and self._collection().find_one({'_id': skip_until}, {'_id': 1}) is None:
                    logger.warning(f"Last delivered entry of {self.full_name} was evicted, "
                                   f"resuming from the oldest entry")
                    skip_until = None

                cursor = self._open_cursor()
                skipped = []
                while cursor.alive and not self.stop_token.is_set():
                    for doc in cursor:
                        if self.stop_token.is_set():
                            break
                        if skip_until is not None:
                            if doc['_id'] == skip_until:
                                skip_until = None
                                skipped = []
                            else:
                                skipped.append(doc)
                            continue
                        callback(self.serializer.loads(doc['object']))
                        last_id = doc['_id']

                    if skip_until is not None and cursor.alive and not self.stop_token.is_set():
                        # Caught up without meeting the last delivered entry, so it
                        # was evicted after the check and everything skipped is newer.
                        logger.warning(f"Last delivered entry of {self.full_name} was evicted, "
                                       f"delivering the {len(skipped)} entries read past it")
                        skip_until = None
                        pending, skipped = skipped, []
                        for doc in pending:
                            if self.stop_token.is_set():
                                break
                            callback(self.serializer.loads(doc['object']))
                            last_id = doc['_id']

                if not self.stop_token.is_set():
                    logger.debug(f"Cursor on {self.full_name} is dead, reopening")
            except PyMongoError as e:
                logger.warning(f"Failed to iterate on queue cursor for {self.full_name}: {str(e)}")
            finally:
                if cursor is not None:
                    cursor.close()

            self.stop_token.wait(self.failure_backoff_ms / 1000.0)

        logger.debug(f"Stopped polling {self.full_name}")

    def stop(self) -> None:
        self.stop_token.set()

    def reset(self) -> None:
        """Clear the stop request so the queue can be polled again."""
        self.stop_token.clear()

    def size(self) -> int:
        return self._collection().estimated_document_count()

    def drop(self) -> None:
        self._collection().drop()
        logger.info(f"Dropped queue {self.full_name}")

    def _open_cursor(self):
        return self._collection().find(
            {},
            cursor_type=CursorType.TAILABLE_AWAIT,
            batch_size=self.batch_size
        ).max_await_time_ms(self.max_await_time_ms)

    def _collection(self):
        return self.db[self.queue_name]
