"""
Background consumer running a tailing queue's poll loop on its own thread.
"""

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional

from .tailing import MongoTailingQueue

logger = logging.getLogger(__name__)


class QueueConsumer:
    """
    Runs queue.poll(callback) on a daemon thread.
    Handles consumer lifecycle and graceful shutdown.
    """

    def __init__(self, queue: MongoTailingQueue, callback: Callable[[Any], None],
                 name: Optional[str] = None):
        """
        Initialize queue consumer.

        Args:
            queue: Queue to consume
            callback: Called once per delivered entry
            name: Optional consumer name (generated if not provided)
        """
        self.queue = queue
        self.callback = callback
        self.name = name or f"consumer_{uuid.uuid4().hex[:8]}"
        self.thread = None
        self.error: Optional[BaseException] = None

        self.stats = {
            "entries_delivered": 0,
            "start_time": None,
            "end_time": None
        }

    @property
    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def start(self) -> None:
        """Start consuming on a background thread."""
        if self.is_running:
            raise RuntimeError(f"Consumer {self.name} is already running")

        self.queue.reset()
        self.error = None
        self.thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self.thread.start()
        logger.info(f"Started consumer {self.name} on {self.queue.full_name}")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Request shutdown and wait for the poll loop to return.

        Args:
            timeout: Seconds to wait for the thread, None to wait indefinitely

        Returns:
            True if the consumer thread has exited
        """
        logger.info(f"Shutdown requested for consumer {self.name}")
        self.queue.stop()
        return self.join(timeout)

    def join(self, timeout: Optional[float] = None) -> bool:
        if self.thread is None:
            return True
        self.thread.join(timeout)
        return not self.thread.is_alive()

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)

    def _run(self) -> None:
        self.stats["start_time"] = time.time()
        try:
            self.queue.poll(self._deliver)
        except Exception as e:
            logger.error(f"Consumer {self.name} stopped on error: {str(e)}")
            self.error = e
        finally:
            self.stats["end_time"] = time.time()
            logger.debug(f"Consumer {self.name} exited after "
                         f"{self.stats['entries_delivered']} entries")

    def _deliver(self, item: Any) -> None:
        self.callback(item)
        self.stats["entries_delivered"] += 1
