"""
Abstract bounded append-only queue with a blocking consumer loop.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable


class TailingQueue(ABC):
    """
    Capacity-capped log of entries consumed in insertion order.

    Delivery is at-least/approximately-once: entries evicted by capacity
    before a consumer reads them are lost.
    """

    @abstractmethod
    def init(self) -> None:
        """Create the backing storage if absent. Safe to call repeatedly."""
        pass

    @abstractmethod
    def add(self, item: Any) -> None:
        """Append an entry without waiting for consumers."""
        pass

    @abstractmethod
    def poll(self, callback: Callable[[Any], None]) -> None:
        """Invoke callback for each entry in insertion order until stopped."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Ask running poll loops to return."""
        pass

    @abstractmethod
    def size(self) -> int:
        """Approximate number of stored entries."""
        pass

    @abstractmethod
    def drop(self) -> None:
        """Irreversibly delete the backing storage."""
        pass
