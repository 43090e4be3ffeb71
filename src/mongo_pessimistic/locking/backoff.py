"""
Deterministic backoff schedule for the lock acquisition loop.
"""

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class LockBackoff:
    """
    Bounded exponential backoff between claim attempts, in milliseconds.

    No jitter is applied so that tests can predict every sleep.
    """
    initial_interval_ms: int = 10
    max_interval_ms: int = 200
    multiplier: float = 2.0

    def __post_init__(self):
        if self.initial_interval_ms <= 0:
            raise ValueError("initial_interval_ms must be positive")
        if self.max_interval_ms < self.initial_interval_ms:
            raise ValueError("max_interval_ms must be >= initial_interval_ms")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    def intervals(self) -> Iterator[int]:
        """Yield sleep intervals forever, growing until max_interval_ms."""
        interval = float(self.initial_interval_ms)
        while True:
            yield int(min(interval, self.max_interval_ms))
            interval = min(interval * self.multiplier, self.max_interval_ms)
