"""
Cache backend availability state.

One instance per admin process. The failure monitor is the only writer through
``transition``; every other component reads through ``is_available``. Reads
and writes go through a lock so inline fast-degrade from any thread is safe.
"""

import threading
import time
from typing import Callable, Dict, Any, Optional


class AvailabilityState:
    """Process-wide {available, last_check_time} pair."""

    def __init__(self, available: bool = True, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._available = available
        self._last_check_time = int(clock() * 1000)

    def is_available(self) -> bool:
        with self._lock:
            return self._available

    def last_check_time(self) -> int:
        """Epoch millis of the last completed health probe."""
        with self._lock:
            return self._last_check_time

    def transition(self, available: bool) -> bool:
        """Set availability; return True only when the value changed."""
        with self._lock:
            changed = self._available != available
            self._available = available
            return changed

    def mark_checked(self, at_ms: Optional[int] = None) -> None:
        with self._lock:
            self._last_check_time = at_ms if at_ms is not None else int(self._clock() * 1000)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "available": self._available,
                "last_check_time": self._last_check_time
            }
