"""
Implements an in-process fixed-window rate limiter.
"""
from function_engine.interfaces.throttler_interface import ThrottlerInterface
from function_engine.exceptions import ThrottlerException
from typing import Callable, Dict, Tuple
import threading
import time

class InMemoryThrottler(ThrottlerInterface):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize throttling resources
        Args:
            clock: returns the current time in seconds, injectable for unit testing
        """
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def throttle(self, key: str, limit: int, ttl: int) -> None:
        """Count one call against key, failing once limit calls were made within ttl seconds"""
        now = self._clock()
        with self._lock:
            window_start, count = self._windows.get(key, (now, 0))
            if now - window_start >= ttl:
                window_start, count = now, 0
            if count >= limit:
                raise ThrottlerException(f'limit of {limit} calls per {ttl}s reached for "{key}"')
            self._windows[key] = (window_start, count + 1)
