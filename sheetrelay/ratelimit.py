"""
Process-wide spacing of outbound API calls.

Every remote call made by the pipeline passes through a single RateLimiter
so that calls issued from concurrent jobs are still spaced out.
"""

import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """
    Enforce a minimum delay between consecutive calls to throttle().

    The timestamp check, the sleep and the timestamp update happen under one
    lock, so concurrent callers are serialised in arrival order.
    """

    def __init__(
        self,
        delay: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            delay: Minimum seconds between calls (0 disables spacing)
            clock: Monotonic clock returning seconds
            sleep: Function used to wait
        """
        self.delay = max(0.0, delay)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: Optional[float] = None

    def throttle(self) -> float:
        """
        Block until `delay` seconds have passed since the previous call.

        Returns:
            Seconds actually waited
        """
        with self._lock:
            waited = 0.0
            if self._last_call is not None and self.delay > 0:
                elapsed = self._clock() - self._last_call
                if elapsed < self.delay:
                    waited = self.delay - elapsed
                    self._sleep(waited)
            self._last_call = self._clock()
            return waited

    @property
    def last_call(self) -> Optional[float]:
        return self._last_call
