"""
Token bucket rate limiter for outbound embedding calls.

One limiter instance is shared by every embedding call of an ingestion run,
including when sources are processed on several threads, so the provider's
request-rate ceiling holds regardless of fan-out.
"""

import threading
import time
from typing import Callable


class TokenBucketRateLimiter:
    """
    Thread-safe token bucket.

    Tokens refill continuously at ``rate`` per second up to ``capacity``.
    ``acquire`` blocks until a token is available. With ``capacity=1`` calls
    are spaced at least ``1 / rate`` seconds apart.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            rate: Tokens added per second
            capacity: Maximum burst size
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")

        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_refill = now

    def try_acquire(self) -> bool:
        """Take a token without blocking. Returns False if none is available."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def acquire(self) -> float:
        """
        Block until a token is available and take it.

        Returns:
            Total time spent waiting, in seconds
        """
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return waited
                wait_time = (1 - self._tokens) / self.rate
            # Sleep outside the lock so other threads can refill/inspect
            self._sleep(wait_time)
            waited += wait_time

    @classmethod
    def from_interval(cls, interval_s: float, **kwargs) -> "TokenBucketRateLimiter":
        """Limiter that spaces calls ``interval_s`` apart (no bursting)."""
        return cls(rate=1.0 / interval_s, capacity=1, **kwargs)
