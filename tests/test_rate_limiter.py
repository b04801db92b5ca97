"""
Tests for the token bucket rate limiter
"""

import threading

import pytest

from newsrag.embeddings.rate_limiter import TokenBucketRateLimiter


class FakeClock:
    """Manual clock whose sleep advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestTokenBucketRateLimiter:
    """Test pacing of acquisitions."""

    def test_first_acquire_is_immediate(self, clock):
        limiter = TokenBucketRateLimiter(rate=10, clock=clock, sleep=clock.sleep)

        assert limiter.acquire() == 0.0
        assert clock.sleeps == []

    def test_calls_spaced_by_interval(self, clock):
        limiter = TokenBucketRateLimiter(rate=4, clock=clock, sleep=clock.sleep)

        for _ in range(5):
            limiter.acquire()

        # 4 waits of 250ms after the first immediate call
        assert clock.now == pytest.approx(1.0)
        assert clock.sleeps == [0.25, 0.25, 0.25, 0.25]

    def test_no_wait_after_idle_period(self, clock):
        limiter = TokenBucketRateLimiter(rate=10, clock=clock, sleep=clock.sleep)
        limiter.acquire()
        clock.now += 5.0

        assert limiter.acquire() == 0.0

    def test_burst_capacity(self, clock):
        limiter = TokenBucketRateLimiter(rate=1, capacity=3, clock=clock, sleep=clock.sleep)

        assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]

    def test_tokens_do_not_exceed_capacity(self, clock):
        limiter = TokenBucketRateLimiter(rate=1, capacity=2, clock=clock, sleep=clock.sleep)
        clock.now += 100

        assert [limiter.try_acquire() for _ in range(3)] == [True, True, False]

    def test_from_interval(self, clock):
        limiter = TokenBucketRateLimiter.from_interval(0.1, clock=clock, sleep=clock.sleep)

        assert limiter.rate == pytest.approx(10.0)
        assert limiter.capacity == 1

    @pytest.mark.parametrize("rate,capacity", [(0, 1), (-1, 1), (1, 0)])
    def test_invalid_arguments(self, rate, capacity):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(rate=rate, capacity=capacity)

    def test_shared_across_threads(self):
        """Concurrent callers all get a token eventually."""
        limiter = TokenBucketRateLimiter(rate=1000)
        acquired = []

        def worker():
            limiter.acquire()
            acquired.append(1)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(acquired) == 10
