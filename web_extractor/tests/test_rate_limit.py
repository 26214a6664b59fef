import pytest

from web_extractor.core.errors import RateLimited
from web_extractor.core.rate_limit import SlidingWindowLimiter


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_default_limit_is_100_per_15_minutes():
    clock = Clock()
    limiter = SlidingWindowLimiter(clock=clock)
    for _ in range(100):
        limiter.hit("1.2.3.4")
    with pytest.raises(RateLimited) as exc:
        limiter.hit("1.2.3.4")
    assert exc.value.retry_after_seconds == 900
    assert limiter.remaining("1.2.3.4") == 0


def test_clients_are_independent():
    limiter = SlidingWindowLimiter(max_requests=1, window_seconds=60, clock=Clock())
    limiter.hit("a")
    limiter.hit("b")
    with pytest.raises(RateLimited):
        limiter.hit("a")


def test_window_slides():
    clock = Clock()
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=60, clock=clock)
    limiter.hit("a")
    clock.now += 30
    limiter.hit("a")
    clock.now += 10
    with pytest.raises(RateLimited) as exc:
        limiter.hit("a")
    assert exc.value.retry_after_seconds == 20
    clock.now += 20
    limiter.hit("a")
    assert limiter.remaining("a") == 0


def test_idle_clients_are_forgotten():
    clock = Clock()
    limiter = SlidingWindowLimiter(max_requests=5, window_seconds=60, clock=clock)
    for n in range(50):
        limiter.hit(f"10.0.{n}.1")
    assert limiter.remaining("never-seen") == 5
    assert limiter.tracked_clients() == 50
    clock.now += 61
    assert limiter.remaining("10.0.0.1") == 5
    assert limiter.tracked_clients() == 0
