import redis

from booking_ledger.core.rate_limiter import FallbackAttemptLimiter, InMemoryAttemptLimiter


class _BrokenLimiter(InMemoryAttemptLimiter):
    def hit(self, key, limit, window_seconds):
        raise redis.ConnectionError("redis is down")


def test_in_memory_limiter_blocks_after_limit():
    limiter = InMemoryAttemptLimiter()

    results = [limiter.hit("booking_create:1", limit=2, window_seconds=60) for _ in range(3)]

    assert [allowed for allowed, _ in results] == [True, True, False]
    assert results[-1][1] >= 1


def test_fallback_limiter_uses_memory_when_redis_fails():
    limiter = FallbackAttemptLimiter(primary=_BrokenLimiter(), fallback=InMemoryAttemptLimiter())

    assert limiter.hit("booking_create:1", limit=1, window_seconds=60)[0] is True
    assert limiter.hit("booking_create:1", limit=1, window_seconds=60)[0] is False
