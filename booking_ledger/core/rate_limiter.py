import logging
import threading
import time
from abc import ABC, abstractmethod

import redis

from booking_ledger.core.config import settings

logger = logging.getLogger(__name__)


class AttemptLimiter(ABC):
    """Fixed-window attempt counter keyed by caller."""

    @abstractmethod
    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Count one attempt; return (allowed, retry_after_seconds)."""
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


def _window_bounds(now: float, window_seconds: int) -> tuple[int, int]:
    window_start = int(now // window_seconds) * window_seconds
    retry_after = max(1, int(window_start + window_seconds - now))
    return window_start, retry_after


class InMemoryAttemptLimiter(AttemptLimiter):
    def __init__(self) -> None:
        self._counters: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        window_start, retry_after = _window_bounds(time.time(), window_seconds)
        with self._lock:
            started, count = self._counters.get(key, (window_start, 0))
            if started != window_start:
                count = 0
            if count >= limit:
                return False, retry_after
            self._counters[key] = (window_start, count + 1)
            return True, 0

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()


class RedisAttemptLimiter(AttemptLimiter):
    def __init__(self, redis_url: str, prefix: str = "attempts") -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
            decode_responses=True,
        )
        self._prefix = prefix

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        window_start, retry_after = _window_bounds(time.time(), window_seconds)
        redis_key = f"{self._prefix}:{key}:{window_start}"

        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, window_seconds + 5)
        count, _ = pipe.execute()

        if int(count) > limit:
            return False, retry_after
        return True, 0

    def reset(self) -> None:
        keys = list(self._client.scan_iter(match=f"{self._prefix}:*"))
        if keys:
            self._client.delete(*keys)


class FallbackAttemptLimiter(AttemptLimiter):
    def __init__(self, primary: AttemptLimiter, fallback: AttemptLimiter) -> None:
        self._primary = primary
        self._fallback = fallback

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        try:
            return self._primary.hit(key=key, limit=limit, window_seconds=window_seconds)
        except redis.RedisError:
            logger.warning("attempt_limiter_fallback key=%s", key)
            return self._fallback.hit(key=key, limit=limit, window_seconds=window_seconds)

    def reset(self) -> None:
        try:
            self._primary.reset()
        except redis.RedisError:
            logger.warning("attempt_limiter_reset_skipped backend=redis")
        self._fallback.reset()


def _build_attempt_limiter() -> AttemptLimiter:
    backend = settings.rate_limit_backend.strip().lower()
    memory = InMemoryAttemptLimiter()
    if backend == "redis":
        return FallbackAttemptLimiter(
            primary=RedisAttemptLimiter(redis_url=settings.rate_limit_redis_url),
            fallback=memory,
        )
    return memory


attempt_limiter: AttemptLimiter = _build_attempt_limiter()
