"""
Submission rate limiting.

One accepted submission per identity per window: a request is allowed when the
time since the identity's last *accepted* submission is at least the window.
Rejected requests do not move the window.
"""
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Callable, Dict, Optional

from redis import Redis

from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)


class SubmissionRateLimiter(ABC):
    def __init__(self, window_seconds: int = 60):
        self.window_seconds = window_seconds

    @abstractmethod
    def try_acquire(self, identity: str) -> bool:
        """Record an accepted submission for `identity`, or return False if inside the window."""

    @abstractmethod
    def release(self, identity: str) -> None:
        """Forget the last accepted submission (used when enqueueing failed)."""

    @abstractmethod
    def retry_after(self, identity: str) -> int:
        """Seconds until `identity` may submit again (0 if allowed now)."""


class InMemorySubmissionRateLimiter(SubmissionRateLimiter):
    """Per-process limiter. Not shared across API instances."""

    def __init__(self, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        super().__init__(window_seconds)
        self._clock = clock
        self._last_accepted: Dict[str, float] = {}
        self._lock = Lock()

    def try_acquire(self, identity: str) -> bool:
        now = self._clock()
        with self._lock:
            self._prune(now)
            last = self._last_accepted.get(identity)
            if last is not None and now - last < self.window_seconds:
                return False
            self._last_accepted[identity] = now
            return True

    def release(self, identity: str) -> None:
        with self._lock:
            self._last_accepted.pop(identity, None)

    def retry_after(self, identity: str) -> int:
        with self._lock:
            last = self._last_accepted.get(identity)
        if last is None:
            return 0
        remaining = self.window_seconds - (self._clock() - last)
        return max(0, int(remaining + 0.999))

    def _prune(self, now: float) -> None:
        expired = [key for key, ts in self._last_accepted.items() if now - ts >= self.window_seconds]
        for key in expired:
            del self._last_accepted[key]


class RedisSubmissionRateLimiter(SubmissionRateLimiter):
    """Limiter shared by every API instance through `SET NX EX`."""

    key_prefix = "rl:scan:"

    def __init__(self, redis: Redis, window_seconds: int = 60):
        super().__init__(window_seconds)
        self.redis = redis

    def _key(self, identity: str) -> str:
        return f"{self.key_prefix}{identity}"

    def try_acquire(self, identity: str) -> bool:
        accepted = self.redis.set(self._key(identity), int(time.time()), nx=True, ex=self.window_seconds)
        return bool(accepted)

    def release(self, identity: str) -> None:
        self.redis.delete(self._key(identity))

    def retry_after(self, identity: str) -> int:
        ttl = self.redis.ttl(self._key(identity))
        return max(0, int(ttl))


def create_rate_limiter(redis: Optional[Redis] = None) -> SubmissionRateLimiter:
    window = settings.SCAN_RATE_LIMIT_WINDOW_SECONDS
    if settings.FORCE_IN_MEMORY_RATE_LIMITER:
        logger.info(f"Using in-memory submission rate limiter ({window}s window)")
        return InMemorySubmissionRateLimiter(window_seconds=window)

    if redis is None:
        from app.platform.cache.redis import get_redis

        redis = get_redis()
    logger.info(f"Using Redis submission rate limiter ({window}s window)")
    return RedisSubmissionRateLimiter(redis, window_seconds=window)
