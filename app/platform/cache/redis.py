from functools import lru_cache

from redis import Redis

from app.platform.config import settings


@lru_cache
def get_redis() -> Redis:
    """Shared sync Redis client (rate limiting)."""
    return Redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )
