"""Redis connection pool for the optional leaderboard cache.

An empty ``MT_REDIS_URL`` disables caching; callers then receive ``None``
and go straight to the database.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool (no-op for an empty URL)."""
    global _pool  # noqa: PLW0603
    if not url:
        _pool = None
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
    _pool = None


def get_redis() -> redis.Redis | None:
    """Get the Redis client, or None when caching is disabled."""
    return _pool
