"""Optional Redis cache for enriched top-N leaderboard pages.

The cache is advisory: any Redis failure is logged and the caller falls back
to the store. A ``None`` client disables it entirely.
"""

from __future__ import annotations

import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "leaderboard:top"


def build_cache_key(limit: int) -> str:
    return f"{KEY_PREFIX}:{limit}"


async def get_cached_top(redis: Redis | None, limit: int) -> list[dict] | None:
    if redis is None:
        return None
    try:
        raw = await redis.get(build_cache_key(limit))
    except (RedisError, OSError) as exc:
        logger.warning("Leaderboard cache read failed: %s", exc)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding corrupt leaderboard cache entry for limit=%d", limit)
        return None


async def set_cached_top(redis: Redis | None, limit: int, entries: list[dict], ttl: int) -> None:
    if redis is None or ttl <= 0:
        return
    try:
        await redis.set(build_cache_key(limit), json.dumps(entries), ex=ttl)
    except (RedisError, OSError) as exc:
        logger.warning("Leaderboard cache write failed: %s", exc)


async def invalidate_leaderboard(redis: Redis | None) -> int:
    """Drop every cached page. Returns the number of keys removed."""
    if redis is None:
        return 0
    try:
        keys = [key async for key in redis.scan_iter(match=f"{KEY_PREFIX}:*")]
        if not keys:
            return 0
        return await redis.delete(*keys)
    except (RedisError, OSError) as exc:
        logger.warning("Leaderboard cache invalidation failed: %s", exc)
        return 0
