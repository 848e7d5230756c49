"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Query

from mathtutor.database import get_session_factory
from mathtutor.redis_client import get_redis as _get_redis
from mathtutor.store import ProgressStore, SqlProgressStore


def get_store() -> ProgressStore:
    """Progress store bound to the application's session factory."""
    return SqlProgressStore(get_session_factory())


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client (or None when caching is disabled) as a FastAPI dependency."""
    yield _get_redis()


def normalize_profile_id(profile_id: str | None) -> str | None:
    """Clients send the literal string ``"null"`` for the top-level account."""
    if profile_id is None:
        return None
    profile_id = profile_id.strip()
    if not profile_id or profile_id.lower() in ("null", "none", "undefined"):
        return None
    return profile_id


def profile_scope(
    profile_id: str | None = Query(None, description="Sub-profile id; omit or 'null' for the account"),
) -> str | None:
    return normalize_profile_id(profile_id)
