"""Global XP leaderboard: top-N ranking with batched enrichment.

Only top-level accounts (``profile_id IS NULL``) compete. Ties on total XP are
ordered by ``user_id`` ascending so pages are reproducible.

Enrichment issues one batched lookup per field (identity, streak, solved
count) and runs the three concurrently. A failed lookup degrades its field to
the default instead of failing the read.
"""

from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis

from mathtutor.competition.leaderboard_cache import get_cached_top, set_cached_top
from mathtutor.config import get_settings
from mathtutor.gamification.level_curve import rank_for_level
from mathtutor.records import Identity, XPRecord
from mathtutor.store import ProgressStore

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"


def resolve_display_name(identity: Identity | None) -> str:
    """Display name, else the local part of the email, else "Anonymous"."""
    if identity is None:
        return ANONYMOUS
    if identity.display_name and identity.display_name.strip():
        return identity.display_name.strip()
    if identity.email and "@" in identity.email:
        local = identity.email.split("@", 1)[0].strip()
        if local:
            return local
    return ANONYMOUS


async def enrich(store: ProgressStore, records: list[XPRecord]) -> list[dict]:
    """Join XP records with identity, streak and solved-count lookup maps."""
    user_ids = [r.user_id for r in records]
    identities, streaks, solved = await asyncio.gather(
        store.batch_get_identity(user_ids),
        store.batch_get_streak(user_ids),
        store.batch_count_solved(user_ids),
        return_exceptions=True,
    )
    lookups = {"identity": identities, "streak": streaks, "solved": solved}
    for field, value in lookups.items():
        if isinstance(value, Exception):
            logger.warning("Leaderboard %s lookup failed, using defaults: %s", field, value)
            lookups[field] = {}

    entries = []
    for record in records:
        level = record.level
        tier = rank_for_level(level)
        entries.append({
            "user_id": record.user_id,
            "display_name": resolve_display_name(lookups["identity"].get(record.user_id)),
            "total_xp": record.total_xp,
            "level": level,
            "rank_title": tier["title"],
            "rank_badge": tier["badge"],
            "rank_color": tier["color"],
            "problems_solved": lookups["solved"].get(record.user_id, 0),
            "current_streak": lookups["streak"].get(record.user_id, 0),
            "last_active": record.updated_at.isoformat() if record.updated_at else None,
        })
    return entries


async def top_n(store: ProgressStore, limit: int) -> list[dict]:
    """Enriched top ``limit`` accounts, highest XP first."""
    records = await store.query_top_xp(limit)
    if not records:
        return []
    return await enrich(store, records)


async def rank_of(store: ProgressStore, user_id: str, top_entries: list[dict]) -> int | None:
    """1-based rank; taken from ``top_entries`` when present, otherwise counted.

    Users with no XP have no rank.
    """
    for index, entry in enumerate(top_entries):
        if entry["user_id"] == user_id:
            return index + 1
    record = await store.get_xp(user_id, None)
    if record is None or record.total_xp <= 0:
        return None
    return await store.count_xp_greater_than(record.total_xp) + 1


async def get_leaderboard(
    store: ProgressStore,
    user_id: str | None = None,
    limit: int | None = None,
    redis: Redis | None = None,
) -> dict:
    """Leaderboard page plus the requesting user's rank and entry."""
    settings = get_settings()
    limit = max(1, min(limit or settings.leaderboard_default_limit, settings.leaderboard_max_limit))

    entries = await get_cached_top(redis, limit)
    if entries is None:
        entries = await top_n(store, limit)
        await set_cached_top(redis, limit, entries, settings.leaderboard_cache_ttl_seconds)

    user_rank = None
    user_entry = None
    if user_id:
        user_rank = await rank_of(store, user_id, entries)
        user_entry = next((e for e in entries if e["user_id"] == user_id), None)
        if user_entry is None and user_rank is not None:
            record = await store.get_xp(user_id, None)
            if record is not None:
                user_entry = (await enrich(store, [record]))[0]

    return {
        "entries": entries,
        "user_rank": user_rank,
        "user_entry": user_entry,
        "total_players": await store.count_xp_greater_than(0),
    }
