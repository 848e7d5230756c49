"""Concurrent writers converge under the version check."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest

from mathtutor.gamification.streak_service import record_study
from mathtutor.gamification.xp_service import award_xp, get_xp
from tests.fakes import InMemoryProgressStore

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
@pytest.mark.parametrize("writers", [2, 10, 25])
async def test_concurrent_awards_do_not_lose_updates(writers):
    store = InMemoryProgressStore(interleave=True)
    await award_xp(store, "u1", None, 40, "seed", now=NOW)

    await asyncio.gather(*(
        award_xp(store, "u1", None, 7, f"award {i}", now=NOW, max_attempts=writers + 1)
        for i in range(writers)
    ))

    record = await get_xp(store, "u1")
    assert record.total_xp == 40 + writers * 7
    assert len(record.xp_history) == writers + 1
    assert record.version == writers + 1
    assert store.conflicts > 0


@pytest.mark.asyncio
async def test_concurrent_keyed_awards_count_once():
    store = InMemoryProgressStore(interleave=True)

    await asyncio.gather(*(
        award_xp(store, "u1", None, 10, "retry", key="problem:same", now=NOW, max_attempts=6)
        for _ in range(5)
    ))

    record = await get_xp(store, "u1")
    assert record.total_xp == 10
    assert len(record.xp_history) == 1


@pytest.mark.asyncio
async def test_concurrent_first_writes_create_one_record():
    store = InMemoryProgressStore(interleave=True)

    await asyncio.gather(*(
        award_xp(store, "new-user", None, 5, "first", now=NOW, max_attempts=5)
        for _ in range(4)
    ))

    assert (await get_xp(store, "new-user")).total_xp == 20


@pytest.mark.asyncio
async def test_concurrent_study_events_same_day():
    store = InMemoryProgressStore(interleave=True)
    today = date(2026, 10, 16)

    results = await asyncio.gather(*(
        record_study(store, "u1", today=today, max_attempts=6) for _ in range(5)
    ))

    assert all(r.current_streak == 1 for r in results)
    saved = store.streaks[("u1", None)]
    assert (saved.current_streak, saved.longest_streak, saved.version) == (1, 1, 1)
