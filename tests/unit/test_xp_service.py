"""Tests for XP awards, history and persistence helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from mathtutor.config import get_settings
from mathtutor.errors import ConflictError, InvalidInputError
from mathtutor.gamification.streak_service import study_day
from mathtutor.gamification.xp_service import (
    adjust,
    award,
    award_amount,
    award_login_bonus,
    award_xp,
    get_xp,
    recent_gains,
)
from mathtutor.records import XPRecord

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


class TestAwardAmount:
    @pytest.mark.parametrize(
        ("difficulty", "hints", "expected"),
        [
            ("elementary", 0, 5),
            ("middle", 0, 10),
            ("high", 0, 15),
            ("advanced", 0, 20),
            ("advanced", 3, 14),
            ("high", 1, 13),
            ("middle", 5, 5),
            ("advanced", 50, 5),
            (None, 0, 10),
            ("olympiad", 0, 10),
            (" High ", 0, 15),
        ],
    )
    def test_formula(self, difficulty, hints, expected):
        assert award_amount(difficulty, hints) == expected

    def test_never_below_floor(self):
        for difficulty in ("elementary", "middle", "high", "advanced", None):
            for hints in range(0, 30):
                assert award_amount(difficulty, hints) >= 5

    def test_negative_hints_rejected(self):
        with pytest.raises(InvalidInputError):
            award_amount("middle", -1)


class TestAward:
    def test_adds_amount_and_appends_history(self):
        record = XPRecord(user_id="u1")
        updated = award(record, 15, "Solved algebra problem", NOW)

        assert updated.total_xp == 15
        assert updated.xp_history[-1]["xp"] == 15
        assert updated.xp_history[-1]["reason"] == "Solved algebra problem"
        assert updated.xp_history[-1]["date"] == "2026-10-16"
        assert updated.xp_history[-1]["timestamp"] == int(NOW.timestamp() * 1000)
        assert updated.updated_at == NOW

    def test_input_record_untouched(self):
        record = XPRecord(user_id="u1", total_xp=40)
        award(record, 10, "x", NOW)
        assert record.total_xp == 40
        assert record.xp_history == ()

    def test_level_follows_total(self):
        record = award(XPRecord(user_id="u1", total_xp=95), 10, "x", NOW)
        assert record.level == 2
        assert record.xp_to_next_level == 245

    def test_history_is_append_only(self):
        record = XPRecord(user_id="u1")
        for i in range(5):
            before = record.xp_history
            record = award(record, i + 1, f"r{i}", NOW)
            assert record.xp_history[: len(before)] == before

    def test_key_makes_award_idempotent(self):
        first = award(XPRecord(user_id="u1"), 10, "x", NOW, key="problem:abc")
        second = award(first, 10, "x", NOW, key="problem:abc")
        assert second is first
        assert second.total_xp == 10

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidInputError):
            award(XPRecord(user_id="u1"), -5, "x", NOW)


class TestAdjust:
    def test_can_lower_xp(self):
        record = adjust(XPRecord(user_id="u1", total_xp=100), -30, "correction", NOW)
        assert record.total_xp == 70
        assert record.xp_history[-1]["xp"] == -30

    def test_floors_at_zero(self):
        record = adjust(XPRecord(user_id="u1", total_xp=20), -100, "correction", NOW)
        assert record.total_xp == 0
        assert record.xp_history[-1]["xp"] == -20


class TestRecentGains:
    def test_scenario_two_entries(self):
        record = XPRecord(
            user_id="u1",
            total_xp=150,
            xp_history=(
                {"date": "2026-10-15", "xp": 10, "reason": "a", "timestamp": 1_000},
                {"date": "2026-10-16", "xp": 20, "reason": "b", "timestamp": 2_000},
            ),
        )
        assert record.level == 2
        gains = recent_gains(record)
        assert [g["xp"] for g in gains] == [20, 10]
        assert len(gains) <= 10

    def test_limited_to_ten(self):
        history = tuple({"xp": i, "reason": "r", "timestamp": i} for i in range(15))
        gains = recent_gains(XPRecord(user_id="u1", xp_history=history))
        assert len(gains) == 10
        assert gains[0]["xp"] == 14

    def test_missing_timestamp_falls_back_to_date(self):
        record = XPRecord(
            user_id="u1",
            xp_history=(
                {"date": "2026-10-10", "xp": 5, "reason": "old"},
                {"date": "2026-10-12", "xp": 7, "reason": "new"},
            ),
        )
        assert [g["reason"] for g in recent_gains(record)] == ["new", "old"]


class TestPersistence:
    @pytest.mark.asyncio
    async def test_absent_record_reads_as_default(self, memory_store):
        record = await get_xp(memory_store, "nobody")
        assert record.total_xp == 0
        assert record.level == 1
        assert record.xp_to_next_level == 100
        assert record.xp_history == ()

    @pytest.mark.asyncio
    async def test_award_xp_persists(self, memory_store):
        await award_xp(memory_store, "u1", None, 10, "a", now=NOW)
        saved = await award_xp(memory_store, "u1", None, 15, "b", now=NOW)
        assert saved.total_xp == 25
        assert saved.version == 2
        assert (await get_xp(memory_store, "u1")).total_xp == 25

    @pytest.mark.asyncio
    async def test_keyed_retry_not_double_counted(self, memory_store):
        await award_xp(memory_store, "u1", None, 10, "a", key="problem:1", now=NOW)
        again = await award_xp(memory_store, "u1", None, 10, "a", key="problem:1", now=NOW)
        assert again.total_xp == 10
        assert len(again.xp_history) == 1

    @pytest.mark.asyncio
    async def test_profiles_are_separate(self, memory_store):
        await award_xp(memory_store, "u1", None, 10, "a", now=NOW)
        await award_xp(memory_store, "u1", "kid", 20, "b", now=NOW)
        assert (await get_xp(memory_store, "u1")).total_xp == 10
        assert (await get_xp(memory_store, "u1", "kid")).total_xp == 20

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_conflict(self, memory_store, monkeypatch):
        async def always_stale(record, expected_version):
            raise ConflictError("stale")

        monkeypatch.setattr(memory_store, "put_xp", always_stale)
        with pytest.raises(ConflictError):
            await award_xp(memory_store, "u1", None, 10, "a", now=NOW, max_attempts=3)

    @pytest.mark.asyncio
    async def test_negative_award_rejected_before_store(self, memory_store):
        with pytest.raises(InvalidInputError):
            await award_xp(memory_store, "u1", None, -1, "a", now=NOW)
        assert memory_store.xp == {}


class TestLoginBonus:
    @pytest.mark.asyncio
    async def test_first_login(self, memory_store):
        gained, record = await award_login_bonus(memory_store, "u1", None, True, now=NOW)
        assert gained == 60
        assert record.total_xp == 60
        assert record.xp_history[-1]["reason"] == "First Login Bonus + Daily Login"

    @pytest.mark.asyncio
    async def test_once_per_day(self, memory_store):
        await award_login_bonus(memory_store, "u1", None, False, now=NOW)
        gained, record = await award_login_bonus(memory_store, "u1", None, False, now=NOW)
        assert gained == 0
        assert record.total_xp == 10

    @pytest.mark.asyncio
    async def test_next_day_awards_again(self, memory_store):
        await award_login_bonus(memory_store, "u1", None, False, now=NOW)
        later = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)
        gained, record = await award_login_bonus(memory_store, "u1", None, False, now=later)
        assert gained == 10
        assert record.total_xp == 20

    @pytest.mark.asyncio
    async def test_day_follows_study_timezone(self, memory_store, monkeypatch):
        monkeypatch.setenv("MT_STUDY_TIMEZONE", "America/Los_Angeles")
        get_settings.cache_clear()
        morning = datetime(2026, 10, 16, 18, 0, tzinfo=timezone.utc)  # 11:00 PDT
        evening = datetime(2026, 10, 17, 3, 0, tzinfo=timezone.utc)  # 20:00 PDT, same study day

        await award_login_bonus(memory_store, "u1", None, False, now=morning)
        gained, record = await award_login_bonus(memory_store, "u1", None, False, now=evening)

        assert gained == 0
        assert record.xp_history[-1]["date"] == "2026-10-16"
        assert study_day(evening) == date(2026, 10, 16)
