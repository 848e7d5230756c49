"""XP ledger: award computation, history, and compare-and-swap persistence."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from mathtutor.config import get_settings
from mathtutor.errors import ConflictError, InvalidInputError
from mathtutor.gamification.streak_service import study_day
from mathtutor.records import XPRecord
from mathtutor.store import ProgressStore

logger = logging.getLogger(__name__)

DIFFICULTY_BASE_XP: dict[str, int] = {
    "elementary": 5,
    "middle": 10,
    "high": 15,
    "advanced": 20,
}
DEFAULT_BASE_XP = DIFFICULTY_BASE_XP["middle"]
HINT_PENALTY = 2
MIN_PROBLEM_XP = 5

FIRST_LOGIN_BONUS = 60  # first login + daily
DAILY_LOGIN_BONUS = 10


def award_amount(difficulty: str | None, hints_used: int = 0) -> int:
    """XP for a completed problem. Unknown difficulty uses the middle base."""
    if hints_used < 0:
        raise InvalidInputError(f"hints_used must be non-negative, got {hints_used}")
    base = DIFFICULTY_BASE_XP.get((difficulty or "").strip().lower(), DEFAULT_BASE_XP)
    return max(MIN_PROBLEM_XP, base - hints_used * HINT_PENALTY)


def login_bonus_amount(is_first_login: bool) -> int:
    return FIRST_LOGIN_BONUS if is_first_login else DAILY_LOGIN_BONUS


def _history_entry(amount: int, reason: str, now: datetime, key: str | None) -> dict:
    entry = {
        "date": study_day(now).isoformat(),
        "xp": amount,
        "reason": reason,
        "timestamp": int(now.timestamp() * 1000),
    }
    if key is not None:
        entry["key"] = key
    return entry


def award(
    record: XPRecord,
    amount: int,
    reason: str,
    now: datetime,
    key: str | None = None,
) -> XPRecord:
    """Return a new record with ``amount`` added and the history entry appended.

    If ``key`` is already present in the history the award was applied
    before and the record is returned unchanged.
    """
    if amount < 0:
        raise InvalidInputError(f"XP award must be non-negative, got {amount}")
    if key is not None and any(e.get("key") == key for e in record.xp_history):
        return record
    return replace(
        record,
        total_xp=record.total_xp + amount,
        xp_history=(*record.xp_history, _history_entry(amount, reason, now, key)),
        updated_at=now,
    )


def adjust(record: XPRecord, delta: int, reason: str, now: datetime) -> XPRecord:
    """Admin correction. May lower XP (never below zero); still appends to history."""
    new_total = max(0, record.total_xp + delta)
    return replace(
        record,
        total_xp=new_total,
        xp_history=(*record.xp_history, _history_entry(new_total - record.total_xp, reason, now, None)),
        updated_at=now,
    )


def _entry_timestamp(entry: dict) -> int:
    if entry.get("timestamp") is not None:
        return int(entry["timestamp"])
    try:
        day = datetime.fromisoformat(str(entry.get("date")))
    except ValueError:
        return 0
    if day.tzinfo is None:
        day = day.replace(tzinfo=timezone.utc)
    return int(day.timestamp() * 1000)


def recent_gains(record: XPRecord, limit: int = 10) -> list[dict]:
    """Newest XP gains first, as ``{xp, reason, timestamp}``."""
    gains = [
        {"xp": e.get("xp", 0), "reason": e.get("reason", ""), "timestamp": _entry_timestamp(e)}
        for e in record.xp_history
    ]
    gains.sort(key=lambda g: g["timestamp"], reverse=True)
    return gains[:limit]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


async def get_xp(store: ProgressStore, user_id: str, profile_id: str | None = None) -> XPRecord:
    """Stored record, or the level-1 zero record when the user has none yet."""
    record = await store.get_xp(user_id, profile_id)
    return record or XPRecord(user_id=user_id, profile_id=profile_id)


async def award_xp(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None,
    amount: int,
    reason: str,
    *,
    key: str | None = None,
    now: datetime | None = None,
    max_attempts: int | None = None,
) -> XPRecord:
    """Apply an award under a version check, re-reading on conflict.

    Raises ConflictError once ``max_attempts`` writes have lost the race.
    """
    if amount < 0:
        raise InvalidInputError(f"XP award must be non-negative, got {amount}")
    attempts = max_attempts or get_settings().write_max_attempts
    now = now or datetime.now(timezone.utc)

    for attempt in range(1, attempts + 1):
        current = await get_xp(store, user_id, profile_id)
        updated = award(current, amount, reason, now, key=key)
        if updated is current:
            logger.info("XP award already applied: user=%s key=%s", user_id, key)
            return current
        try:
            saved = await store.put_xp(updated, expected_version=current.version)
        except ConflictError:
            logger.debug("XP write conflict for %s (attempt %d/%d)", user_id, attempt, attempts)
            continue
        if saved.level > current.level:
            logger.info("Level up: user=%s %d -> %d", user_id, current.level, saved.level)
        return saved

    raise ConflictError(f"XP award for {user_id} lost {attempts} concurrent write races")


async def award_problem_xp(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None,
    problem_type: str,
    difficulty: str | None,
    hints_used: int = 0,
    *,
    key: str | None = None,
    now: datetime | None = None,
) -> tuple[int, XPRecord]:
    """Award XP for a solved problem. Returns ``(xp_gained, record)``."""
    amount = award_amount(difficulty, hints_used)
    record = await award_xp(
        store, user_id, profile_id, amount, f"Solved {problem_type} problem", key=key, now=now,
    )
    return amount, record


async def award_login_bonus(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None,
    is_first_login: bool,
    *,
    now: datetime | None = None,
) -> tuple[int, XPRecord]:
    """Daily login bonus; keyed by study day so a second login that day is a no-op."""
    now = now or datetime.now(timezone.utc)
    amount = login_bonus_amount(is_first_login)
    reason = "First Login Bonus + Daily Login" if is_first_login else "Daily Login Bonus"
    key = f"login:{study_day(now).isoformat()}"
    before = await get_xp(store, user_id, profile_id)
    if any(e.get("key") == key for e in before.xp_history):
        return 0, before
    record = await award_xp(store, user_id, profile_id, amount, reason, key=key, now=now)
    return amount, record
