"""Daily study streaks: calendar-day transitions and persistence."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from mathtutor.config import get_settings
from mathtutor.errors import ConflictError
from mathtutor.records import StreakRecord
from mathtutor.store import ProgressStore

logger = logging.getLogger(__name__)


def study_day(now: datetime | None = None, tz_name: str | None = None) -> date:
    """Calendar date of ``now`` in the study timezone (UTC unless configured)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name or get_settings().study_timezone)).date()


def days_between(earlier: date, later: date) -> int:
    """Whole calendar days from ``earlier`` to ``later``. Times of day never matter."""
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    if isinstance(later, datetime):
        later = later.date()
    return (later - earlier).days


def apply_study(record: StreakRecord, today: date) -> StreakRecord:
    """Transition a streak for a study event on ``today``.

    - no previous study: 1/1
    - same day (or a last_study_date ahead of today): unchanged
    - next day: current + 1, longest = max(longest, current)
    - gap of two or more days: current resets to 1, longest kept
    """
    if record.last_study_date is None:
        return replace(record, current_streak=1, longest_streak=max(record.longest_streak, 1),
                       last_study_date=today)

    gap = days_between(record.last_study_date, today)
    if gap <= 0:
        return record
    if gap == 1:
        current = record.current_streak + 1
        return replace(record, current_streak=current,
                       longest_streak=max(record.longest_streak, current), last_study_date=today)
    return replace(record, current_streak=1, last_study_date=today)


async def get_streak(store: ProgressStore, user_id: str, profile_id: str | None = None) -> StreakRecord:
    """Stored streak, or ``{0, 0, None}`` when the user has never studied."""
    record = await store.get_streak(user_id, profile_id)
    return record or StreakRecord(user_id=user_id, profile_id=profile_id)


async def record_study(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None = None,
    *,
    today: date | None = None,
    max_attempts: int | None = None,
) -> StreakRecord:
    """Apply a study event under a version check, re-reading on conflict."""
    today = today or study_day()
    attempts = max_attempts or get_settings().write_max_attempts

    for attempt in range(1, attempts + 1):
        current = await get_streak(store, user_id, profile_id)
        updated = apply_study(current, today)
        if updated is current:
            return current
        try:
            saved = await store.put_streak(updated, expected_version=current.version)
        except ConflictError:
            logger.debug("Streak write conflict for %s (attempt %d/%d)", user_id, attempt, attempts)
            continue
        if saved.current_streak == 1 and current.current_streak > 1:
            logger.info("Streak broken: user=%s was %d days", user_id, current.current_streak)
        return saved

    raise ConflictError(f"Streak update for {user_id} lost {attempts} concurrent write races")
