"""Nudge generation, listing and dismissal on top of the progress store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import structlog

from mathtutor.config import get_settings
from mathtutor.errors import ProgressError
from mathtutor.gamification.streak_service import get_streak
from mathtutor.gamification.xp_service import get_xp
from mathtutor.practice.performance import normalize_subject
from mathtutor.records import Nudge, StreakRecord, XPRecord
from mathtutor.social.nudge_rules import EngagementSnapshot, evaluate
from mathtutor.store import ProgressStore, as_utc

logger = structlog.get_logger()


async def build_engagement_snapshot(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None = None,
    *,
    now: datetime | None = None,
) -> EngagementSnapshot:
    """Assemble the snapshot the rules run against.

    Each lookup degrades on its own: a failing XP or streak read yields the
    zero record, a failing history read yields "no recent activity".
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    tz = ZoneInfo(settings.study_timezone)
    today = now.astimezone(tz).date()

    try:
        xp = await get_xp(store, user_id, profile_id)
    except ProgressError as exc:
        logger.warning("engagement_xp_unavailable", user_id=user_id, error=str(exc))
        xp = XPRecord(user_id=user_id, profile_id=profile_id)
    try:
        streak = await get_streak(store, user_id, profile_id)
    except ProgressError as exc:
        logger.warning("engagement_streak_unavailable", user_id=user_id, error=str(exc))
        streak = StreakRecord(user_id=user_id, profile_id=profile_id)

    since = now - timedelta(days=settings.recent_subjects_days)
    try:
        history = await store.get_problem_history(user_id, profile_id, since=since)
    except ProgressError as exc:
        logger.warning("engagement_history_unavailable", user_id=user_id, error=str(exc))
        history = []

    problems_today = sum(
        1 for a in history if a.created_at and as_utc(a.created_at).astimezone(tz).date() == today
    )
    recent_subjects: list[str] = []
    for attempt in reversed(history):
        subject = normalize_subject(attempt.subject)
        if subject not in recent_subjects:
            recent_subjects.append(subject)

    activity = [t for t in (xp.updated_at, history[0].created_at if history else None) if t]
    return EngagementSnapshot(
        last_active=max(as_utc(t) for t in activity) if activity else None,
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        total_xp=xp.total_xp,
        problems_today=problems_today,
        daily_goal=settings.daily_goal,
        recent_subjects=tuple(recent_subjects),
        level=xp.level,
        xp_to_next_level=xp.xp_to_next_level,
    )


async def generate_nudges(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None = None,
    *,
    now: datetime | None = None,
) -> list[Nudge]:
    """Evaluate the rules and persist the winners, reusing any active nudge of the same type."""
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    snapshot = await build_engagement_snapshot(store, user_id, profile_id, now=now)
    drafts = evaluate(snapshot, now, ZoneInfo(settings.study_timezone), cap=settings.nudge_cap)

    nudges = []
    for draft in drafts:
        existing = await store.find_active_nudge(user_id, profile_id, draft.type, now)
        if existing is not None:
            nudges.append(existing)
            continue
        created = await store.insert_nudge(Nudge(
            user_id=user_id,
            profile_id=profile_id,
            type=draft.type,
            title=draft.title,
            message=draft.message,
            priority=draft.priority,
            action=draft.action,
            created_at=now,
            expires_at=draft.expires_at,
        ))
        logger.info("nudge_created", user_id=user_id, type=draft.type, priority=draft.priority)
        nudges.append(created)
    return nudges


async def list_active_nudges(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None = None,
    *,
    now: datetime | None = None,
) -> list[Nudge]:
    return await store.list_active_nudges(user_id, profile_id, now or datetime.now(timezone.utc))


async def dismiss_nudge(store: ProgressStore, nudge_id: str, user_id: str) -> bool:
    """Dismiss a nudge owned by ``user_id``. Dismissal cannot be undone."""
    dismissed = await store.dismiss_nudge(nudge_id, user_id)
    if dismissed:
        logger.info("nudge_dismissed", user_id=user_id, nudge_id=nudge_id)
    return dismissed
