"""Loads problem history and feeds it to the aggregator and selector."""

from __future__ import annotations

import structlog

from mathtutor.config import get_settings
from mathtutor.practice.performance import PerformanceSummary, summarize
from mathtutor.practice.selector import build_session, get_analysis
from mathtutor.store import ProgressStore

logger = structlog.get_logger()


async def load_summary(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None = None,
    window: int | None = None,
) -> PerformanceSummary:
    """Performance summary over the most recent ``window`` attempts."""
    window = window or get_settings().history_window
    history = await store.get_problem_history(user_id, profile_id, limit=window)
    return summarize(history)


async def practice_session(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None,
    session_type: str,
    count: int,
) -> dict:
    summary = await load_summary(store, user_id, profile_id)
    session = build_session(session_type, count, summary)
    logger.info(
        "practice_session_generated",
        user_id=user_id,
        session_type=session["session_type"],
        problems=len(session["problems"]),
        subjects_seen=len(summary.subjects),
    )
    return session


async def practice_analysis(store: ProgressStore, user_id: str, profile_id: str | None) -> dict:
    return get_analysis(await load_summary(store, user_id, profile_id))
