"""Problem-completed event: history, XP and streak side effects.

The three writes are independent and best-effort. A failing write is logged and
reported through its flag on ``CompletionResult``; it never fails the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from mathtutor.errors import InvalidInputError, ProgressError
from mathtutor.gamification.streak_service import record_study, study_day
from mathtutor.gamification.xp_service import award_problem_xp
from mathtutor.records import ProblemAttempt, StreakRecord, XPRecord
from mathtutor.store import ProgressStore

logger = structlog.get_logger()


@dataclass
class CompletionResult:
    history_ok: bool = False
    xp_ok: bool = False
    streak_ok: bool = False
    xp_gained: int = 0
    xp: XPRecord | None = None
    streak: StreakRecord | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.history_ok and self.xp_ok and self.streak_ok


async def complete_problem(
    store: ProgressStore,
    user_id: str,
    profile_id: str | None,
    problem_type: str,
    difficulty: str | None = None,
    hints_used: int = 0,
    *,
    attempts: int = 1,
    time_spent_seconds: int = 0,
    completion_id: str | None = None,
    now: datetime | None = None,
) -> CompletionResult:
    """Record a solved problem, award XP and advance the streak.

    ``completion_id`` makes a client retry safe: the history row and the XP
    award are each written at most once per id.
    Invalid input (e.g. negative hints) raises before anything is written.
    """
    now = now or datetime.now(timezone.utc)
    if hints_used < 0 or attempts < 0 or time_spent_seconds < 0:
        raise InvalidInputError("hints_used, attempts and time_spent_seconds must be non-negative")

    result = CompletionResult()
    log = logger.bind(user_id=user_id, profile_id=profile_id, problem_type=problem_type)

    try:
        recorded = await store.add_problem_attempt(ProblemAttempt(
            user_id=user_id,
            profile_id=profile_id,
            subject=problem_type,
            difficulty=difficulty,
            attempts=attempts,
            time_spent_seconds=time_spent_seconds,
            hints_used=hints_used,
            completed=True,
            created_at=now,
            completion_id=completion_id,
        ))
        if not recorded:
            log.info("problem_history_already_recorded", completion_id=completion_id)
        result.history_ok = True
    except ProgressError as exc:
        log.warning("problem_history_write_failed", error=str(exc))
        result.errors["history"] = str(exc)

    try:
        key = f"problem:{completion_id}" if completion_id else None
        result.xp_gained, result.xp = await award_problem_xp(
            store, user_id, profile_id, problem_type, difficulty, hints_used, key=key, now=now,
        )
        result.xp_ok = True
    except ProgressError as exc:
        log.warning("xp_award_failed", error=str(exc), retryable=exc.retryable)
        result.errors["xp"] = str(exc)

    try:
        result.streak = await record_study(store, user_id, profile_id, today=study_day(now))
        result.streak_ok = True
    except ProgressError as exc:
        log.warning("streak_update_failed", error=str(exc), retryable=exc.retryable)
        result.errors["streak"] = str(exc)

    log.info(
        "problem_completed",
        xp_gained=result.xp_gained,
        history_ok=result.history_ok,
        xp_ok=result.xp_ok,
        streak_ok=result.streak_ok,
    )
    return result
