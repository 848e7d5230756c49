"""Gamification API endpoints: XP, login bonus, levels, streak, problem completion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from mathtutor.competition.leaderboard_cache import invalidate_leaderboard
from mathtutor.dependencies import get_redis_dep, get_store, normalize_profile_id, profile_scope
from mathtutor.gamification.completion_service import complete_problem
from mathtutor.gamification.level_curve import compute_level, level_thresholds
from mathtutor.gamification.schemas import (
    AllLevelsResponse,
    LevelEntry,
    LoginBonusRequest,
    LoginBonusResponse,
    ProblemCompletedRequest,
    ProblemCompletedResponse,
    StreakResponse,
    XPGainEntry,
    XPResponse,
)
from mathtutor.gamification.streak_service import get_streak
from mathtutor.gamification.xp_service import award_login_bonus, get_xp, recent_gains
from mathtutor.store import ProgressStore

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(up_to: int = Query(30, ge=1, le=200)):
    """Level table with cumulative thresholds."""
    return AllLevelsResponse(levels=[LevelEntry(**t) for t in level_thresholds(up_to)])


@router.get("/xp", response_model=XPResponse)
async def read_xp(
    user_id: str = Query(..., min_length=1),
    profile_id: str | None = Depends(profile_scope),
    store: ProgressStore = Depends(get_store),
):
    """Current XP, level and the ten most recent gains."""
    record = await get_xp(store, user_id, profile_id)
    level_info = compute_level(record.total_xp)
    return XPResponse(
        user_id=user_id,
        profile_id=profile_id,
        total_xp=record.total_xp,
        level=level_info["level"],
        xp_to_next_level=level_info["xp_to_next_level"],
        xp_into_level=level_info["xp_into_level"],
        xp_for_level=level_info["xp_for_level"],
        rank_title=level_info["rank_title"],
        recent_gains=[XPGainEntry(**g) for g in recent_gains(record)],
    )


@router.post("/xp/login-bonus", response_model=LoginBonusResponse)
async def claim_login_bonus(
    body: LoginBonusRequest,
    store: ProgressStore = Depends(get_store),
    redis=Depends(get_redis_dep),
):
    """Award the daily login bonus. A second claim on the same day awards nothing."""
    profile_id = normalize_profile_id(body.profile_id)
    gained, record = await award_login_bonus(store, body.user_id, profile_id, body.is_first_login)
    if gained and profile_id is None:
        await invalidate_leaderboard(redis)
    return LoginBonusResponse(
        xp_gained=gained,
        total_xp=record.total_xp,
        level=record.level,
        xp_to_next_level=record.xp_to_next_level,
        already_claimed=gained == 0,
    )


@router.get("/streak", response_model=StreakResponse)
async def read_streak(
    user_id: str = Query(..., min_length=1),
    profile_id: str | None = Depends(profile_scope),
    store: ProgressStore = Depends(get_store),
):
    record = await get_streak(store, user_id, profile_id)
    return StreakResponse(
        user_id=user_id,
        profile_id=profile_id,
        current_streak=record.current_streak,
        longest_streak=record.longest_streak,
        last_study_date=record.last_study_date,
    )


@router.post("/problems/completed", response_model=ProblemCompletedResponse)
async def problem_completed(
    body: ProblemCompletedRequest,
    store: ProgressStore = Depends(get_store),
    redis=Depends(get_redis_dep),
):
    """Record a solved problem. Side-effect failures are reported per flag, not as an error."""
    profile_id = normalize_profile_id(body.profile_id)
    result = await complete_problem(
        store,
        body.user_id,
        profile_id,
        body.problem_type,
        body.difficulty,
        body.hints_used,
        attempts=body.attempts,
        time_spent_seconds=body.time_spent_seconds,
        completion_id=body.completion_id,
    )
    if result.xp_ok and profile_id is None:
        await invalidate_leaderboard(redis)
    return ProblemCompletedResponse(
        success=result.success,
        history_recorded=result.history_ok,
        xp_awarded=result.xp_ok,
        streak_updated=result.streak_ok,
        xp_gained=result.xp_gained,
        total_xp=result.xp.total_xp if result.xp else None,
        level=result.xp.level if result.xp else None,
        current_streak=result.streak.current_streak if result.streak else None,
        longest_streak=result.streak.longest_streak if result.streak else None,
        errors=result.errors,
    )
