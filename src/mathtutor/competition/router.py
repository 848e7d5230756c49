"""Leaderboard API endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from mathtutor.competition.leaderboard_service import get_leaderboard
from mathtutor.competition.schemas import LeaderboardEntryResponse, LeaderboardResponse
from mathtutor.dependencies import get_redis_dep, get_store
from mathtutor.store import ProgressStore

router = APIRouter(prefix="/api/v1", tags=["Competition"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def read_leaderboard(
    user_id: str | None = Query(None, description="Include this user's rank and entry"),
    limit: int | None = Query(None, ge=1, le=100),
    store: ProgressStore = Depends(get_store),
    redis=Depends(get_redis_dep),
):
    """Global XP leaderboard over top-level accounts."""
    data = await get_leaderboard(store, user_id, limit, redis=redis)
    entries = [
        LeaderboardEntryResponse(rank=i + 1, is_current_user=e["user_id"] == user_id, **e)
        for i, e in enumerate(data["entries"])
    ]
    user_entry = None
    if data["user_entry"] is not None and data["user_rank"] is not None:
        user_entry = LeaderboardEntryResponse(
            rank=data["user_rank"], is_current_user=True, **data["user_entry"],
        )
    return LeaderboardResponse(
        entries=entries,
        user_rank=data["user_rank"],
        user_entry=user_entry,
        total_players=data["total_players"],
    )
