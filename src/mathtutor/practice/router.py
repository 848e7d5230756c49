"""Adaptive practice API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from mathtutor.dependencies import get_store, profile_scope
from mathtutor.practice.practice_service import practice_analysis, practice_session
from mathtutor.practice.schemas import PracticeAnalysisResponse, PracticeSessionResponse
from mathtutor.store import ProgressStore

router = APIRouter(prefix="/api/v1/practice", tags=["Practice"])


@router.get("/session", response_model=PracticeSessionResponse)
async def get_practice_session(
    user_id: str = Query(..., min_length=1),
    profile_id: str | None = Depends(profile_scope),
    session_type: str = Query("balanced", alias="type"),
    count: int = Query(5, description="Clamped to 1-10"),
    store: ProgressStore = Depends(get_store),
):
    """Generate a practice set for the requested intent (balanced, weakness, strength, challenge)."""
    return await practice_session(store, user_id, profile_id, session_type, count)


@router.get("/analysis", response_model=PracticeAnalysisResponse)
async def get_practice_analysis(
    user_id: str = Query(..., min_length=1),
    profile_id: str | None = Depends(profile_scope),
    store: ProgressStore = Depends(get_store),
):
    return await practice_analysis(store, user_id, profile_id)
