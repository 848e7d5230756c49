"""Nudge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from mathtutor.dependencies import get_store, profile_scope
from mathtutor.records import Nudge
from mathtutor.social.nudge_service import dismiss_nudge, generate_nudges, list_active_nudges
from mathtutor.social.schemas import (
    DismissRequest,
    DismissResponse,
    NudgeAction,
    NudgeListResponse,
    NudgeResponse,
)
from mathtutor.store import ProgressStore

router = APIRouter(prefix="/api/v1/nudges", tags=["Nudges"])


def _to_response(n: Nudge) -> NudgeResponse:
    return NudgeResponse(
        id=n.id or "",
        type=n.type,
        title=n.title,
        message=n.message,
        priority=n.priority,
        action=NudgeAction(**n.action) if n.action else None,
        dismissed=n.dismissed,
        created_at=n.created_at,
        expires_at=n.expires_at,
    )


@router.get("", response_model=NudgeListResponse)
async def get_nudges(
    user_id: str = Query(..., min_length=1),
    profile_id: str | None = Depends(profile_scope),
    store: ProgressStore = Depends(get_store),
):
    """Evaluate re-engagement rules and return up to three prioritized nudges."""
    nudges = await generate_nudges(store, user_id, profile_id)
    return NudgeListResponse(nudges=[_to_response(n) for n in nudges])


@router.get("/active", response_model=NudgeListResponse)
async def get_active_nudges(
    user_id: str = Query(..., min_length=1),
    profile_id: str | None = Depends(profile_scope),
    store: ProgressStore = Depends(get_store),
):
    nudges = await list_active_nudges(store, user_id, profile_id)
    return NudgeListResponse(nudges=[_to_response(n) for n in nudges])


@router.post("/{nudge_id}/dismiss", response_model=DismissResponse)
async def post_dismiss(
    nudge_id: str,
    body: DismissRequest,
    store: ProgressStore = Depends(get_store),
):
    """Dismiss a nudge. Unknown, foreign or already dismissed ids return ``dismissed: false``."""
    return DismissResponse(dismissed=await dismiss_nudge(store, nudge_id, body.user_id))
