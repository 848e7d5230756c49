"""Pydantic response models for nudge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class NudgeAction(BaseModel):
    label: str
    kind: str
    data: dict | None = None


class NudgeResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    priority: str
    action: NudgeAction | None = None
    dismissed: bool = False
    created_at: datetime | None = None
    expires_at: datetime | None = None


class NudgeListResponse(BaseModel):
    nudges: list[NudgeResponse]


class DismissRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class DismissResponse(BaseModel):
    dismissed: bool
