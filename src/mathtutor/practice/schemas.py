"""Pydantic response models for adaptive practice endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class PracticeItemResponse(BaseModel):
    subject: str
    difficulty: str
    reason: str
    focus_area: str
    estimated_xp: int


class PracticeSessionResponse(BaseModel):
    session_type: str
    problems: list[PracticeItemResponse]
    estimated_duration_minutes: int
    total_estimated_xp: int


class SubjectPerformanceResponse(BaseModel):
    subject: str
    attempts: int
    avg_attempts: float
    avg_time_seconds: float
    avg_hints: float
    completion_rate: float
    difficulty_estimate: str
    working_tier: str


class PracticeAnalysisResponse(BaseModel):
    weak_areas: list[SubjectPerformanceResponse]
    strong_areas: list[SubjectPerformanceResponse]
    suggested_focus: str
