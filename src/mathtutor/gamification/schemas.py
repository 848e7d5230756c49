"""Pydantic request/response models for XP, level and streak endpoints."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


# --- XP ---


class XPGainEntry(BaseModel):
    xp: int
    reason: str
    timestamp: int


class XPResponse(BaseModel):
    user_id: str
    profile_id: str | None = None
    total_xp: int
    level: int
    xp_to_next_level: int
    xp_into_level: int
    xp_for_level: int
    rank_title: str
    recent_gains: list[XPGainEntry] = []


class LoginBonusRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    profile_id: str | None = None
    is_first_login: bool = False


class LoginBonusResponse(BaseModel):
    xp_gained: int
    total_xp: int
    level: int
    xp_to_next_level: int
    already_claimed: bool = False


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    xp_required: int
    cumulative: int
    rank_title: str


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


# --- Streak ---


class StreakResponse(BaseModel):
    user_id: str
    profile_id: str | None = None
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: date | None = None


# --- Problem completion ---


class ProblemCompletedRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    profile_id: str | None = None
    problem_type: str = Field(..., min_length=1)
    difficulty: str | None = None
    hints_used: int = Field(0, ge=0)
    attempts: int = Field(1, ge=0)
    time_spent_seconds: int = Field(0, ge=0)
    completion_id: str | None = Field(None, max_length=128)


class ProblemCompletedResponse(BaseModel):
    success: bool
    history_recorded: bool
    xp_awarded: bool
    streak_updated: bool
    xp_gained: int = 0
    total_xp: int | None = None
    level: int | None = None
    current_streak: int | None = None
    longest_streak: int | None = None
    errors: dict[str, str] = {}
