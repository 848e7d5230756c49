"""Pydantic response models for the leaderboard endpoint."""

from __future__ import annotations

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    display_name: str
    total_xp: int
    level: int
    rank_title: str
    rank_badge: str = ""
    rank_color: str = ""
    problems_solved: int = 0
    current_streak: int = 0
    last_active: str | None = None
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntryResponse]
    user_rank: int | None = None
    user_entry: LeaderboardEntryResponse | None = None
    total_players: int = 0
