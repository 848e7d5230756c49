"""Plain records exchanged between the progress services and the store.

Records are frozen; services derive new records with ``dataclasses.replace``
and hand them to the store, which persists them under a version check.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from mathtutor.gamification.level_curve import level_for


@dataclass(frozen=True)
class XPRecord:
    user_id: str
    profile_id: str | None = None
    total_xp: int = 0
    xp_history: tuple[dict[str, Any], ...] = ()
    updated_at: datetime | None = None
    version: int = 0  # 0 = never persisted

    @property
    def level(self) -> int:
        return level_for(self.total_xp)[0]

    @property
    def xp_to_next_level(self) -> int:
        return level_for(self.total_xp)[1]


@dataclass(frozen=True)
class StreakRecord:
    user_id: str
    profile_id: str | None = None
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: date | None = None
    version: int = 0


@dataclass(frozen=True)
class ProblemAttempt:
    """One entry of the problem history feed."""

    subject: str
    difficulty: str | None = None
    attempts: int = 1
    time_spent_seconds: int = 0
    hints_used: int = 0
    completed: bool = False
    created_at: datetime | None = None
    user_id: str | None = None
    profile_id: str | None = None
    completion_id: str | None = None  # client retry key


@dataclass(frozen=True)
class Nudge:
    user_id: str
    type: str
    title: str
    message: str
    priority: str
    profile_id: str | None = None
    action: dict[str, Any] | None = None
    dismissed: bool = False
    created_at: datetime | None = None
    expires_at: datetime | None = None
    id: str | None = None

    def is_active(self, now: datetime) -> bool:
        """Undismissed and not past its expiry."""
        if self.dismissed:
            return False
        return self.expires_at is None or self.expires_at > now


@dataclass(frozen=True)
class Identity:
    """Display identity for leaderboard rows."""

    display_name: str | None = None
    email: str | None = None
