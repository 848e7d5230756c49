"""ORM models for the progress tables.

Types are kept portable (JSON with a JSONB variant) so the same models back
PostgreSQL in production and SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mathtutor.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class Profile(Base):
    """Account identity used for leaderboard display names."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# XP and streaks
# ---------------------------------------------------------------------------


class XPRecordRow(Base):
    """One XP row per (user, profile scope). level/xp_to_next_level are derived."""

    __tablename__ = "xp_records"
    __table_args__ = (
        Index("idx_xp_records_global_rank", "profile_id", "total_xp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    profile_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_to_next_level: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    xp_history: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class StreakRow(Base):
    """Daily study streak per (user, profile scope)."""

    __tablename__ = "streaks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    profile_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_study_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# A NULL profile_id is the account's own scope; coalesce so it is unique too.
Index(
    "uq_xp_records_owner",
    XPRecordRow.user_id,
    func.coalesce(XPRecordRow.profile_id, ""),
    unique=True,
)
Index(
    "uq_streaks_owner",
    StreakRow.user_id,
    func.coalesce(StreakRow.profile_id, ""),
    unique=True,
)


# ---------------------------------------------------------------------------
# Problem history
# ---------------------------------------------------------------------------


class ProblemAttemptRow(Base):
    """A problem the user worked on. Feeds performance analysis and solved counts."""

    __tablename__ = "problem_attempts"
    __table_args__ = (
        Index("idx_problem_attempts_owner_created", "user_id", "profile_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    profile_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    difficulty: Mapped[str | None] = mapped_column(String(16), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hints_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completion_id: Mapped[str | None] = mapped_column(String(128), nullable=True)


# Rows without a completion_id never collide (NULLs are distinct).
Index(
    "uq_problem_attempts_completion",
    ProblemAttemptRow.user_id,
    func.coalesce(ProblemAttemptRow.profile_id, ""),
    ProblemAttemptRow.completion_id,
    unique=True,
)


# ---------------------------------------------------------------------------
# Nudges
# ---------------------------------------------------------------------------


class NudgeRow(Base):
    """Persisted re-engagement nudge. Only ever mutated by dismissal."""

    __tablename__ = "nudges"
    __table_args__ = (
        Index("idx_nudges_owner_type", "user_id", "profile_id", "type", "dismissed"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    profile_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(8), nullable=False)
    action: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    dismissed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
