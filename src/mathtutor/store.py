"""Progress store: the data-access surface the progress services depend on.

``SqlProgressStore`` opens one short-lived session per operation. That keeps
every write in its own transaction (needed for compare-and-swap retries) and
lets independent reads such as the leaderboard enrichment lookups run
concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mathtutor.db.models import NudgeRow, ProblemAttemptRow, Profile, StreakRow, XPRecordRow
from mathtutor.errors import ConflictError, StoreUnavailableError
from mathtutor.records import Identity, Nudge, ProblemAttempt, StreakRecord, XPRecord

logger = logging.getLogger(__name__)


class ProgressStore(Protocol):
    """Operations the progress engine needs from its backing store."""

    async def get_xp(self, user_id: str, profile_id: str | None) -> XPRecord | None: ...

    async def put_xp(self, record: XPRecord, expected_version: int) -> XPRecord: ...

    async def get_streak(self, user_id: str, profile_id: str | None) -> StreakRecord | None: ...

    async def put_streak(self, record: StreakRecord, expected_version: int) -> StreakRecord: ...

    async def query_top_xp(self, limit: int) -> list[XPRecord]: ...

    async def count_xp_greater_than(self, value: int) -> int: ...

    async def batch_get_identity(self, user_ids: list[str]) -> dict[str, Identity]: ...

    async def batch_get_streak(self, user_ids: list[str]) -> dict[str, int]: ...

    async def batch_count_solved(self, user_ids: list[str]) -> dict[str, int]: ...

    async def get_problem_history(
        self,
        user_id: str,
        profile_id: str | None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[ProblemAttempt]: ...

    async def add_problem_attempt(self, attempt: ProblemAttempt) -> bool: ...

    async def find_active_nudge(
        self, user_id: str, profile_id: str | None, type_: str, now: datetime,
    ) -> Nudge | None: ...

    async def insert_nudge(self, nudge: Nudge) -> Nudge: ...

    async def dismiss_nudge(self, nudge_id: str, user_id: str) -> bool: ...

    async def list_active_nudges(
        self, user_id: str, profile_id: str | None, now: datetime,
    ) -> list[Nudge]: ...


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _owner(model: type, user_id: str, profile_id: str | None) -> list:
    """WHERE clauses for one (user, profile scope). NULL scope never matches a sub-profile."""
    scope = model.profile_id.is_(None) if profile_id is None else model.profile_id == profile_id
    return [model.user_id == user_id, scope]


def _xp_from_row(row: XPRecordRow) -> XPRecord:
    return XPRecord(
        user_id=row.user_id,
        profile_id=row.profile_id,
        total_xp=row.total_xp,
        xp_history=tuple(row.xp_history or ()),
        updated_at=as_utc(row.updated_at),
        version=row.version,
    )


def _streak_from_row(row: StreakRow) -> StreakRecord:
    return StreakRecord(
        user_id=row.user_id,
        profile_id=row.profile_id,
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_study_date=row.last_study_date,
        version=row.version,
    )


def _nudge_from_row(row: NudgeRow) -> Nudge:
    return Nudge(
        id=row.id,
        user_id=row.user_id,
        profile_id=row.profile_id,
        type=row.type,
        title=row.title,
        message=row.message,
        priority=row.priority,
        action=row.action,
        dismissed=row.dismissed,
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
    )


class SqlProgressStore:
    """``ProgressStore`` backed by async SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Open a session, translating connectivity failures into StoreUnavailableError."""
        try:
            async with self._session_factory() as db:
                yield db
        except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as exc:
            logger.warning("Progress store unavailable: %s", exc)
            raise StoreUnavailableError(str(exc)) from exc

    # ── XP ──

    async def get_xp(self, user_id: str, profile_id: str | None) -> XPRecord | None:
        async with self._session() as db:
            result = await db.execute(select(XPRecordRow).where(*_owner(XPRecordRow, user_id, profile_id)))
            row = result.scalar_one_or_none()
            return _xp_from_row(row) if row else None

    async def put_xp(self, record: XPRecord, expected_version: int) -> XPRecord:
        """Write ``record`` if the stored version still equals ``expected_version``.

        Level and xp_to_next_level are derived from total_xp and written in the
        same statement so they cannot drift.
        """
        values = {
            "total_xp": record.total_xp,
            "level": record.level,
            "xp_to_next_level": record.xp_to_next_level,
            "xp_history": list(record.xp_history),
            "updated_at": as_utc(record.updated_at),
            "version": expected_version + 1,
        }
        async with self._session() as db:
            if expected_version == 0:
                stmt = insert(XPRecordRow).values(
                    user_id=record.user_id, profile_id=record.profile_id, **values,
                )
            else:
                stmt = (
                    update(XPRecordRow)
                    .where(
                        *_owner(XPRecordRow, record.user_id, record.profile_id),
                        XPRecordRow.version == expected_version,
                    )
                    .values(**values)
                )
            try:
                result = await db.execute(stmt)
            except IntegrityError as exc:
                await db.rollback()
                raise ConflictError("XP record was created concurrently") from exc
            if expected_version and result.rowcount == 0:
                await db.rollback()
                raise ConflictError(f"XP record changed since version {expected_version}")
            await db.commit()
        return replace(record, version=expected_version + 1)

    # ── Streaks ──

    async def get_streak(self, user_id: str, profile_id: str | None) -> StreakRecord | None:
        async with self._session() as db:
            result = await db.execute(select(StreakRow).where(*_owner(StreakRow, user_id, profile_id)))
            row = result.scalar_one_or_none()
            return _streak_from_row(row) if row else None

    async def put_streak(self, record: StreakRecord, expected_version: int) -> StreakRecord:
        values = {
            "current_streak": record.current_streak,
            "longest_streak": record.longest_streak,
            "last_study_date": record.last_study_date,
            "updated_at": datetime.now(timezone.utc),
            "version": expected_version + 1,
        }
        async with self._session() as db:
            if expected_version == 0:
                stmt = insert(StreakRow).values(
                    user_id=record.user_id, profile_id=record.profile_id, **values,
                )
            else:
                stmt = (
                    update(StreakRow)
                    .where(
                        *_owner(StreakRow, record.user_id, record.profile_id),
                        StreakRow.version == expected_version,
                    )
                    .values(**values)
                )
            try:
                result = await db.execute(stmt)
            except IntegrityError as exc:
                await db.rollback()
                raise ConflictError("Streak record was created concurrently") from exc
            if expected_version and result.rowcount == 0:
                await db.rollback()
                raise ConflictError(f"Streak record changed since version {expected_version}")
            await db.commit()
        return replace(record, version=expected_version + 1)

    # ── Leaderboard ──

    async def query_top_xp(self, limit: int) -> list[XPRecord]:
        """Top-level accounts by total XP; ties broken by user_id ascending."""
        async with self._session() as db:
            result = await db.execute(
                select(XPRecordRow)
                .where(XPRecordRow.profile_id.is_(None))
                .order_by(XPRecordRow.total_xp.desc(), XPRecordRow.user_id.asc())
                .limit(limit)
            )
            return [_xp_from_row(row) for row in result.scalars()]

    async def count_xp_greater_than(self, value: int) -> int:
        async with self._session() as db:
            result = await db.execute(
                select(func.count())
                .select_from(XPRecordRow)
                .where(XPRecordRow.profile_id.is_(None), XPRecordRow.total_xp > value)
            )
            return result.scalar_one()

    async def batch_get_identity(self, user_ids: list[str]) -> dict[str, Identity]:
        if not user_ids:
            return {}
        async with self._session() as db:
            result = await db.execute(select(Profile).where(Profile.id.in_(user_ids)))
            return {
                p.id: Identity(display_name=p.display_name, email=p.email)
                for p in result.scalars()
            }

    async def batch_get_streak(self, user_ids: list[str]) -> dict[str, int]:
        if not user_ids:
            return {}
        async with self._session() as db:
            result = await db.execute(
                select(StreakRow.user_id, StreakRow.current_streak)
                .where(StreakRow.user_id.in_(user_ids), StreakRow.profile_id.is_(None))
            )
            return {row.user_id: row.current_streak for row in result}

    async def batch_count_solved(self, user_ids: list[str]) -> dict[str, int]:
        if not user_ids:
            return {}
        async with self._session() as db:
            result = await db.execute(
                select(ProblemAttemptRow.user_id, func.count(ProblemAttemptRow.id).label("cnt"))
                .where(
                    ProblemAttemptRow.user_id.in_(user_ids),
                    ProblemAttemptRow.profile_id.is_(None),
                    ProblemAttemptRow.completed.is_(True),
                )
                .group_by(ProblemAttemptRow.user_id)
            )
            return {row.user_id: row.cnt for row in result}

    # ── Problem history ──

    async def get_problem_history(
        self,
        user_id: str,
        profile_id: str | None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[ProblemAttempt]:
        """Most recent attempts first."""
        stmt = select(ProblemAttemptRow).where(*_owner(ProblemAttemptRow, user_id, profile_id))
        if since is not None:
            stmt = stmt.where(ProblemAttemptRow.created_at >= as_utc(since))
        stmt = stmt.order_by(ProblemAttemptRow.created_at.desc(), ProblemAttemptRow.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as db:
            result = await db.execute(stmt)
            return [
                ProblemAttempt(
                    subject=row.subject,
                    difficulty=row.difficulty,
                    attempts=row.attempts,
                    time_spent_seconds=row.time_spent_seconds,
                    hints_used=row.hints_used,
                    completed=row.completed,
                    created_at=as_utc(row.created_at),
                    user_id=row.user_id,
                    profile_id=row.profile_id,
                    completion_id=row.completion_id,
                )
                for row in result.scalars()
            ]

    async def add_problem_attempt(self, attempt: ProblemAttempt) -> bool:
        """Insert one history row. Returns False if ``completion_id`` was already recorded."""
        async with self._session() as db:
            db.add(ProblemAttemptRow(
                user_id=attempt.user_id,
                profile_id=attempt.profile_id,
                subject=attempt.subject,
                difficulty=attempt.difficulty,
                attempts=attempt.attempts,
                time_spent_seconds=attempt.time_spent_seconds,
                hints_used=attempt.hints_used,
                completed=attempt.completed,
                created_at=as_utc(attempt.created_at) or datetime.now(timezone.utc),
                completion_id=attempt.completion_id,
            ))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                if attempt.completion_id is None:
                    raise
                return False
        return True

    # ── Nudges ──

    async def find_active_nudge(
        self, user_id: str, profile_id: str | None, type_: str, now: datetime,
    ) -> Nudge | None:
        async with self._session() as db:
            result = await db.execute(
                select(NudgeRow)
                .where(
                    *_owner(NudgeRow, user_id, profile_id),
                    NudgeRow.type == type_,
                    NudgeRow.dismissed.is_(False),
                )
                .order_by(NudgeRow.created_at.desc())
            )
            # Expiry is compared in Python; stored timestamps may come back naive.
            for row in result.scalars():
                nudge = _nudge_from_row(row)
                if nudge.is_active(now):
                    return nudge
            return None

    async def insert_nudge(self, nudge: Nudge) -> Nudge:
        async with self._session() as db:
            row = NudgeRow(
                user_id=nudge.user_id,
                profile_id=nudge.profile_id,
                type=nudge.type,
                title=nudge.title,
                message=nudge.message,
                priority=nudge.priority,
                action=nudge.action,
                dismissed=False,
                created_at=as_utc(nudge.created_at) or datetime.now(timezone.utc),
                expires_at=as_utc(nudge.expires_at),
            )
            db.add(row)
            await db.commit()
            return _nudge_from_row(row)

    async def dismiss_nudge(self, nudge_id: str, user_id: str) -> bool:
        """One-way dismissal. Returns False if the nudge is unknown, foreign or already dismissed."""
        async with self._session() as db:
            result = await db.execute(
                update(NudgeRow)
                .where(
                    NudgeRow.id == nudge_id,
                    NudgeRow.user_id == user_id,
                    NudgeRow.dismissed.is_(False),
                )
                .values(dismissed=True)
            )
            await db.commit()
            return result.rowcount > 0

    async def list_active_nudges(
        self, user_id: str, profile_id: str | None, now: datetime,
    ) -> list[Nudge]:
        async with self._session() as db:
            result = await db.execute(
                select(NudgeRow)
                .where(*_owner(NudgeRow, user_id, profile_id), NudgeRow.dismissed.is_(False))
                .order_by(NudgeRow.created_at.desc())
            )
            nudges = [_nudge_from_row(row) for row in result.scalars()]
        return [n for n in nudges if n.is_active(now)]
