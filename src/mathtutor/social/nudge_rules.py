"""Re-engagement rules evaluated against an engagement snapshot.

Each rule is independent and emits at most one draft. ``evaluate`` runs all
of them, orders the drafts high > medium > low (stable within a priority)
and keeps the first ``cap``.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from mathtutor.practice.performance import SUBJECT_CATALOG

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
NO_ACTIVITY_DAYS = 999
DEFAULT_CAP = 3


@dataclass(frozen=True)
class EngagementSnapshot:
    last_active: datetime | None = None
    current_streak: int = 0
    longest_streak: int = 0
    total_xp: int = 0
    problems_today: int = 0
    daily_goal: int = 5
    recent_subjects: tuple[str, ...] = ()
    level: int = 1
    xp_to_next_level: int = 100


@dataclass(frozen=True)
class NudgeDraft:
    type: str
    title: str
    message: str
    priority: str
    action: dict[str, Any] | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class RuleContext:
    now: datetime
    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))

    @property
    def local_now(self) -> datetime:
        return self.now.astimezone(self.tz)

    @property
    def today(self) -> date:
        return self.local_now.date()

    @property
    def end_of_day(self) -> datetime:
        """Next local midnight, in UTC."""
        midnight = datetime.combine(self.today + timedelta(days=1), time.min, tzinfo=self.tz)
        return midnight.astimezone(timezone.utc)

    @property
    def hours_left(self) -> int:
        return 24 - self.local_now.hour


def days_since(last_active: datetime | None, now: datetime) -> int:
    """Whole days since the last activity; 999 when there was none."""
    if last_active is None:
        return NO_ACTIVITY_DAYS
    if last_active.tzinfo is None:
        last_active = last_active.replace(tzinfo=timezone.utc)
    return max(0, math.floor((now - last_active) / timedelta(days=1)))


def _action(label: str, kind: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    action: dict[str, Any] = {"label": label, "kind": kind}
    if data:
        action["data"] = data
    return action


def streak_at_risk(snap: EngagementSnapshot, ctx: RuleContext) -> NudgeDraft | None:
    if snap.problems_today != 0 or snap.current_streak <= 0:
        return None
    return NudgeDraft(
        type="streak_at_risk",
        title="Streak at Risk!",
        message=(
            f"Your {snap.current_streak}-day streak ends in {ctx.hours_left} hours. "
            "Solve one problem to keep it going!"
        ),
        priority="high" if snap.current_streak >= 7 else "medium",
        action=_action("Quick Practice", "practice"),
        expires_at=ctx.end_of_day,
    )


def comeback(snap: EngagementSnapshot, ctx: RuleContext) -> NudgeDraft | None:
    days = days_since(snap.last_active, ctx.now)
    if not 3 <= days < 30:
        return None
    if days >= 7:
        message = f"We missed you! It's been {days} days. Ready to get back on track?"
    else:
        message = f"It's been {days} days since your last practice. Let's pick up where you left off!"
    return NudgeDraft(
        type="comeback",
        title="Welcome Back!",
        message=message,
        priority="high" if days >= 7 else "medium",
        action=_action("Start Fresh", "review"),
    )


def milestone_close(snap: EngagementSnapshot, ctx: RuleContext) -> NudgeDraft | None:
    if not 0 < snap.xp_to_next_level <= 30:
        return None
    return NudgeDraft(
        type="milestone_close",
        title="Almost There!",
        message=(
            f"Just {snap.xp_to_next_level} XP to reach Level {snap.level + 1}! "
            "One or two problems will get you there."
        ),
        priority="high",
        action=_action("Level Up", "challenge"),
    )


def daily_goal(snap: EngagementSnapshot, ctx: RuleContext) -> NudgeDraft | None:
    if not 0 < snap.problems_today < snap.daily_goal:
        return None
    remaining = snap.daily_goal - snap.problems_today
    return NudgeDraft(
        type="daily_goal",
        title="Keep Going!",
        message=(
            f"You've solved {snap.problems_today} of {snap.daily_goal} problems today. "
            f"Just {remaining} more to hit your goal!"
        ),
        priority="high" if remaining <= 2 else "low",
        action=_action("Continue", "practice"),
        expires_at=ctx.end_of_day,
    )


def skill_decay(snap: EngagementSnapshot, ctx: RuleContext) -> NudgeDraft | None:
    if not 1 <= len(snap.recent_subjects) < 3:
        return None
    neglected = [s for s in SUBJECT_CATALOG if s not in snap.recent_subjects]
    if not neglected:
        return None
    return NudgeDraft(
        type="skill_decay",
        title="Mix It Up",
        message=(
            f"You've been focused on {', '.join(snap.recent_subjects)}. "
            f"Try some {neglected[0]} to keep skills sharp!"
        ),
        priority="low",
        action=_action("Try Something New", "practice", {"subject": neglected[0]}),
    )


def achievement_progress(snap: EngagementSnapshot, ctx: RuleContext) -> NudgeDraft | None:
    if not 0 < snap.total_xp < 50:
        return None
    return NudgeDraft(
        type="achievement_progress",
        title="Great Start!",
        message=f"You've earned {snap.total_xp} XP so far. Keep practicing to unlock achievements!",
        priority="low",
    )


Rule = Callable[[EngagementSnapshot, RuleContext], "NudgeDraft | None"]

RULES: tuple[Rule, ...] = (
    streak_at_risk,
    comeback,
    milestone_close,
    daily_goal,
    skill_decay,
    achievement_progress,
)


def prioritize(drafts: list[NudgeDraft], cap: int = DEFAULT_CAP) -> list[NudgeDraft]:
    return sorted(drafts, key=lambda d: PRIORITY_ORDER[d.priority])[:cap]


def evaluate(
    snap: EngagementSnapshot,
    now: datetime,
    tz: ZoneInfo | None = None,
    cap: int = DEFAULT_CAP,
) -> list[NudgeDraft]:
    ctx = RuleContext(now=now, tz=tz or ZoneInfo("UTC"))
    drafts = [d for d in (rule(snap, ctx) for rule in RULES) if d is not None]
    return prioritize(drafts, cap)
