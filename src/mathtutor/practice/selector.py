"""Adaptive practice selection from a performance summary."""

from __future__ import annotations

import itertools
from dataclasses import dataclass

from mathtutor.errors import InvalidInputError
from mathtutor.gamification.xp_service import award_amount
from mathtutor.practice.performance import (
    DEFAULT_TIER,
    SUBJECT_CATALOG,
    TIERS,
    PerformanceSummary,
    SubjectPerformance,
)

SESSION_TYPES: tuple[str, ...] = ("balanced", "weakness", "strength", "challenge")

MIN_COUNT = 1
MAX_COUNT = 10
MINUTES_PER_PROBLEM = 3


@dataclass(frozen=True)
class PracticeItem:
    subject: str
    difficulty: str
    reason: str
    focus_area: str
    estimated_xp: int

    def as_dict(self) -> dict:
        return {
            "subject": self.subject,
            "difficulty": self.difficulty,
            "reason": self.reason,
            "focus_area": self.focus_area,
            "estimated_xp": self.estimated_xp,
        }


def raise_tier(tier: str) -> str:
    idx = TIERS.index(tier) if tier in TIERS else TIERS.index(DEFAULT_TIER)
    return TIERS[min(idx + 1, len(TIERS) - 1)]


def lower_tier(tier: str) -> str:
    idx = TIERS.index(tier) if tier in TIERS else TIERS.index(DEFAULT_TIER)
    return TIERS[max(idx - 1, 0)]


def clamp_count(count: int) -> int:
    return max(MIN_COUNT, min(MAX_COUNT, int(count)))


def _item(subject: str, difficulty: str, reason: str, focus_area: str) -> PracticeItem:
    return PracticeItem(subject, difficulty, reason, focus_area, award_amount(difficulty, 0))


def _pct(stats: SubjectPerformance) -> int:
    return round(stats.completion_rate * 100)


def _weak_item(stats: SubjectPerformance) -> PracticeItem:
    tier = lower_tier(stats.working_tier) if stats.difficulty_estimate == "hard" else stats.working_tier
    return _item(stats.subject, tier, f"Improve {stats.subject} ({_pct(stats)}% success rate)", "improvement")


def _strong_item(stats: SubjectPerformance) -> PracticeItem:
    return _item(stats.subject, raise_tier(stats.working_tier), f"Challenge yourself in {stats.subject}", "mastery")


def _others(summary: PerformanceSummary, exclude: list[SubjectPerformance]) -> list[SubjectPerformance]:
    taken = {s.subject for s in exclude}
    return [s for s in summary.seen_subjects() if s.subject not in taken]


def _weakness_candidates(summary: PerformanceSummary, catalog: tuple[str, ...]) -> list[PracticeItem]:
    weak = summary.weak_areas()
    items = [_weak_item(s) for s in weak]
    items += [_item(s.subject, s.working_tier, f"Keep {s.subject} fresh", "practice") for s in _others(summary, weak)]
    items += [_item(s, DEFAULT_TIER, "Practice fundamentals", "practice") for s in summary.unseen(catalog)]
    return items


def _strength_candidates(summary: PerformanceSummary, catalog: tuple[str, ...]) -> list[PracticeItem]:
    strong = summary.strong_areas()
    items = [_strong_item(s) for s in strong]
    items += [
        _item(s.subject, raise_tier(s.working_tier), "Advance your skills", "mastery")
        for s in _others(summary, strong)
    ]
    items += [_item(s, raise_tier(DEFAULT_TIER), "Advance your skills", "mastery") for s in summary.unseen(catalog)]
    return items


def _challenge_candidates(summary: PerformanceSummary, catalog: tuple[str, ...]) -> list[PracticeItem]:
    ordered = [s.subject for s in summary.weak_areas()]
    ordered += [s.subject for s in summary.strong_areas()]
    ordered += [s.subject for s in summary.seen_subjects()]
    ordered += list(catalog)
    seen: set[str] = set()
    items = []
    for subject in ordered:
        if subject in seen:
            continue
        seen.add(subject)
        items.append(_item(subject, TIERS[-1], "Push your limits", "challenge"))
    return items


def _balanced_candidates(summary: PerformanceSummary, catalog: tuple[str, ...]) -> list[PracticeItem]:
    weak = summary.weak_areas()
    strong = summary.strong_areas()
    lanes = [
        [_weak_item(s) for s in weak],
        [_strong_item(s) for s in strong],
        [_item(s, DEFAULT_TIER, f"Try something new: {s}", "exploration") for s in summary.unseen(catalog)],
    ]
    items = [
        item
        for group in itertools.zip_longest(*lanes)
        for item in group
        if item is not None
    ]
    items += [
        _item(s.subject, s.working_tier, "Maintain progress", "practice")
        for s in _others(summary, weak + strong)
    ]
    return items


_CANDIDATES = {
    "weakness": _weakness_candidates,
    "strength": _strength_candidates,
    "challenge": _challenge_candidates,
    "balanced": _balanced_candidates,
}


def _fill(candidates: list[PracticeItem], count: int) -> list[PracticeItem]:
    """Take ``count`` items, distinct on (subject, difficulty) while possible.

    Only when there are fewer distinct candidates than ``count`` are the
    distinct ones repeated in order.
    """
    distinct: list[PracticeItem] = []
    pairs: set[tuple[str, str]] = set()
    for item in candidates:
        pair = (item.subject, item.difficulty)
        if pair not in pairs:
            pairs.add(pair)
            distinct.append(item)
    if len(distinct) >= count:
        return distinct[:count]
    return list(itertools.islice(itertools.cycle(distinct), count))


def generate(
    session_type: str,
    count: int,
    summary: PerformanceSummary,
    catalog: tuple[str, ...] = SUBJECT_CATALOG,
) -> list[PracticeItem]:
    """Pick ``count`` practice items for the requested session intent.

    ``count`` is clamped to [1, 10]. An unknown ``session_type`` raises
    InvalidInputError.
    """
    builder = _CANDIDATES.get((session_type or "").strip().lower())
    if builder is None:
        raise InvalidInputError(
            f"Unknown session type {session_type!r}; expected one of {', '.join(SESSION_TYPES)}"
        )
    return _fill(builder(summary, catalog), clamp_count(count))


def build_session(session_type: str, count: int, summary: PerformanceSummary) -> dict:
    items = generate(session_type, count, summary)
    return {
        "session_type": session_type.strip().lower(),
        "problems": [i.as_dict() for i in items],
        "estimated_duration_minutes": len(items) * MINUTES_PER_PROBLEM,
        "total_estimated_xp": sum(i.estimated_xp for i in items),
    }


def get_analysis(summary: PerformanceSummary) -> dict:
    """Read-only projection: weak areas, strong areas and a suggested focus."""
    weak = summary.weak_areas()
    strong = summary.strong_areas()
    if weak:
        focus = f"{weak[0].subject} - needs improvement ({_pct(weak[0])}% success)"
    elif strong:
        focus = f"{strong[0].subject} - ready for challenge"
    elif not summary.subjects:
        focus = "Start practicing to build your profile"
    else:
        focus = "general practice"
    return {
        "weak_areas": [s.as_dict() for s in weak],
        "strong_areas": [s.as_dict() for s in strong],
        "suggested_focus": focus,
    }
