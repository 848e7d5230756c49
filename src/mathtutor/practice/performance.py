"""Per-subject performance summary built from raw problem history.

Recomputed on every request; nothing here is cached.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from mathtutor.records import ProblemAttempt

TIERS: tuple[str, ...] = ("elementary", "middle", "high", "advanced")
DEFAULT_TIER = "middle"

# Subjects practice sessions draw from and nudges may suggest.
SUBJECT_CATALOG: tuple[str, ...] = ("algebra", "geometry", "arithmetic", "fractions", "equations")

# Classification thresholds
EASY_MAX_ATTEMPTS = 2
EASY_MAX_TIME = 300
EASY_MAX_HINTS = 1
EASY_MIN_COMPLETION = 0.8
HARD_MIN_ATTEMPTS = 4
HARD_MIN_TIME = 900
HARD_MIN_HINTS = 3
HARD_MAX_COMPLETION = 0.5


def normalize_subject(subject: str | None) -> str:
    return (subject or "").strip().lower() or "general"


def classify(avg_attempts: float, avg_time: float, avg_hints: float, completion_rate: float) -> str:
    """easy / medium / hard from averaged signals."""
    if (
        avg_attempts < EASY_MAX_ATTEMPTS
        and avg_time < EASY_MAX_TIME
        and avg_hints < EASY_MAX_HINTS
        and completion_rate > EASY_MIN_COMPLETION
    ):
        return "easy"
    if (
        avg_attempts > HARD_MIN_ATTEMPTS
        or avg_time > HARD_MIN_TIME
        or avg_hints > HARD_MIN_HINTS
        or completion_rate < HARD_MAX_COMPLETION
    ):
        return "hard"
    return "medium"


@dataclass(frozen=True)
class SubjectPerformance:
    subject: str
    attempts: int = 0  # number of recorded problems
    avg_attempts: float = 0.0
    avg_time_seconds: float = 0.0
    avg_hints: float = 0.0
    completion_rate: float = 0.0
    difficulty_estimate: str = "medium"
    working_tier: str = DEFAULT_TIER

    def as_dict(self) -> dict:
        return {
            "subject": self.subject,
            "attempts": self.attempts,
            "avg_attempts": round(self.avg_attempts, 2),
            "avg_time_seconds": round(self.avg_time_seconds, 1),
            "avg_hints": round(self.avg_hints, 2),
            "completion_rate": round(self.completion_rate, 3),
            "difficulty_estimate": self.difficulty_estimate,
            "working_tier": self.working_tier,
        }


@dataclass
class PerformanceSummary:
    subjects: dict[str, SubjectPerformance] = field(default_factory=dict)

    def get(self, subject: str) -> SubjectPerformance:
        """Stats for a subject; unseen subjects are medium with no signal."""
        key = normalize_subject(subject)
        return self.subjects.get(key) or SubjectPerformance(subject=key)

    def weak_areas(self) -> list[SubjectPerformance]:
        """Hard or under 50% completion; most hints, then slowest, first."""
        weak = [
            s for s in self.subjects.values()
            if s.attempts > 0 and (s.difficulty_estimate == "hard" or s.completion_rate < HARD_MAX_COMPLETION)
        ]
        return sorted(weak, key=lambda s: (-s.avg_hints, -s.avg_time_seconds, s.subject))

    def strong_areas(self) -> list[SubjectPerformance]:
        """Easy subjects; best completion, then fastest, first."""
        strong = [s for s in self.subjects.values() if s.attempts > 0 and s.difficulty_estimate == "easy"]
        return sorted(strong, key=lambda s: (-s.completion_rate, s.avg_time_seconds, s.subject))

    def seen_subjects(self) -> list[SubjectPerformance]:
        """Every subject with history, weakest completion first."""
        return sorted(self.subjects.values(), key=lambda s: (s.completion_rate, s.subject))

    def unseen(self, catalog: Iterable[str]) -> list[str]:
        return [s for s in catalog if normalize_subject(s) not in self.subjects]


def _working_tier(difficulties: list[str]) -> str:
    """Most practised tier; ties go to the most recent. ``difficulties`` is newest first."""
    known = [d for d in difficulties if d in TIERS]
    if not known:
        return DEFAULT_TIER
    counts = Counter(known)
    best = max(counts.values())
    return next(d for d in known if counts[d] == best)


def summarize(history: Iterable[ProblemAttempt]) -> PerformanceSummary:
    """Group attempts by subject and derive averages, completion rate and difficulty.

    ``history`` is expected newest first (as the store returns it).
    """
    grouped: dict[str, list[ProblemAttempt]] = defaultdict(list)
    for attempt in history:
        grouped[normalize_subject(attempt.subject)].append(attempt)

    subjects: dict[str, SubjectPerformance] = {}
    for subject, rows in grouped.items():
        total = len(rows)
        avg_attempts = sum(r.attempts for r in rows) / total
        avg_time = sum(r.time_spent_seconds for r in rows) / total
        avg_hints = sum(r.hints_used for r in rows) / total
        completion_rate = sum(1 for r in rows if r.completed) / total
        subjects[subject] = SubjectPerformance(
            subject=subject,
            attempts=total,
            avg_attempts=avg_attempts,
            avg_time_seconds=avg_time,
            avg_hints=avg_hints,
            completion_rate=completion_rate,
            difficulty_estimate=classify(avg_attempts, avg_time, avg_hints, completion_rate),
            working_tier=_working_tier([(r.difficulty or "").strip().lower() for r in rows]),
        )
    return PerformanceSummary(subjects=subjects)
