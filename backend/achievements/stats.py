"""Derivation of per-student statistics from attempt history.

Everything here is a pure function of the attempts handed in: nothing is
cached and nothing touches the database, so the same history always yields
the same :class:`StudentStats`.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlmodel import SQLModel

from achievements.errors import AggregationFailure
from achievements.scoring import round_half_up

logger = logging.getLogger(__name__)


class AttemptSummary(SQLModel):
    """The slice of a submitted attempt that statistics are built from."""

    attempt_id: Optional[int] = None
    created_at: Optional[datetime] = None
    percentage: Optional[int] = None
    passed: bool = False
    raw_score: float = 0.0
    total_time_spent: int = 0
    module_id: Optional[int] = None


class StudentStats(SQLModel):
    total_quizzes: int = 0
    highest_score: int = 0
    average_score: int = 0
    # None means no timed attempt exists; it compares as unbounded, not as 0.
    fastest_time: Optional[int] = None
    current_streak: int = 0
    longest_streak: int = 0
    unique_modules: int = 0
    has_perfect_score: bool = False
    consecutive_perfect_scores: int = 0
    total_points: float = 0.0

    perfect_score_count: int = 0
    total_score: int = 0
    total_time_spent: int = 0
    average_time_per_quiz: int = 0
    total_passed: int = 0
    last_attempt_at: Optional[datetime] = None
    active_days: int = 0


class ModuleProgress(SQLModel):
    module_id: int
    quizzes_completed: int
    average_score: int
    best_score: int


def _validated(attempts: Sequence[AttemptSummary]) -> list[AttemptSummary]:
    for attempt in attempts:
        if attempt.created_at is None or attempt.percentage is None:
            raise AggregationFailure(
                f"attempt {attempt.attempt_id} is missing its timestamp or score"
            )
        if not 0 <= attempt.percentage <= 100:
            raise AggregationFailure(
                f"attempt {attempt.attempt_id} has out of range score {attempt.percentage}"
            )
    return sorted(attempts, key=lambda a: (a.created_at, a.attempt_id or 0))


def compute_student_stats(attempts: Sequence[AttemptSummary]) -> StudentStats:
    ordered = _validated(attempts)
    if not ordered:
        return StudentStats()

    scores = [a.percentage for a in ordered]
    times = [a.total_time_spent for a in ordered if a.total_time_spent and a.total_time_spent > 0]

    current_streak = 0
    streak_open = True
    longest_streak = 0
    run = 0
    consecutive_perfect = 0
    perfect_run = 0

    # newest to oldest
    for attempt in reversed(ordered):
        if attempt.passed:
            if streak_open:
                current_streak += 1
            run += 1
            longest_streak = max(longest_streak, run)
        else:
            streak_open = False
            run = 0

        if attempt.percentage == 100:
            perfect_run += 1
            consecutive_perfect = max(consecutive_perfect, perfect_run)
        else:
            perfect_run = 0

    modules = {a.module_id for a in ordered if a.module_id is not None}

    return StudentStats(
        total_quizzes=len(ordered),
        highest_score=max(scores),
        average_score=round_half_up(sum(scores) / len(scores)),
        fastest_time=min(times) if times else None,
        current_streak=current_streak,
        longest_streak=longest_streak,
        unique_modules=len(modules),
        has_perfect_score=any(s == 100 for s in scores),
        consecutive_perfect_scores=consecutive_perfect,
        total_points=sum(a.raw_score for a in ordered),
        perfect_score_count=sum(1 for s in scores if s == 100),
        total_score=sum(scores),
        total_time_spent=sum(times),
        average_time_per_quiz=round_half_up(sum(times) / len(times)) if times else 0,
        total_passed=sum(1 for a in ordered if a.passed),
        last_attempt_at=ordered[-1].created_at,
        active_days=len({a.created_at.date() for a in ordered}),
    )


def safe_student_stats(student_id: int, attempts: Sequence[AttemptSummary]) -> StudentStats:
    """Compute stats, falling back to zero stats when the history is malformed."""
    try:
        return compute_student_stats(attempts)
    except AggregationFailure:
        logger.exception("Could not aggregate attempts for student %s", student_id)
        return StudentStats()


def compute_module_progress(attempts: Sequence[AttemptSummary]) -> list[ModuleProgress]:
    by_module: dict[int, list[int]] = {}
    for attempt in _validated(attempts):
        if attempt.module_id is None:
            continue
        by_module.setdefault(attempt.module_id, []).append(attempt.percentage)
    return [
        ModuleProgress(
            module_id=module_id,
            quizzes_completed=len(scores),
            average_score=round_half_up(sum(scores) / len(scores)),
            best_score=max(scores),
        )
        for module_id, scores in sorted(by_module.items())
    ]
