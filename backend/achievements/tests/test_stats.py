"""Tests for folding attempt history into student statistics."""

from datetime import datetime, timedelta
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from achievements.errors import AggregationFailure
from achievements.stats import (
    AttemptSummary,
    compute_module_progress,
    compute_student_stats,
    safe_student_stats,
)


def _history(scores, passing=70, start=datetime(2024, 3, 1, 10, 0), module_ids=None):
    attempts = []
    for index, score in enumerate(scores):
        attempts.append(
            AttemptSummary(
                attempt_id=index + 1,
                created_at=start + timedelta(hours=index),
                percentage=score,
                passed=score >= passing,
                raw_score=score / 10,
                total_time_spent=60 * (index + 1),
                module_id=module_ids[index] if module_ids else None,
            )
        )
    return attempts


def test_failure_after_perfect_run():
    stats = compute_student_stats(_history([100, 100, 100, 40]))
    assert stats.current_streak == 0
    assert stats.longest_streak == 3
    assert stats.consecutive_perfect_scores == 3
    assert stats.has_perfect_score is True
    assert stats.highest_score == 100
    assert stats.average_score == 85
    assert stats.perfect_score_count == 3
    assert stats.total_passed == 3


def test_current_streak_counts_back_to_first_failure():
    stats = compute_student_stats(_history([90, 30, 80, 75, 95]))
    assert stats.current_streak == 3
    assert stats.longest_streak == 3
    assert stats.consecutive_perfect_scores == 0


def test_empty_history_gives_zero_stats():
    stats = compute_student_stats([])
    assert stats.total_quizzes == 0
    assert stats.highest_score == 0
    assert stats.average_score == 0
    assert stats.fastest_time is None
    assert stats.current_streak == 0
    assert stats.has_perfect_score is False


def test_order_of_input_does_not_matter():
    attempts = _history([55, 100, 80, 90])
    assert compute_student_stats(attempts) == compute_student_stats(list(reversed(attempts)))


def test_times_modules_and_days():
    attempts = _history([80, 90, 60], module_ids=[1, 2, 1])
    attempts[1] = attempts[1].model_copy(update={"total_time_spent": 0})
    stats = compute_student_stats(attempts)
    assert stats.fastest_time == 60
    assert stats.total_time_spent == 240
    assert stats.average_time_per_quiz == 120
    assert stats.unique_modules == 2
    assert stats.active_days == 1

    progress = compute_module_progress(attempts)
    assert [(p.module_id, p.quizzes_completed, p.best_score) for p in progress] == [
        (1, 2, 80),
        (2, 1, 90),
    ]
    assert progress[0].average_score == 70


def test_malformed_history_raises_and_safe_variant_recovers():
    attempts = _history([80, 90])
    attempts[0] = AttemptSummary(attempt_id=1, created_at=datetime(2024, 3, 1), percentage=None)
    with pytest.raises(AggregationFailure):
        compute_student_stats(attempts)
    stats = safe_student_stats(7, attempts)
    assert stats.total_quizzes == 0
    assert stats.fastest_time is None
