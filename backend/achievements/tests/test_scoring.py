"""Tests for attempt scoring and timing."""

from datetime import datetime, timedelta
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from achievements.errors import ReferenceNotFound
from achievements.models import Quiz, QuizQuestion
from achievements.scoring import calculate_score, measure_timing, round_half_up


def _quiz(passing_score=70):
    quiz = Quiz(id=1, title="Fractions", passing_score=passing_score)
    questions = [QuizQuestion(id=i, quiz_id=1, prompt=f"Q{i}", points=1) for i in range(1, 5)]
    return quiz, questions


def test_round_half_up_differs_from_bankers_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(66.666) == 67
    assert round_half_up(33.333) == 33


def test_score_percentage_and_pass():
    quiz, questions = _quiz()
    answers = [
        {"question_id": 1, "is_correct": True, "points_earned": 1},
        {"question_id": 2, "is_correct": True, "points_earned": 1},
        {"question_id": 3, "is_correct": True, "points_earned": 1},
        {"question_id": 4, "is_correct": False, "points_earned": 0},
    ]
    result = calculate_score(answers, quiz, questions)
    assert result.raw == 3
    assert result.percentage == 75
    assert result.passed is True


def test_score_exactly_at_passing_mark_passes():
    quiz, questions = _quiz(passing_score=50)
    answers = [{"question_id": 1, "points_earned": 1}, {"question_id": 2, "points_earned": 1}]
    result = calculate_score(answers, quiz, questions)
    assert result.percentage == 50
    assert result.passed is True


def test_unknown_duplicate_and_inflated_answers_are_bounded():
    quiz, questions = _quiz()
    answers = [
        {"question_id": 1, "points_earned": 5},
        {"question_id": 1, "points_earned": 1},
        {"question_id": 99, "points_earned": 10},
    ]
    result = calculate_score(answers, quiz, questions)
    assert result.raw == 1
    assert result.percentage == 25
    assert result.passed is False


def test_quiz_without_points_scores_zero():
    quiz = Quiz(id=2, title="Empty")
    result = calculate_score([], quiz, [])
    assert result.percentage == 0
    assert result.passed is False


def test_missing_quiz_raises():
    with pytest.raises(ReferenceNotFound):
        calculate_score([], None, [])


def test_measure_timing():
    start = datetime(2024, 5, 1, 9, 0, 0)
    assert measure_timing(start, start + timedelta(seconds=90), 600) == (90, False)
    assert measure_timing(start, start + timedelta(seconds=601), 600) == (601, True)
    # clock skew never yields negative time
    assert measure_timing(start, start - timedelta(seconds=5), 600) == (0, False)
