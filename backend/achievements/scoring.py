"""Scoring of a single submitted quiz attempt."""

import logging
import math
from datetime import datetime
from typing import Iterable, Optional

from sqlmodel import SQLModel

from achievements.errors import ReferenceNotFound
from achievements.models import Quiz, QuizQuestion

logger = logging.getLogger(__name__)


class ScoreResult(SQLModel):
    raw: float
    percentage: int
    passed: bool


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round`` uses banker's rounding)."""
    return int(math.floor(value + 0.5))


def _answer_field(answer, name: str, default=None):
    if isinstance(answer, dict):
        return answer.get(name, default)
    return getattr(answer, name, default)


def calculate_score(
    answers: Iterable,
    quiz: Optional[Quiz],
    questions: list[QuizQuestion],
) -> ScoreResult:
    """Turn graded answers into ``(raw, percentage, passed)``.

    Answers that reference a question outside the quiz are ignored and the
    points credited for a question never exceed what the question is worth.
    """

    if quiz is None:
        raise ReferenceNotFound("quiz", None)

    worth = {q.id: float(q.points) for q in questions}
    total_possible = sum(worth.values())

    raw = 0.0
    seen: set[int] = set()
    for answer in answers:
        question_id = _answer_field(answer, "question_id")
        if question_id not in worth:
            logger.debug("Ignoring answer for unknown question %s on quiz %s", question_id, quiz.id)
            continue
        if question_id in seen:
            continue
        seen.add(question_id)
        earned = float(_answer_field(answer, "points_earned", 0) or 0)
        raw += min(max(earned, 0.0), worth[question_id])

    if total_possible > 0:
        percentage = round_half_up(raw / total_possible * 100)
    else:
        percentage = 0
    percentage = min(max(percentage, 0), 100)
    return ScoreResult(raw=raw, percentage=percentage, passed=percentage >= quiz.passing_score)


def measure_timing(
    started_at: datetime, ended_at: datetime, time_limit_seconds: int
) -> tuple[int, bool]:
    """Return elapsed whole seconds and whether the time limit was exceeded."""
    elapsed = max(0, int((ended_at - started_at).total_seconds()))
    timed_out = time_limit_seconds > 0 and elapsed > time_limit_seconds
    return elapsed, timed_out
