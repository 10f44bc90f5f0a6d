"""Quiz attempt lifecycle: start, submit, and the follow-up badge/ranking work.

The score of a submission is committed before anything else happens.  Badge
evaluation and the ranking refresh run afterwards and a failure in either of
them is logged without affecting the returned score.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.badges import AwardContext, evaluate
from achievements.crud import (
    count_finished_attempts,
    get_active_badges,
    get_attempt,
    get_next_attempt_number,
    get_questions_for_quiz,
    get_quiz,
    get_settings,
    get_student,
    get_submitted_attempt_summaries,
)
from achievements.database import with_storage_retry
from achievements.errors import AttemptLimitReached, PersistenceFailure, ReferenceNotFound
from achievements.models import QuizAttempt
from achievements.ranking import recompute_student_ranking
from achievements.schemas import AttemptRead, AwardedBadge, ScoreRead, SubmissionResult
from achievements.scoring import calculate_score, measure_timing
from achievements.stats import safe_student_stats

logger = logging.getLogger(__name__)

# Concurrent starts of the same quiz may race for an attempt number.
ATTEMPT_NUMBER_RETRIES = 5


def _answer_dict(answer) -> dict:
    if isinstance(answer, dict):
        return dict(answer)
    return answer.model_dump()


def attempt_view(attempt: QuizAttempt) -> AttemptRead:
    answers = attempt.answers or []
    return AttemptRead(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        attempt_number=attempt.attempt_number,
        raw_score=attempt.raw_score,
        percentage=attempt.percentage,
        passed=attempt.passed,
        status=attempt.status,
        total_time_spent=attempt.total_time_spent,
        timed_out=attempt.timed_out,
        question_count=len(answers),
        correct_answers=sum(1 for a in answers if a.get("is_correct")),
        created_at=attempt.created_at,
    )


async def start_attempt(db: AsyncSession, student_id: int, quiz_id: int) -> QuizAttempt:
    """Open a new in-progress attempt, numbering it after the student's last one."""

    if not await get_student(db, student_id):
        raise ReferenceNotFound("student", student_id)
    quiz = await get_quiz(db, quiz_id)
    if not quiz or quiz.status != "published":
        raise ReferenceNotFound("quiz", quiz_id)
    used = await count_finished_attempts(db, student_id, quiz_id)
    if quiz.max_attempts and used >= quiz.max_attempts:
        raise AttemptLimitReached(quiz_id, quiz.max_attempts)

    time_limit_seconds = quiz.time_limit_minutes * 60
    description = f"start of quiz {quiz_id} for student {student_id}"
    for _ in range(ATTEMPT_NUMBER_RETRIES):
        attempt = QuizAttempt(
            student_id=student_id,
            quiz_id=quiz_id,
            attempt_number=await get_next_attempt_number(db, student_id, quiz_id),
            time_limit_seconds=time_limit_seconds,
        )

        async def _save(attempt=attempt):
            try:
                db.add(attempt)
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                raise
            await db.refresh(attempt)
            return attempt

        try:
            attempt = await with_storage_retry(_save, description)
        except IntegrityError:
            # a concurrent start took this number; read the next one again
            logger.info("Attempt number collision during %s", description)
            continue
        break
    else:
        raise PersistenceFailure(
            f"{description} failed after {ATTEMPT_NUMBER_RETRIES} numbering collisions"
        )

    logger.info(
        "Student %s started attempt %s of quiz %s", student_id, attempt.attempt_number, quiz_id
    )
    return attempt


async def _evaluate_badges(
    db: AsyncSession, student_id: int, context: AwardContext
) -> list[AwardedBadge]:
    attempts = await get_submitted_attempt_summaries(db, student_id)
    stats = safe_student_stats(student_id, attempts)
    context.streak = stats.current_streak
    catalog = await get_active_badges(db)
    settings = await get_settings(db)
    evaluation = await evaluate(
        db,
        student_id,
        stats,
        catalog,
        context=context,
        allow_unconditional=settings.auto_award_unconditional_badges,
    )
    return evaluation.awarded


async def submit_attempt(
    db: AsyncSession,
    student_id: int,
    attempt_id: int,
    answers: Iterable,
    ended_at: datetime | None = None,
) -> SubmissionResult:
    """Score an in-progress attempt, freeze it and award any newly earned badges.

    Only the owning student can submit, and only once: the attempt row is
    updated under a ``status == 'in_progress'`` guard so a second submission
    of the same attempt finds nothing to update.
    """

    attempt = await get_attempt(db, attempt_id)
    if not attempt or attempt.student_id != student_id:
        raise ReferenceNotFound("attempt", attempt_id)
    if attempt.status != "in_progress":
        raise ReferenceNotFound("in-progress attempt", attempt_id)

    quiz = await get_quiz(db, attempt.quiz_id)
    questions = await get_questions_for_quiz(db, attempt.quiz_id)
    answers = [_answer_dict(a) for a in answers]
    score = calculate_score(answers, quiz, questions)

    ended_at = ended_at or datetime.utcnow()
    if ended_at.tzinfo is not None:
        # stored timestamps are naive UTC
        ended_at = ended_at.astimezone(timezone.utc).replace(tzinfo=None)
    elapsed, timed_out = measure_timing(attempt.started_at, ended_at, attempt.time_limit_seconds)
    status = "timed_out" if timed_out else "submitted"

    stmt = (
        update(QuizAttempt)
        .where(QuizAttempt.id == attempt_id, QuizAttempt.status == "in_progress")
        .values(
            answers=answers,
            raw_score=score.raw,
            percentage=score.percentage,
            passed=score.passed,
            ended_at=ended_at,
            total_time_spent=elapsed,
            timed_out=timed_out,
            status=status,
        )
    )

    async def _save():
        try:
            result = await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        return result.rowcount

    updated = await with_storage_retry(_save, f"submission of attempt {attempt_id}")
    if updated == 0:
        raise ReferenceNotFound("in-progress attempt", attempt_id)
    logger.info(
        "Attempt %s of student %s %s with %s%%", attempt_id, student_id, status, score.percentage
    )

    context = AwardContext(
        quiz_id=quiz.id,
        attempt_id=attempt_id,
        score=score.percentage,
        time_spent=elapsed,
        module_id=quiz.module_id,
    )
    awarded: list[AwardedBadge] = []
    try:
        awarded = await _evaluate_badges(db, student_id, context)
    except Exception:
        logger.exception("Badge evaluation for attempt %s failed", attempt_id)
        await db.rollback()
    # awards above are already committed and are reported even if this fails
    try:
        await recompute_student_ranking(db, student_id)
    except Exception:
        logger.exception("Ranking refresh after attempt %s failed", attempt_id)
        await db.rollback()

    return SubmissionResult(
        attempt_id=attempt_id,
        status=status,
        score=ScoreRead(raw=score.raw, percentage=score.percentage, passed=score.passed),
        passed=score.passed,
        total_time_spent=elapsed,
        timed_out=timed_out,
        newly_awarded_badges=awarded,
    )
