"""Composite ranking scores and population rank assignment.

Two write paths touch :class:`StudentRanking` and they never overlap:
``recompute_student_ranking`` (run after every submission) writes the
stats snapshot and ``ranking_score``; the batch functions write only the
position/percentile columns of one scope.
"""

import logging
import math
from datetime import datetime
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from achievements.badges import RARE_RARITIES, summarize_awards
from achievements.crud import (
    get_all_institution_ids,
    get_institution,
    get_ranking_by_student,
    get_student,
    get_student_awards,
    get_submitted_attempt_summaries,
)
from achievements.database import insert_if_absent_statement, with_storage_retry
from achievements.errors import AggregationFailure, PersistenceFailure, ReferenceNotFound
from achievements.models import StudentRanking
from achievements.schemas import RankingScope
from achievements.scoring import round_half_up
from achievements.stats import StudentStats, compute_module_progress, safe_student_stats

logger = logging.getLogger(__name__)

# Policy constants; each component is already capped to [0, 100].
RANKING_WEIGHTS = {
    "average_score": 0.35,
    "total_badges": 0.25,
    "badge_points": 0.15,
    "current_streak": 0.10,
    "perfect_scores": 0.08,
    "speed": 0.05,
    "consistency": 0.02,
}
if not math.isclose(sum(RANKING_WEIGHTS.values()), 1.0):
    raise ValueError("ranking weights must sum to 1")


class RankingComponents(SQLModel):
    average_score: float = 0
    total_badges: float = 0
    badge_points: float = 0
    current_streak: float = 0
    perfect_scores: float = 0
    speed: float = 0
    consistency: float = 0


class RankAssignment(SQLModel):
    student_id: int
    position: int
    percentile: int


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 100.0)


def ranking_components(
    stats: StudentStats, total_badges: int, badge_points: int
) -> RankingComponents:
    if stats.fastest_time is not None:
        speed = max(0.0, 100 - stats.average_time_per_quiz / 60)
    else:
        speed = 0.0
    return RankingComponents(
        average_score=_clamp(stats.average_score),
        total_badges=_clamp(min(total_badges * 4, 100)),
        badge_points=_clamp(min(badge_points / 10, 100)),
        current_streak=_clamp(min(stats.current_streak * 10, 100)),
        perfect_scores=_clamp(min(stats.perfect_score_count * 20, 100)),
        speed=_clamp(speed),
        consistency=_clamp(min(stats.active_days * 2, 100)),
    )


def compute_ranking_score(components: RankingComponents) -> int:
    weighted = sum(
        getattr(components, name) * weight for name, weight in RANKING_WEIGHTS.items()
    )
    return round_half_up(weighted)


async def recompute_student_ranking(db: AsyncSession, student_id: int) -> StudentRanking:
    """Rebuild one student's ranking snapshot from their full history.

    This never reads the previous score, so running it twice over the same
    attempts and awards produces the same record.
    """

    student = await get_student(db, student_id)
    if not student:
        raise ReferenceNotFound("student", student_id)
    institution_id = student.institution_id

    attempts = await get_submitted_attempt_summaries(db, student_id)
    stats = safe_student_stats(student_id, attempts)
    try:
        module_progress = [m.model_dump() for m in compute_module_progress(attempts)]
    except AggregationFailure:
        logger.exception("Could not build module progress for student %s", student_id)
        module_progress = []

    awards = await get_student_awards(db, student_id)
    badges = [badge for _, badge in awards]
    summary = summarize_awards(badges)
    score = compute_ranking_score(
        ranking_components(stats, summary.total, summary.total_points)
    )

    values = {
        "institution_id": institution_id,
        "total_quizzes": stats.total_quizzes,
        "total_score": stats.total_score,
        "average_score": stats.average_score,
        "highest_score": stats.highest_score,
        "perfect_scores": stats.perfect_score_count,
        "total_time_spent": stats.total_time_spent,
        "average_time_per_quiz": stats.average_time_per_quiz,
        "fastest_quiz_time": stats.fastest_time,
        "total_badges": summary.total,
        "badge_points": summary.total_points,
        "bronze_badges": summary.by_tier.get("bronze", 0),
        "silver_badges": summary.by_tier.get("silver", 0),
        "gold_badges": summary.by_tier.get("gold", 0),
        "platinum_badges": summary.by_tier.get("platinum", 0),
        "diamond_badges": summary.by_tier.get("diamond", 0),
        "rare_badges": sum(summary.by_rarity.get(r, 0) for r in RARE_RARITIES),
        "current_streak": stats.current_streak,
        "longest_streak": stats.longest_streak,
        "total_passed_quizzes": stats.total_passed,
        "module_progress": module_progress,
        "last_quiz_date": stats.last_attempt_at,
        "last_badge_earned": awards[0][0].earned_at if awards else None,
        "active_days": stats.active_days,
        "ranking_score": score,
        "stats_updated_at": datetime.utcnow(),
    }

    create_stmt = insert_if_absent_statement(
        db,
        StudentRanking,
        {"student_id": student_id, "institution_id": institution_id},
        ["student_id"],
    )
    update_stmt = (
        update(StudentRanking)
        .where(StudentRanking.student_id == student_id)
        .values(**values)
    )

    async def _write():
        try:
            await db.execute(create_stmt)
            await db.execute(update_stmt)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

    await with_storage_retry(_write, f"ranking recompute for student {student_id}")
    logger.debug("Ranking score for student %s is now %s", student_id, score)
    return await get_ranking_by_student(db, student_id)


async def get_student_ranking(db: AsyncSession, student_id: int) -> StudentRanking:
    """Return the current ranking snapshot, building it on first access."""
    ranking = await get_ranking_by_student(db, student_id)
    if ranking is None:
        ranking = await recompute_student_ranking(db, student_id)
    return ranking


def assign_positions(rows: Sequence[tuple[int, int]]) -> list[RankAssignment]:
    """Rank ``(student_id, ranking_score)`` rows, ties going to the lower id."""
    ordered = sorted(rows, key=lambda row: (-row[1], row[0]))
    total = len(ordered)
    return [
        RankAssignment(
            student_id=student_id,
            position=index + 1,
            percentile=round_half_up((total - index) / total * 100),
        )
        for index, (student_id, _) in enumerate(ordered)
    ]


async def _recompute_scope(
    db: AsyncSession, scope: RankingScope, institution_id: int | None = None
) -> int:
    query = select(StudentRanking.student_id, StudentRanking.ranking_score)
    if scope == RankingScope.institutional:
        query = query.where(StudentRanking.institution_id == institution_id)

    async def _read():
        try:
            result = await db.execute(query)
            rows = [(row[0], row[1]) for row in result.all()]
            # end the read transaction so each record below commits on its own
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        return rows

    rows = await with_storage_retry(_read, f"{scope.value} ranking snapshot")
    assignments = assign_positions(rows)

    now = datetime.utcnow()
    updated = 0
    for assignment in assignments:
        if scope == RankingScope.global_:
            values = {
                "global_position": assignment.position,
                "global_percentile": assignment.percentile,
                "global_updated_at": now,
            }
        else:
            values = {
                "institutional_position": assignment.position,
                "institutional_percentile": assignment.percentile,
                "institutional_updated_at": now,
            }
        stmt = (
            update(StudentRanking)
            .where(StudentRanking.student_id == assignment.student_id)
            .values(**values)
        )

        async def _write(stmt=stmt):
            try:
                await db.execute(stmt)
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                raise

        try:
            await with_storage_retry(
                _write, f"{scope.value} rank update for student {assignment.student_id}"
            )
        except (PersistenceFailure, SQLAlchemyError):
            logger.exception(
                "Skipping %s rank update for student %s", scope.value, assignment.student_id
            )
            continue
        updated += 1
    return updated


async def recompute_global_rankings(db: AsyncSession) -> int:
    count = await _recompute_scope(db, RankingScope.global_)
    logger.info("Global rankings recalculated for %s students", count)
    return count


async def recompute_institutional_rankings(db: AsyncSession, institution_id: int) -> int:
    if not await get_institution(db, institution_id):
        raise ReferenceNotFound("institution", institution_id)
    count = await _recompute_scope(db, RankingScope.institutional, institution_id)
    logger.info(
        "Institutional rankings recalculated for %s students of institution %s",
        count,
        institution_id,
    )
    return count


async def recompute_all_rankings(db: AsyncSession) -> int:
    """Refresh global positions and every institution's positions.

    A failing institution is logged and skipped so the others still refresh.
    """
    total = await recompute_global_rankings(db)
    for institution_id in await get_all_institution_ids(db):
        try:
            await recompute_institutional_rankings(db, institution_id)
        except (PersistenceFailure, SQLAlchemyError, ReferenceNotFound):
            logger.exception("Skipping rank refresh of institution %s", institution_id)
            await db.rollback()
    return total
