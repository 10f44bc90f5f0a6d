"""Badge criteria matching and exactly-once awarding.

A badge definition carries a fixed set of optional criteria.  Every present
criterion must hold for the badge to match.  Awards go through a single
insert-if-absent statement keyed on ``(student_id, badge_id)`` so two
submissions racing for the same student can never produce two rows: the
loser of the race simply sees ``AwardOutcome.ALREADY_EXISTS``.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from achievements.crud import (
    get_awarded_badge_ids,
    get_badge,
    get_badge_by_name,
    get_student,
)
from achievements.database import insert_if_absent_statement, with_storage_retry
from achievements.errors import PersistenceFailure, ReferenceNotFound
from achievements.models import BadgeDefinition, StudentBadgeAward
from achievements.schemas import AwardedBadge, BadgeSummary
from achievements.stats import StudentStats

logger = logging.getLogger(__name__)

RARE_RARITIES = ("rare", "epic", "legendary")


class BadgeCriteria(SQLModel):
    quiz_count: Optional[int] = None
    min_score: Optional[int] = None
    max_time: Optional[int] = None
    streak_count: Optional[int] = None
    module_count: Optional[int] = None
    perfect_score: bool = False
    consecutive_perfect: Optional[int] = None

    @classmethod
    def from_definition(cls, badge: BadgeDefinition) -> "BadgeCriteria":
        return cls(
            quiz_count=badge.quiz_count,
            min_score=badge.min_score,
            max_time=badge.max_time,
            streak_count=badge.streak_count,
            module_count=badge.module_count,
            perfect_score=bool(badge.perfect_score),
            consecutive_perfect=badge.consecutive_perfect,
        )

    def present(self) -> dict:
        """Criteria that take part in matching; zero thresholds count as unset."""
        fields = {
            "quiz_count": self.quiz_count,
            "min_score": self.min_score,
            "max_time": self.max_time,
            "streak_count": self.streak_count,
            "module_count": self.module_count,
            "consecutive_perfect": self.consecutive_perfect,
        }
        found = {name: value for name, value in fields.items() if value}
        if self.perfect_score:
            found["perfect_score"] = True
        return found

    @property
    def is_unconditional(self) -> bool:
        return not self.present()


def criteria_match(criteria: BadgeCriteria, stats: StudentStats) -> bool:
    present = criteria.present()
    if "quiz_count" in present and stats.total_quizzes < criteria.quiz_count:
        return False
    if "min_score" in present and stats.highest_score < criteria.min_score:
        return False
    if "max_time" in present:
        # no timed attempt means no fastest time at all
        if stats.fastest_time is None or stats.fastest_time > criteria.max_time:
            return False
    if "streak_count" in present and stats.current_streak < criteria.streak_count:
        return False
    if "module_count" in present and stats.unique_modules < criteria.module_count:
        return False
    if "perfect_score" in present and not stats.has_perfect_score:
        return False
    if (
        "consecutive_perfect" in present
        and stats.consecutive_perfect_scores < criteria.consecutive_perfect
    ):
        return False
    return True


class AwardOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class AwardContext(SQLModel):
    quiz_id: Optional[int] = None
    attempt_id: Optional[int] = None
    score: Optional[int] = None
    time_spent: Optional[int] = None
    streak: Optional[int] = None
    module_id: Optional[int] = None


class AwardFailure(SQLModel):
    badge_id: int
    reason: str


class EvaluationResult(SQLModel):
    awarded: list[AwardedBadge] = []
    failures: list[AwardFailure] = []


async def insert_award_if_absent(
    db: AsyncSession,
    student_id: int,
    badge_id: int,
    context: AwardContext | None = None,
    source: str = "auto",
    awarded_by: int | None = None,
    earned_at: datetime | None = None,
) -> AwardOutcome:
    """Insert the award row unless one already exists for this pair."""

    context = context or AwardContext()
    values = {
        "student_id": student_id,
        "badge_id": badge_id,
        "quiz_id": context.quiz_id,
        "attempt_id": context.attempt_id,
        "earned_at": earned_at or datetime.utcnow(),
        "score_achieved": context.score,
        "time_spent": context.time_spent,
        "streak_number": context.streak,
        "module_id": context.module_id,
        "source": source,
        "awarded_by_user_id": awarded_by,
        "is_visible": True,
    }
    stmt = insert_if_absent_statement(
        db, StudentBadgeAward, values, ["student_id", "badge_id"]
    )

    async def _insert():
        try:
            result = await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        return result.rowcount

    try:
        rowcount = await with_storage_retry(
            _insert, f"award of badge {badge_id} to student {student_id}"
        )
    except (PersistenceFailure, SQLAlchemyError):
        logger.exception("Could not award badge %s to student %s", badge_id, student_id)
        return AwardOutcome.FAILED
    if rowcount == 0:
        return AwardOutcome.ALREADY_EXISTS
    return AwardOutcome.INSERTED


def _display_fields(badge: BadgeDefinition) -> dict:
    return {
        "badge_id": badge.id,
        "name": badge.name,
        "description": badge.description,
        "icon": badge.icon,
        "tier": badge.tier,
        "rarity": badge.rarity,
        "points": badge.points,
    }


async def evaluate(
    db: AsyncSession,
    student_id: int,
    stats: StudentStats,
    catalog: Sequence[BadgeDefinition],
    context: AwardContext | None = None,
    allow_unconditional: bool = False,
) -> EvaluationResult:
    """Award every catalog badge the stats now satisfy and return the new ones.

    Badges the student already holds are skipped, so running this twice on
    unchanged stats returns nothing the second time.  A failure on one
    badge is recorded and the remaining badges are still evaluated.
    """

    # Snapshot the catalog so a rollback after a failed award cannot expire it.
    definitions = [
        (badge.id, BadgeCriteria.from_definition(badge), _display_fields(badge))
        for badge in catalog
        if badge.is_active
    ]
    already = await get_awarded_badge_ids(db, student_id)
    result = EvaluationResult()
    for badge_id, criteria, display in definitions:
        if badge_id in already:
            continue
        if criteria.is_unconditional and not allow_unconditional:
            continue
        if not criteria_match(criteria, stats):
            continue
        earned_at = datetime.utcnow()
        outcome = await insert_award_if_absent(
            db, student_id, badge_id, context, earned_at=earned_at
        )
        if outcome == AwardOutcome.INSERTED:
            logger.info(
                "Badge %s (%s) awarded to student %s", badge_id, display["name"], student_id
            )
            result.awarded.append(AwardedBadge(**display, earned_at=earned_at))
        elif outcome == AwardOutcome.FAILED:
            result.failures.append(AwardFailure(badge_id=badge_id, reason="storage error"))
    if result.failures:
        logger.warning(
            "Badge evaluation for student %s finished with %s failure(s)",
            student_id,
            len(result.failures),
        )
    return result


async def grant_badge(
    db: AsyncSession, student_id: int, badge_id: int, awarded_by: int | None = None
) -> AwardOutcome:
    """Manually award any badge, including criteria-less event badges."""

    if not await get_student(db, student_id):
        raise ReferenceNotFound("student", student_id)
    if not await get_badge(db, badge_id):
        raise ReferenceNotFound("badge", badge_id)
    outcome = await insert_award_if_absent(
        db, student_id, badge_id, source="manual", awarded_by=awarded_by
    )
    if outcome == AwardOutcome.FAILED:
        raise PersistenceFailure(f"award of badge {badge_id} to student {student_id} failed")
    return outcome


def summarize_awards(badges: Iterable[BadgeDefinition]) -> BadgeSummary:
    summary = BadgeSummary(by_tier={}, by_category={}, by_rarity={})
    for badge in badges:
        summary.total += 1
        summary.total_points += badge.points
        summary.by_tier[badge.tier] = summary.by_tier.get(badge.tier, 0) + 1
        summary.by_category[badge.category] = summary.by_category.get(badge.category, 0) + 1
        summary.by_rarity[badge.rarity] = summary.by_rarity.get(badge.rarity, 0) + 1
    return summary


async def ensure_default_badges(db: AsyncSession) -> None:
    """Seed the database with the built-in badge catalog."""

    from achievements.badge_catalog import DEFAULT_BADGES

    for data in DEFAULT_BADGES:
        if await get_badge_by_name(db, data["name"]):
            continue
        fields = {k: v for k, v in data.items() if k != "criteria"}
        db.add(BadgeDefinition(**fields, **data["criteria"]))
    await db.commit()
