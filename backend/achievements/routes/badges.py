"""Routes for the badge catalog, a student's badges and manual awards."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.auth import get_current_student, require_role
from achievements.badges import AwardOutcome, grant_badge, summarize_awards
from achievements.crud import (
    badge_has_awards,
    get_active_badges,
    get_badge,
    get_badge_by_name,
    get_student_awards,
    save_badge,
)
from achievements.database import get_session
from achievements.ranking import recompute_student_ranking
from achievements.models import BadgeDefinition, Student, User
from achievements.schemas import (
    BadgeCreate,
    BadgeRead,
    BadgeUpdate,
    ManualAwardResult,
    MyBadgesResponse,
    StudentBadgeRead,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/badges", tags=["badges"])

CRITERIA_FIELDS = {
    "quiz_count",
    "min_score",
    "max_time",
    "streak_count",
    "module_count",
    "perfect_score",
    "consecutive_perfect",
}


@router.get("/", response_model=list[BadgeRead])
async def list_badges(db: AsyncSession = Depends(get_session)):
    return await get_active_badges(db)


@router.get("/me", response_model=MyBadgesResponse)
async def my_badges(
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    """Visible badges of the logged in student with tier/category totals."""
    awards = await get_student_awards(db, student.id, visible_only=True)
    return MyBadgesResponse(
        badges=[
            StudentBadgeRead(
                award_id=award.id,
                badge_id=badge.id,
                name=badge.name,
                icon=badge.icon,
                tier=badge.tier,
                rarity=badge.rarity,
                category=badge.category,
                points=badge.points,
                earned_at=award.earned_at,
                source=award.source,
                score_achieved=award.score_achieved,
                time_spent=award.time_spent,
                streak_number=award.streak_number,
            )
            for award, badge in awards
        ],
        stats=summarize_awards(badge for _, badge in awards),
    )


@router.post("/", response_model=BadgeRead)
async def create_badge(
    data: BadgeCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    if await get_badge_by_name(db, data.name):
        raise HTTPException(status_code=400, detail="Badge name already exists")
    badge = await save_badge(db, BadgeDefinition(**data.model_dump()))
    logger.info("Badge %s (%s) created by %s", badge.id, badge.name, current_user.email)
    return badge


@router.put("/{badge_id}", response_model=BadgeRead)
async def update_badge(
    badge_id: int,
    data: BadgeUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Edit a badge definition.

    Criteria are frozen once anyone holds the badge; cosmetic edits are
    always allowed and bump ``version``.
    """
    badge = await get_badge(db, badge_id)
    if not badge:
        raise HTTPException(status_code=404, detail="Badge not found")
    changes = data.model_dump(exclude_unset=True)
    if CRITERIA_FIELDS & changes.keys() and await badge_has_awards(db, badge_id):
        raise HTTPException(
            status_code=409,
            detail="Criteria cannot change after the badge has been awarded",
        )
    if "name" in changes and changes["name"] != badge.name:
        if await get_badge_by_name(db, changes["name"]):
            raise HTTPException(status_code=400, detail="Badge name already exists")
    for field, value in changes.items():
        setattr(badge, field, value)
    badge.version += 1
    return await save_badge(db, badge)


@router.post("/{badge_id}/award/{student_id}", response_model=ManualAwardResult)
async def award_badge(
    badge_id: int,
    student_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Grant a badge by hand; granting it twice is a no-op."""
    awarded_by = current_user.id
    outcome = await grant_badge(db, student_id, badge_id, awarded_by=awarded_by)
    if outcome == AwardOutcome.INSERTED:
        await recompute_student_ranking(db, student_id)
    logger.info(
        "Manual award of badge %s to student %s by user %s: %s",
        badge_id,
        student_id,
        awarded_by,
        outcome.value,
    )
    return ManualAwardResult(outcome=outcome.value)
