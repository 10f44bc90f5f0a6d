"""Routes for student rankings, leaderboards and ranking recalculation."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.auth import get_current_student, require_role
from achievements.crud import get_settings
from achievements.database import get_session
from achievements.leaderboard import (
    get_institution_summary,
    get_leaderboard,
    get_quiz_leaderboard,
    get_student_ranking_view,
)
from achievements.models import Student, User
from achievements.ranking import recompute_global_rankings, recompute_institutional_rankings
from achievements.schemas import (
    InstitutionSummary,
    LeaderboardResponse,
    QuizLeaderboardResponse,
    RankingScope,
    RecomputeRequest,
    RecomputeResult,
    StudentRankingRead,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/rankings", tags=["rankings"])


async def _effective_limit(db: AsyncSession, limit: int | None) -> int:
    settings = await get_settings(db)
    if limit is None:
        return settings.default_leaderboard_limit
    return min(limit, settings.max_leaderboard_limit)


@router.get("/me", response_model=StudentRankingRead)
async def my_ranking(
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    return await get_student_ranking_view(db, student.id)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    scope: RankingScope = RankingScope.global_,
    limit: int | None = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    """Top students globally or within the requester's institution."""
    student_id = student.id
    institution_id = student.institution_id
    if scope == RankingScope.institutional and institution_id is None:
        raise HTTPException(status_code=400, detail="Student has no institution")
    return await get_leaderboard(
        db,
        scope,
        institution_id=institution_id,
        limit=await _effective_limit(db, limit),
        student_id=student_id,
    )


@router.get("/quiz/{quiz_id}/leaderboard", response_model=QuizLeaderboardResponse)
async def quiz_leaderboard(
    quiz_id: int,
    limit: int = Query(default=20, ge=1),
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    student_id = student.id
    return await get_quiz_leaderboard(
        db, quiz_id, limit=await _effective_limit(db, limit), student_id=student_id
    )


@router.post("/recompute", response_model=RecomputeResult)
async def recompute_rankings(
    data: RecomputeRequest,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin", "institution")),
):
    """Recalculate positions for one scope.

    Institution staff may only recompute their own institution; the global
    scope is reserved for admins.
    """
    if data.scope == RankingScope.global_:
        if current_user.role != "admin":
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        updated = await recompute_global_rankings(db)
        return RecomputeResult(scope=data.scope, students_updated=updated)

    institution_id = data.institution_id
    if current_user.role == "institution":
        if institution_id is None:
            institution_id = current_user.institution_id
        if institution_id != current_user.institution_id:
            raise HTTPException(status_code=403, detail="Not authorized")
    if institution_id is None:
        raise HTTPException(status_code=400, detail="institution_id is required")
    updated = await recompute_institutional_rankings(db, institution_id)
    return RecomputeResult(scope=data.scope, students_updated=updated)


@router.get("/institution/summary", response_model=InstitutionSummary)
async def institution_summary(
    institution_id: int | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin", "institution")),
):
    if current_user.role == "institution":
        institution_id = current_user.institution_id
    if institution_id is None:
        raise HTTPException(status_code=400, detail="institution_id is required")
    return await get_institution_summary(db, institution_id)
