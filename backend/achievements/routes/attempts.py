"""Routes for starting, submitting and listing quiz attempts."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.auth import get_current_student
from achievements.crud import get_attempts_by_student
from achievements.database import get_session
from achievements.models import Student
from achievements.schemas import (
    AttemptRead,
    AttemptStart,
    AttemptStartResponse,
    AttemptSubmission,
    SubmissionResult,
)
from achievements.submissions import attempt_view, start_attempt, submit_attempt

router = APIRouter(prefix="/attempts", tags=["attempts"])


@router.post("/start", response_model=AttemptStartResponse)
async def start_attempt_route(
    data: AttemptStart,
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    attempt = await start_attempt(db, student.id, data.quiz_id)
    return AttemptStartResponse(
        attempt_id=attempt.id,
        attempt_number=attempt.attempt_number,
        started_at=attempt.started_at,
        time_limit_seconds=attempt.time_limit_seconds,
    )


@router.post("/{attempt_id}/submit", response_model=SubmissionResult)
async def submit_attempt_route(
    attempt_id: int,
    data: AttemptSubmission,
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    """Score the attempt and report any badges it unlocked."""
    return await submit_attempt(
        db, student.id, attempt_id, data.answers, ended_at=data.ended_at
    )


@router.get("/", response_model=list[AttemptRead])
async def list_my_attempts(
    quiz_id: int | None = None,
    db: AsyncSession = Depends(get_session),
    student: Student = Depends(get_current_student),
):
    attempts = await get_attempts_by_student(db, student.id, quiz_id)
    return [attempt_view(a) for a in attempts]
