"""Routes for student accounts, student login and institutions."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.auth import create_student_token, get_current_student, require_role
from achievements.crud import (
    create_institution,
    create_student,
    get_institution,
    get_student_by_access_code,
)
from achievements.database import get_session
from achievements.models import Institution, Student, User
from achievements.schemas import (
    InstitutionCreate,
    InstitutionRead,
    StudentCreate,
    StudentLogin,
    StudentRead,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/students", tags=["students"])


@router.post("/", response_model=StudentRead)
async def create_student_route(
    data: StudentCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin", "institution")),
):
    """Create a student; institution staff may only add to their own institution."""

    institution_id = data.institution_id
    if current_user.role == "institution":
        if institution_id is None:
            institution_id = current_user.institution_id
        if institution_id != current_user.institution_id:
            raise HTTPException(status_code=403, detail="Not authorized")
    if institution_id is not None and not await get_institution(db, institution_id):
        raise HTTPException(status_code=404, detail="Institution not found")
    if await get_student_by_access_code(db, data.access_code):
        raise HTTPException(status_code=400, detail="Access code already in use")

    student = Student(
        name=data.name,
        access_code=data.access_code,
        institution_id=institution_id,
        class_name=data.class_name,
        division=data.division,
    )
    student = await create_student(db, student)
    logger.info("User %s created student %s", current_user.email, student.id)
    return student


@router.post("/institutions", response_model=InstitutionRead)
async def create_institution_route(
    data: InstitutionCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    institution = await create_institution(db, Institution(name=data.name))
    logger.info("Institution %s created by %s", institution.id, current_user.email)
    return institution


@router.post("/login")
async def student_login(
    credentials: StudentLogin,
    db: AsyncSession = Depends(get_session),
):
    """Issue a token for a student using their access code."""
    student = await get_student_by_access_code(db, credentials.access_code)
    if not student:
        raise HTTPException(status_code=401, detail="Invalid access code")
    token = create_student_token(student)
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=StudentRead)
async def read_current_student(student: Student = Depends(get_current_student)):
    return student
