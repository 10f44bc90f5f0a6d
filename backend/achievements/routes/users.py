"""Staff account management."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from achievements.schemas import UserCreate, UserResponse
from achievements.models import User
from achievements.database import get_session
from achievements.crud import create_user, get_institution, get_user_by_email
from achievements.auth import get_password_hash, require_role, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


@router.post("/", response_model=UserResponse)
async def create_user_route(
    user: UserCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    existing = await get_user_by_email(db, user.email)
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    if user.role == "institution":
        if user.institution_id is None or not await get_institution(db, user.institution_id):
            raise HTTPException(status_code=400, detail="Institution staff need a valid institution")
    user_model = User(
        name=user.name,
        email=user.email,
        password_hash=get_password_hash(user.password),
        role=user.role,
        institution_id=user.institution_id,
    )
    created = await create_user(db, user_model)
    logger.info("Staff account %s (%s) created", created.email, created.role)
    return created


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Return details for the authenticated staff member."""
    return current_user
