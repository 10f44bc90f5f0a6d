"""Endpoints for viewing and updating engine policy settings."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.database import get_session
from achievements.models import User
from achievements.auth import require_role
from achievements.schemas import SettingsRead, SettingsUpdate
from achievements.crud import get_settings, save_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/", response_model=SettingsRead)
async def read_settings(db: AsyncSession = Depends(get_session)):
    """Retrieve the current configuration values."""
    settings = await get_settings(db)
    return SettingsRead.model_validate(settings)


@router.put("/", response_model=SettingsRead)
async def update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Update settings; only admins may change configuration."""
    settings = await get_settings(db)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(settings, field, value)
    if settings.default_leaderboard_limit > settings.max_leaderboard_limit:
        raise HTTPException(
            status_code=400,
            detail="Default leaderboard limit cannot exceed the maximum",
        )
    updated = await save_settings(db, settings)
    return SettingsRead.model_validate(updated)
