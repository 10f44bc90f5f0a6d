"""Pydantic models for engine policy settings."""

from pydantic import BaseModel, Field


class SettingsRead(BaseModel):
    site_name: str
    default_leaderboard_limit: int
    max_leaderboard_limit: int
    ranking_refresh_minutes: int
    auto_award_unconditional_badges: bool

    model_config = {"from_attributes": True}


class SettingsUpdate(BaseModel):
    site_name: str | None = None
    default_leaderboard_limit: int | None = Field(default=None, ge=1)
    max_leaderboard_limit: int | None = Field(default=None, ge=1)
    ranking_refresh_minutes: int | None = Field(default=None, ge=1)
    auto_award_unconditional_badges: bool | None = None
