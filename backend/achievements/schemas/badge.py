from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BadgeCriteriaFields(BaseModel):
    quiz_count: Optional[int] = Field(default=None, ge=0)
    min_score: Optional[int] = Field(default=None, ge=0, le=100)
    max_time: Optional[int] = Field(default=None, ge=0)
    streak_count: Optional[int] = Field(default=None, ge=0)
    module_count: Optional[int] = Field(default=None, ge=0)
    perfect_score: bool = False
    consecutive_perfect: Optional[int] = Field(default=None, ge=0)


class BadgeCreate(BadgeCriteriaFields):
    name: str
    description: str = ""
    icon: str = ""
    category: str = "special"
    tier: str = "bronze"
    rarity: str = "common"
    points: int = Field(default=10, ge=0)
    is_active: bool = True


class BadgeUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    category: str | None = None
    tier: str | None = None
    rarity: str | None = None
    points: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    quiz_count: int | None = Field(default=None, ge=0)
    min_score: int | None = Field(default=None, ge=0, le=100)
    max_time: int | None = Field(default=None, ge=0)
    streak_count: int | None = Field(default=None, ge=0)
    module_count: int | None = Field(default=None, ge=0)
    perfect_score: bool | None = None
    consecutive_perfect: int | None = Field(default=None, ge=0)


class BadgeRead(BadgeCriteriaFields):
    id: int
    name: str
    description: str
    icon: str
    category: str
    tier: str
    rarity: str
    points: int
    is_active: bool
    version: int

    model_config = {"from_attributes": True}


class StudentBadgeRead(BaseModel):
    award_id: int
    badge_id: int
    name: str
    icon: str
    tier: str
    rarity: str
    category: str
    points: int
    earned_at: datetime
    source: str
    score_achieved: Optional[int] = None
    time_spent: Optional[int] = None
    streak_number: Optional[int] = None


class BadgeSummary(BaseModel):
    total: int = 0
    total_points: int = 0
    by_tier: dict[str, int] = {}
    by_category: dict[str, int] = {}
    by_rarity: dict[str, int] = {}


class MyBadgesResponse(BaseModel):
    badges: list[StudentBadgeRead]
    stats: BadgeSummary


class ManualAwardResult(BaseModel):
    outcome: str
