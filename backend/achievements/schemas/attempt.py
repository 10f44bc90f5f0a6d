from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AnswerSubmission(BaseModel):
    """One already-graded answer as delivered by the quiz-taking service."""

    question_id: int
    is_correct: bool = False
    points_earned: float = Field(default=0, ge=0)
    time_spent: int = 0
    hints_used: int = 0


class AttemptStart(BaseModel):
    quiz_id: int


class AttemptStartResponse(BaseModel):
    attempt_id: int
    attempt_number: int
    started_at: datetime
    time_limit_seconds: int


class AttemptSubmission(BaseModel):
    answers: list[AnswerSubmission]
    ended_at: Optional[datetime] = None


class AwardedBadge(BaseModel):
    badge_id: int
    name: str
    description: str
    icon: str
    tier: str
    rarity: str
    points: int
    earned_at: datetime


class ScoreRead(BaseModel):
    raw: float
    percentage: int
    passed: bool


class SubmissionResult(BaseModel):
    attempt_id: int
    status: str
    score: ScoreRead
    passed: bool
    total_time_spent: int
    timed_out: bool
    newly_awarded_badges: list[AwardedBadge] = []


class AttemptRead(BaseModel):
    id: int
    quiz_id: int
    attempt_number: int
    raw_score: float
    percentage: int
    passed: bool
    status: str
    total_time_spent: int
    timed_out: bool
    question_count: int
    correct_answers: int
    created_at: datetime
