"""Convenience imports for all schema classes used by the API."""

from .attempt import (
    AnswerSubmission,
    AttemptStart,
    AttemptStartResponse,
    AttemptSubmission,
    AttemptRead,
    AwardedBadge,
    ScoreRead,
    SubmissionResult,
)
from .badge import (
    BadgeCreate,
    BadgeUpdate,
    BadgeRead,
    StudentBadgeRead,
    BadgeSummary,
    MyBadgesResponse,
    ManualAwardResult,
)
from .ranking import (
    RankingScope,
    ScopedRank,
    StudentRankingRead,
    LeaderboardEntry,
    LeaderboardResponse,
    QuizLeaderboardEntry,
    QuizLeaderboardResponse,
    InstitutionSummary,
    RecomputeRequest,
    RecomputeResult,
)
from .settings import SettingsRead, SettingsUpdate
from .student import (
    StudentCreate,
    StudentRead,
    StudentLogin,
    InstitutionCreate,
    InstitutionRead,
)
from .user import UserCreate, UserResponse, UserLogin

__all__ = [
    "AnswerSubmission",
    "AttemptStart",
    "AttemptStartResponse",
    "AttemptSubmission",
    "AttemptRead",
    "AwardedBadge",
    "ScoreRead",
    "SubmissionResult",
    "BadgeCreate",
    "BadgeUpdate",
    "BadgeRead",
    "StudentBadgeRead",
    "BadgeSummary",
    "MyBadgesResponse",
    "ManualAwardResult",
    "RankingScope",
    "ScopedRank",
    "StudentRankingRead",
    "LeaderboardEntry",
    "LeaderboardResponse",
    "QuizLeaderboardEntry",
    "QuizLeaderboardResponse",
    "InstitutionSummary",
    "RecomputeRequest",
    "RecomputeResult",
    "SettingsRead",
    "SettingsUpdate",
    "StudentCreate",
    "StudentRead",
    "StudentLogin",
    "InstitutionCreate",
    "InstitutionRead",
    "UserCreate",
    "UserResponse",
    "UserLogin",
]
