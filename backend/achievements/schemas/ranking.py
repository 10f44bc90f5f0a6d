from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RankingScope(str, Enum):
    global_ = "global"
    institutional = "institutional"


class ScopedRank(BaseModel):
    position: int
    percentile: int
    updated_at: Optional[datetime] = None


class OverallStats(BaseModel):
    total_quizzes: int
    total_score: int
    average_score: int
    highest_score: int
    perfect_scores: int
    total_time_spent: int
    average_time_per_quiz: int
    fastest_quiz_time: Optional[int] = None


class BadgeStats(BaseModel):
    total_badges: int
    badge_points: int
    bronze_badges: int
    silver_badges: int
    gold_badges: int
    platinum_badges: int
    diamond_badges: int
    rare_badges: int


class StreakStats(BaseModel):
    current_streak: int
    longest_streak: int
    total_passed_quizzes: int


class ModuleProgressRead(BaseModel):
    module_id: int
    quizzes_completed: int
    average_score: int
    best_score: int


class RecentActivity(BaseModel):
    last_quiz_date: Optional[datetime] = None
    last_badge_earned: Optional[datetime] = None
    active_days: int = 0


class StudentRankingRead(BaseModel):
    student_id: int
    student_name: str
    institution_id: Optional[int] = None
    institution_name: Optional[str] = None
    ranking_score: int
    overall_stats: OverallStats
    badge_stats: BadgeStats
    streak_stats: StreakStats
    module_progress: list[ModuleProgressRead]
    recent_activity: RecentActivity
    global_rank: ScopedRank
    institutional_rank: ScopedRank
    stats_updated_at: Optional[datetime] = None


class LeaderboardStudent(BaseModel):
    id: int
    name: str
    class_name: Optional[str] = None
    division: Optional[str] = None


class LeaderboardStats(BaseModel):
    ranking_score: int
    average_score: int
    total_quizzes: int
    total_badges: int
    badge_points: int
    current_streak: int
    perfect_scores: int


class LeaderboardEntry(BaseModel):
    position: int
    percentile: int
    student: LeaderboardStudent
    institution: Optional[str] = None
    stats: LeaderboardStats
    last_active: Optional[datetime] = None
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    scope: RankingScope
    entries: list[LeaderboardEntry]
    requester_position: Optional[LeaderboardEntry] = None


class QuizLeaderboardEntry(BaseModel):
    position: int
    student: LeaderboardStudent
    score: int
    time_spent: int
    attempt_number: int
    completed_at: datetime
    is_current_user: bool = False


class QuizLeaderboardResponse(BaseModel):
    quiz_id: int
    entries: list[QuizLeaderboardEntry]
    requester_position: Optional[QuizLeaderboardEntry] = None
    total_attempts: int


class InstitutionTopPerformer(BaseModel):
    position: int
    student: LeaderboardStudent
    ranking_score: int
    average_score: int
    total_badges: int


class InstitutionSummary(BaseModel):
    institution_id: int
    total_students: int = 0
    average_ranking_score: float = 0
    average_quiz_score: float = 0
    total_quizzes_completed: int = 0
    total_badges_earned: int = 0
    active_students: int = 0
    top_performers: list[InstitutionTopPerformer] = []


class RecomputeRequest(BaseModel):
    scope: RankingScope = RankingScope.institutional
    institution_id: Optional[int] = None


class RecomputeResult(BaseModel):
    scope: RankingScope
    students_updated: int
