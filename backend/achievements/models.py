"""Database models used by the achievement and ranking engine.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent students, quizzes, attempts, badge definitions, badge awards
and the materialized ranking records.  Comments are kept concise to avoid
distracting from the field definitions.
"""

from typing import Optional, List
from datetime import datetime
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint


class Institution(SQLModel, table=True):
    """School or organisation that groups students for institutional ranking."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class User(SQLModel, table=True):
    """Staff account (admin or institution operator)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str  # 'admin' or 'institution'
    institution_id: Optional[int] = Field(default=None, foreign_key="institution.id")


class Student(SQLModel, table=True):
    """Learner who takes quizzes and earns badges."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    access_code: str = Field(unique=True)
    institution_id: Optional[int] = Field(
        default=None, foreign_key="institution.id", index=True
    )
    class_name: Optional[str] = None
    division: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LearningModule(SQLModel, table=True):
    """Content module a quiz belongs to; authored outside this service."""

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str


class Quiz(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    module_id: Optional[int] = Field(default=None, foreign_key="learningmodule.id")
    passing_score: int = 70  # percent
    time_limit_minutes: int = 10
    max_attempts: int = 3
    status: str = "published"  # draft, published, archived

    questions: List["QuizQuestion"] = Relationship(back_populates="quiz")


class QuizQuestion(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    prompt: str
    points: float = 1.0

    quiz: Quiz = Relationship(back_populates="questions")


class QuizAttempt(SQLModel, table=True):
    """One student's attempt at a quiz.

    Created as ``in_progress`` when the quiz starts and frozen once it is
    ``submitted`` or ``timed_out``.
    """

    __table_args__ = (
        UniqueConstraint(
            "student_id", "quiz_id", "attempt_number", name="uq_attempt_number"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", index=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    attempt_number: int = 1
    answers: List[dict] = Field(sa_column=Column(JSON), default_factory=list)
    raw_score: float = 0.0
    percentage: int = 0
    passed: bool = False
    started_at: datetime = Field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    total_time_spent: int = 0  # seconds
    time_limit_seconds: int = 0
    timed_out: bool = False
    status: str = "in_progress"  # in_progress, submitted, timed_out
    created_at: datetime = Field(default_factory=datetime.utcnow)


class BadgeDefinition(SQLModel, table=True):
    """Badge with an AND-combined set of optional criteria columns."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    description: str = ""
    icon: str = ""
    category: str = "special"  # quiz_completion, high_achiever, speed_demon, ...
    tier: str = "bronze"  # bronze, silver, gold, platinum, diamond
    rarity: str = "common"  # common, uncommon, rare, epic, legendary
    points: int = 10
    is_active: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Criteria; unset or zero means "not part of this badge"
    quiz_count: Optional[int] = None
    min_score: Optional[int] = None
    max_time: Optional[int] = None  # seconds
    streak_count: Optional[int] = None
    module_count: Optional[int] = None
    perfect_score: bool = False
    consecutive_perfect: Optional[int] = None


class StudentBadgeAward(SQLModel, table=True):
    """Badge earned by a student; at most one row per (student, badge)."""

    __table_args__ = (
        UniqueConstraint("student_id", "badge_id", name="uq_student_badge"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", index=True)
    badge_id: int = Field(foreign_key="badgedefinition.id")
    quiz_id: Optional[int] = Field(default=None, foreign_key="quiz.id")
    attempt_id: Optional[int] = Field(default=None, foreign_key="quizattempt.id")
    earned_at: datetime = Field(default_factory=datetime.utcnow)
    score_achieved: Optional[int] = None
    time_spent: Optional[int] = None
    streak_number: Optional[int] = None
    module_id: Optional[int] = None
    source: str = "auto"  # auto or manual
    awarded_by_user_id: Optional[int] = Field(default=None, foreign_key="user.id")
    is_visible: bool = True


class StudentRanking(SQLModel, table=True):
    """Materialized ranking snapshot, one per student.

    The per-student recompute writes the stats and ``ranking_score`` columns;
    the batch job writes only the position/percentile columns.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", unique=True)
    institution_id: Optional[int] = Field(
        default=None, foreign_key="institution.id", index=True
    )

    # overall stats
    total_quizzes: int = 0
    total_score: int = 0
    average_score: int = 0
    highest_score: int = 0
    perfect_scores: int = 0
    total_time_spent: int = 0
    average_time_per_quiz: int = 0
    fastest_quiz_time: Optional[int] = None  # None means no timed attempt

    # badge stats
    total_badges: int = 0
    badge_points: int = 0
    bronze_badges: int = 0
    silver_badges: int = 0
    gold_badges: int = 0
    platinum_badges: int = 0
    diamond_badges: int = 0
    rare_badges: int = 0  # rare, epic and legendary

    # streak stats
    current_streak: int = 0
    longest_streak: int = 0
    total_passed_quizzes: int = 0

    module_progress: List[dict] = Field(sa_column=Column(JSON), default_factory=list)
    last_quiz_date: Optional[datetime] = None
    last_badge_earned: Optional[datetime] = None
    active_days: int = 0

    ranking_score: int = Field(default=0, index=True)
    stats_updated_at: Optional[datetime] = None

    global_position: int = 0
    global_percentile: int = 0
    global_updated_at: Optional[datetime] = None
    institutional_position: int = 0
    institutional_percentile: int = 0
    institutional_updated_at: Optional[datetime] = None


class Settings(SQLModel, table=True):
    """Singleton table storing engine policy values."""

    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "Quiz Achievements"
    default_leaderboard_limit: int = 50
    max_leaderboard_limit: int = 200
    ranking_refresh_minutes: int = 60
    auto_award_unconditional_badges: bool = False
