"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers and the engine modules light and makes behavior easier to test.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from sqlalchemy import func
from achievements.models import (
    User,
    Institution,
    Student,
    Quiz,
    QuizQuestion,
    QuizAttempt,
    BadgeDefinition,
    StudentBadgeAward,
    StudentRanking,
    Settings,
)
from achievements.stats import AttemptSummary


async def get_settings(db: AsyncSession) -> Settings:
    """Fetch the singleton settings record, creating it if necessary."""
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        await db.commit()
        await db.refresh(settings)
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""
    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, user: User) -> User:
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_institution(db: AsyncSession, institution_id: int) -> Institution | None:
    result = await db.execute(
        select(Institution).where(Institution.id == institution_id)
    )
    return result.scalar_one_or_none()


async def get_all_institution_ids(db: AsyncSession) -> list[int]:
    result = await db.execute(select(Institution.id).order_by(Institution.id))
    return list(result.scalars().all())


async def create_institution(db: AsyncSession, institution: Institution) -> Institution:
    db.add(institution)
    await db.commit()
    await db.refresh(institution)
    return institution


async def get_student(db: AsyncSession, student_id: int) -> Student | None:
    result = await db.execute(select(Student).where(Student.id == student_id))
    return result.scalar_one_or_none()


async def get_student_by_access_code(db: AsyncSession, code: str) -> Student | None:
    result = await db.execute(select(Student).where(Student.access_code == code))
    return result.scalar_one_or_none()


async def create_student(db: AsyncSession, student: Student) -> Student:
    db.add(student)
    await db.commit()
    await db.refresh(student)
    return student


async def get_quiz(db: AsyncSession, quiz_id: int) -> Quiz | None:
    result = await db.execute(select(Quiz).where(Quiz.id == quiz_id))
    return result.scalar_one_or_none()


async def get_questions_for_quiz(db: AsyncSession, quiz_id: int) -> list[QuizQuestion]:
    result = await db.execute(
        select(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id).order_by(QuizQuestion.id)
    )
    return result.scalars().all()


async def get_attempt(db: AsyncSession, attempt_id: int) -> QuizAttempt | None:
    result = await db.execute(select(QuizAttempt).where(QuizAttempt.id == attempt_id))
    return result.scalar_one_or_none()


async def get_next_attempt_number(db: AsyncSession, student_id: int, quiz_id: int) -> int:
    result = await db.execute(
        select(func.max(QuizAttempt.attempt_number)).where(
            QuizAttempt.student_id == student_id, QuizAttempt.quiz_id == quiz_id
        )
    )
    last = result.scalar()
    return (last or 0) + 1


async def count_finished_attempts(db: AsyncSession, student_id: int, quiz_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(QuizAttempt)
        .where(
            QuizAttempt.student_id == student_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status.in_(["submitted", "timed_out"]),
        )
    )
    return result.scalar() or 0


async def get_attempts_by_student(
    db: AsyncSession, student_id: int, quiz_id: int | None = None
) -> list[QuizAttempt]:
    query = select(QuizAttempt).where(QuizAttempt.student_id == student_id)
    if quiz_id is not None:
        query = query.where(QuizAttempt.quiz_id == quiz_id)
    result = await db.execute(query.order_by(QuizAttempt.created_at.desc(), QuizAttempt.id.desc()))
    return result.scalars().all()


async def get_submitted_attempt_summaries(
    db: AsyncSession, student_id: int
) -> list[AttemptSummary]:
    """Return the student's submitted attempts joined with their quiz's module."""
    result = await db.execute(
        select(QuizAttempt, Quiz.module_id)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id, isouter=True)
        .where(
            QuizAttempt.student_id == student_id,
            QuizAttempt.status == "submitted",
        )
        .execution_options(populate_existing=True)
    )
    return [
        AttemptSummary(
            attempt_id=attempt.id,
            created_at=attempt.created_at,
            percentage=attempt.percentage,
            passed=attempt.passed,
            raw_score=attempt.raw_score,
            total_time_spent=attempt.total_time_spent,
            module_id=module_id,
        )
        for attempt, module_id in result.all()
    ]


async def get_badge(db: AsyncSession, badge_id: int) -> BadgeDefinition | None:
    result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.id == badge_id))
    return result.scalar_one_or_none()


async def get_badge_by_name(db: AsyncSession, name: str) -> BadgeDefinition | None:
    result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.name == name))
    return result.scalar_one_or_none()


async def get_active_badges(db: AsyncSession) -> list[BadgeDefinition]:
    result = await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active == True)  # noqa: E712
        .order_by(BadgeDefinition.id)
    )
    return result.scalars().all()


async def save_badge(db: AsyncSession, badge: BadgeDefinition) -> BadgeDefinition:
    db.add(badge)
    await db.commit()
    await db.refresh(badge)
    return badge


async def badge_has_awards(db: AsyncSession, badge_id: int) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(StudentBadgeAward)
        .where(StudentBadgeAward.badge_id == badge_id)
    )
    return (result.scalar() or 0) > 0


async def get_awarded_badge_ids(db: AsyncSession, student_id: int) -> set[int]:
    result = await db.execute(
        select(StudentBadgeAward.badge_id).where(StudentBadgeAward.student_id == student_id)
    )
    return set(result.scalars().all())


async def get_student_awards(
    db: AsyncSession, student_id: int, visible_only: bool = False
) -> list[tuple[StudentBadgeAward, BadgeDefinition]]:
    """Return ``(award, badge)`` pairs for a student, newest first."""
    query = (
        select(StudentBadgeAward, BadgeDefinition)
        .join(BadgeDefinition, BadgeDefinition.id == StudentBadgeAward.badge_id)
        .where(StudentBadgeAward.student_id == student_id)
    )
    if visible_only:
        query = query.where(StudentBadgeAward.is_visible == True)  # noqa: E712
    result = await db.execute(
        query.order_by(StudentBadgeAward.earned_at.desc(), StudentBadgeAward.id.desc())
    )
    return [(award, badge) for award, badge in result.all()]


async def get_ranking_by_student(db: AsyncSession, student_id: int) -> StudentRanking | None:
    result = await db.execute(
        select(StudentRanking)
        .where(StudentRanking.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
