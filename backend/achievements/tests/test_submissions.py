"""Tests for starting and submitting attempts directly against the engine."""

import asyncio
import pathlib
import sys

from sqlalchemy import func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from achievements.errors import PersistenceFailure
from achievements.models import (
    BadgeDefinition,
    Quiz,
    QuizAttempt,
    QuizQuestion,
    Student,
    StudentBadgeAward,
    StudentRanking,
)
from achievements.submissions import start_attempt, submit_attempt


async def _make_session(url="sqlite+aiosqlite:///:memory:"):
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


async def _seed(session, max_attempts=3):
    student = Student(name="Noor", access_code="NOOR7")
    quiz = Quiz(title="Fractions", max_attempts=max_attempts)
    session.add_all([student, quiz, BadgeDefinition(name="First", quiz_count=1)])
    await session.commit()
    session.add_all(
        [
            QuizQuestion(quiz_id=quiz.id, prompt="1/2 + 1/4?", points=1),
            QuizQuestion(quiz_id=quiz.id, prompt="3/4 - 1/2?", points=1),
        ]
    )
    await session.commit()
    return student.id, quiz.id


def _answers(correct):
    return [
        {"question_id": 1, "is_correct": correct, "points_earned": 1 if correct else 0},
        {"question_id": 2, "is_correct": True, "points_earned": 1},
    ]


async def _count(session, model, **filters):
    query = select(func.count()).select_from(model)
    for name, value in filters.items():
        query = query.where(getattr(model, name) == value)
    return (await session.execute(query)).scalar()


def test_badges_are_returned_when_ranking_refresh_fails(monkeypatch):
    async def broken_refresh(db, student_id):
        raise PersistenceFailure("ranking write timed out")

    monkeypatch.setattr("achievements.submissions.recompute_student_ranking", broken_refresh)

    async def run():
        _, Session = await _make_session()
        async with Session() as session:
            student_id, quiz_id = await _seed(session)
            attempt = await start_attempt(session, student_id, quiz_id)

            result = await submit_attempt(session, student_id, attempt.id, _answers(True))
            assert result.score.percentage == 100
            assert [b.name for b in result.newly_awarded_badges] == ["First"]
            assert await _count(session, StudentBadgeAward, student_id=student_id) == 1
            assert await _count(session, StudentRanking, student_id=student_id) == 0

    asyncio.run(run())


def test_score_is_returned_when_badge_evaluation_fails(monkeypatch):
    async def broken_evaluate(*args, **kwargs):
        raise RuntimeError("badge catalog unreadable")

    monkeypatch.setattr("achievements.submissions.evaluate", broken_evaluate)

    async def run():
        _, Session = await _make_session()
        async with Session() as session:
            student_id, quiz_id = await _seed(session)
            attempt = await start_attempt(session, student_id, quiz_id)

            result = await submit_attempt(session, student_id, attempt.id, _answers(False))
            assert result.status == "submitted"
            assert result.score.raw == 1
            assert result.score.percentage == 50
            assert result.newly_awarded_badges == []

            stored = (
                await session.execute(
                    select(QuizAttempt)
                    .where(QuizAttempt.id == attempt.id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()
            assert stored.status == "submitted"
            assert stored.percentage == 50
            # the ranking refresh still runs on its own
            assert await _count(session, StudentRanking, student_id=student_id) == 1

    asyncio.run(run())


def test_concurrent_starts_get_distinct_attempt_numbers(tmp_path):
    async def run():
        engine, Session = await _make_session(
            f"sqlite+aiosqlite:///{tmp_path / 'attempts.db'}"
        )
        async with Session() as session:
            student_id, quiz_id = await _seed(session, max_attempts=0)

        async def start():
            async with Session() as session:
                attempt = await start_attempt(session, student_id, quiz_id)
                return attempt.attempt_number

        numbers = await asyncio.gather(*(start() for _ in range(4)))
        assert sorted(numbers) == [1, 2, 3, 4]

        async with Session() as session:
            assert await _count(session, QuizAttempt, student_id=student_id) == 4
        await engine.dispose()

    asyncio.run(run())
