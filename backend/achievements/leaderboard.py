"""Read-only leaderboard queries over the materialized ranking records."""

import logging

from sqlalchemy import and_, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from achievements.crud import get_institution, get_quiz, get_student
from achievements.errors import ReferenceNotFound
from achievements.models import Institution, QuizAttempt, Student, StudentRanking
from achievements.schemas import (
    InstitutionSummary,
    LeaderboardEntry,
    LeaderboardResponse,
    QuizLeaderboardEntry,
    QuizLeaderboardResponse,
    RankingScope,
)
from achievements.ranking import get_student_ranking
from achievements.scoring import round_half_up
from achievements.schemas.ranking import (
    BadgeStats,
    InstitutionTopPerformer,
    LeaderboardStats,
    LeaderboardStudent,
    ModuleProgressRead,
    OverallStats,
    RecentActivity,
    ScopedRank,
    StreakStats,
    StudentRankingRead,
)

logger = logging.getLogger(__name__)


def _student_view(student: Student) -> LeaderboardStudent:
    return LeaderboardStudent(
        id=student.id,
        name=student.name,
        class_name=student.class_name,
        division=student.division,
    )


def _entry(
    ranking: StudentRanking,
    student: Student,
    institution_name: str | None,
    position: int,
    percentile: int,
    is_current_user: bool = False,
) -> LeaderboardEntry:
    return LeaderboardEntry(
        position=position,
        percentile=percentile,
        student=_student_view(student),
        institution=institution_name,
        stats=LeaderboardStats(
            ranking_score=ranking.ranking_score,
            average_score=ranking.average_score,
            total_quizzes=ranking.total_quizzes,
            total_badges=ranking.total_badges,
            badge_points=ranking.badge_points,
            current_streak=ranking.current_streak,
            perfect_scores=ranking.perfect_scores,
        ),
        last_active=ranking.last_quiz_date,
        is_current_user=is_current_user,
    )


def _in_scope(query, scope: RankingScope, institution_id: int | None):
    if scope == RankingScope.institutional:
        return query.where(StudentRanking.institution_id == institution_id)
    return query


def _percentile(total: int, position: int) -> int:
    return round_half_up((total - position + 1) / total * 100)


async def _live_position(
    db: AsyncSession,
    scope: RankingScope,
    institution_id: int | None,
    ranking: StudentRanking,
) -> int:
    ahead = select(func.count()).select_from(StudentRanking).where(
        or_(
            StudentRanking.ranking_score > ranking.ranking_score,
            and_(
                StudentRanking.ranking_score == ranking.ranking_score,
                StudentRanking.student_id < ranking.student_id,
            ),
        )
    )
    result = await db.execute(_in_scope(ahead, scope, institution_id))
    return (result.scalar() or 0) + 1


def _ranking_query():
    return (
        select(StudentRanking, Student, Institution.name)
        .join(Student, Student.id == StudentRanking.student_id)
        .join(Institution, Institution.id == StudentRanking.institution_id, isouter=True)
    )


async def get_leaderboard(
    db: AsyncSession,
    scope: RankingScope = RankingScope.global_,
    institution_id: int | None = None,
    limit: int = 50,
    student_id: int | None = None,
) -> LeaderboardResponse:
    """Return the top ``limit`` students of a scope.

    Entries follow ``ranking_score`` descending with ties going to the lower
    student id, the same order the batch job positions them in.  Positions
    and percentiles are both taken from that live order, so a score changed
    since the last batch run cannot make percentiles rise further down the
    list.  When the requesting student is not among the entries, their place
    in the same order is returned separately in ``requester_position``.
    """

    if scope == RankingScope.institutional and institution_id is None:
        raise ReferenceNotFound("institution", None)

    result = await db.execute(
        _in_scope(_ranking_query(), scope, institution_id)
        .order_by(StudentRanking.ranking_score.desc(), StudentRanking.student_id)
        .limit(limit)
    )
    rows = result.all()
    total = (
        await db.execute(
            _in_scope(select(func.count()).select_from(StudentRanking), scope, institution_id)
        )
    ).scalar() or 0
    logger.debug("%s leaderboard query returned %s of %s rows", scope.value, len(rows), total)

    entries = []
    for index, (ranking, student, institution_name) in enumerate(rows):
        entries.append(
            _entry(
                ranking,
                student,
                institution_name,
                position=index + 1,
                percentile=_percentile(total, index + 1),
                is_current_user=student.id == student_id,
            )
        )

    requester = None
    if student_id is not None and not any(e.student.id == student_id for e in entries):
        query = _ranking_query().where(StudentRanking.student_id == student_id)
        found = (await db.execute(_in_scope(query, scope, institution_id))).first()
        if found:
            ranking, student, institution_name = found
            position = await _live_position(db, scope, institution_id, ranking)
            requester = _entry(
                ranking,
                student,
                institution_name,
                position,
                _percentile(total, position),
                is_current_user=True,
            )
    return LeaderboardResponse(scope=scope, entries=entries, requester_position=requester)


async def get_quiz_leaderboard(
    db: AsyncSession, quiz_id: int, limit: int = 20, student_id: int | None = None
) -> QuizLeaderboardResponse:
    """Best submitted attempt per student on one quiz, highest score then fastest."""

    if not await get_quiz(db, quiz_id):
        raise ReferenceNotFound("quiz", quiz_id)
    result = await db.execute(
        select(QuizAttempt, Student)
        .join(Student, Student.id == QuizAttempt.student_id)
        .where(QuizAttempt.quiz_id == quiz_id, QuizAttempt.status == "submitted")
        .order_by(
            QuizAttempt.percentage.desc(),
            QuizAttempt.total_time_spent,
            QuizAttempt.id,
        )
    )
    rows = result.all()

    best = []
    seen: set[int] = set()
    for attempt, student in rows:
        if student.id in seen:
            continue
        seen.add(student.id)
        best.append((attempt, student))

    def entry(index, attempt, student):
        return QuizLeaderboardEntry(
            position=index + 1,
            student=_student_view(student),
            score=attempt.percentage,
            time_spent=attempt.total_time_spent,
            attempt_number=attempt.attempt_number,
            completed_at=attempt.created_at,
            is_current_user=student.id == student_id,
        )

    entries = [entry(i, a, s) for i, (a, s) in enumerate(best[:limit])]
    requester = None
    if student_id is not None and not any(e.is_current_user for e in entries):
        for index, (attempt, student) in enumerate(best):
            if student.id == student_id:
                requester = entry(index, attempt, student)
                break
    return QuizLeaderboardResponse(
        quiz_id=quiz_id,
        entries=entries,
        requester_position=requester,
        total_attempts=len(rows),
    )


async def get_institution_summary(db: AsyncSession, institution_id: int) -> InstitutionSummary:
    if not await get_institution(db, institution_id):
        raise ReferenceNotFound("institution", institution_id)

    result = await db.execute(
        select(
            func.count(StudentRanking.id),
            func.avg(StudentRanking.ranking_score),
            func.avg(StudentRanking.average_score),
            func.sum(StudentRanking.total_quizzes),
            func.sum(StudentRanking.total_badges),
            func.count(StudentRanking.id).filter(StudentRanking.total_quizzes >= 1),
        ).where(StudentRanking.institution_id == institution_id)
    )
    students, avg_rank, avg_score, quizzes, badges, active = result.one()

    leaders = await get_leaderboard(
        db, RankingScope.institutional, institution_id=institution_id, limit=10
    )
    return InstitutionSummary(
        institution_id=institution_id,
        total_students=students or 0,
        average_ranking_score=round(float(avg_rank or 0), 2),
        average_quiz_score=round(float(avg_score or 0), 2),
        total_quizzes_completed=quizzes or 0,
        total_badges_earned=badges or 0,
        active_students=active or 0,
        top_performers=[
            InstitutionTopPerformer(
                position=e.position,
                student=e.student,
                ranking_score=e.stats.ranking_score,
                average_score=e.stats.average_score,
                total_badges=e.stats.total_badges,
            )
            for e in leaders.entries
        ],
    )


async def get_student_ranking_view(db: AsyncSession, student_id: int) -> StudentRankingRead:
    """Full ranking profile of one student, grouped the way the API returns it."""

    ranking = await get_student_ranking(db, student_id)
    student = await get_student(db, student_id)
    institution = None
    if ranking.institution_id is not None:
        institution = await get_institution(db, ranking.institution_id)
    return StudentRankingRead(
        student_id=student_id,
        student_name=student.name,
        institution_id=ranking.institution_id,
        institution_name=institution.name if institution else None,
        ranking_score=ranking.ranking_score,
        overall_stats=OverallStats(
            total_quizzes=ranking.total_quizzes,
            total_score=ranking.total_score,
            average_score=ranking.average_score,
            highest_score=ranking.highest_score,
            perfect_scores=ranking.perfect_scores,
            total_time_spent=ranking.total_time_spent,
            average_time_per_quiz=ranking.average_time_per_quiz,
            fastest_quiz_time=ranking.fastest_quiz_time,
        ),
        badge_stats=BadgeStats(
            total_badges=ranking.total_badges,
            badge_points=ranking.badge_points,
            bronze_badges=ranking.bronze_badges,
            silver_badges=ranking.silver_badges,
            gold_badges=ranking.gold_badges,
            platinum_badges=ranking.platinum_badges,
            diamond_badges=ranking.diamond_badges,
            rare_badges=ranking.rare_badges,
        ),
        streak_stats=StreakStats(
            current_streak=ranking.current_streak,
            longest_streak=ranking.longest_streak,
            total_passed_quizzes=ranking.total_passed_quizzes,
        ),
        module_progress=[ModuleProgressRead(**m) for m in ranking.module_progress or []],
        recent_activity=RecentActivity(
            last_quiz_date=ranking.last_quiz_date,
            last_badge_earned=ranking.last_badge_earned,
            active_days=ranking.active_days,
        ),
        global_rank=ScopedRank(
            position=ranking.global_position,
            percentile=ranking.global_percentile,
            updated_at=ranking.global_updated_at,
        ),
        institutional_rank=ScopedRank(
            position=ranking.institutional_position,
            percentile=ranking.institutional_percentile,
            updated_at=ranking.institutional_updated_at,
        ),
        stats_updated_at=ranking.stats_updated_at,
    )
