"""End-to-end tests for the student, attempt, badge and ranking endpoints."""

from datetime import datetime, timedelta
import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

# Allow importing the achievements package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from achievements.main import app
from achievements.database import get_session
from achievements.models import Institution, LearningModule, Quiz, QuizQuestion, User
from achievements.auth import get_password_hash
from achievements.badges import ensure_default_badges


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with TestSession() as session:
        await ensure_default_badges(session)
        school = Institution(name="Hillside School")
        module = LearningModule(title="Road Safety")
        session.add_all([school, module])
        await session.commit()
        session.add_all(
            [
                User(
                    name="Admin",
                    email="admin@example.com",
                    password_hash=get_password_hash("adminpass"),
                    role="admin",
                ),
                User(
                    name="Teacher",
                    email="staff@example.com",
                    password_hash=get_password_hash("staffpass"),
                    role="institution",
                    institution_id=school.id,
                ),
            ]
        )
        quiz = Quiz(title="Crossing the Road", module_id=module.id, passing_score=70)
        session.add(quiz)
        await session.commit()
        session.add_all(
            [
                QuizQuestion(quiz_id=quiz.id, prompt="Look which way first?", points=1),
                QuizQuestion(quiz_id=quiz.id, prompt="Where do you cross?", points=1),
            ]
        )
        await session.commit()
        ids = {"school": school.id, "quiz": quiz.id}
    return ids


async def _login(client, email, password):
    resp = await client.post("/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


async def _start(client, headers, quiz_id):
    resp = await client.post("/attempts/start", headers=headers, json={"quiz_id": quiz_id})
    assert resp.status_code == 200
    return resp.json()


def test_submission_flow():
    async def run():
        ids = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            staff_headers = await _login(client, "staff@example.com", "staffpass")

            # Institution staff creates a student in their own school
            resp = await client.post(
                "/students/",
                headers=staff_headers,
                json={"name": "Mira", "access_code": "MIRA42", "class_name": "5", "division": "B"},
            )
            assert resp.status_code == 200
            student_id = resp.json()["id"]
            assert resp.json()["institution_id"] == ids["school"]

            resp = await client.post("/students/login", json={"access_code": "MIRA42"})
            assert resp.status_code == 200
            student_headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
            resp = await client.get("/students/me", headers=student_headers)
            assert resp.json()["name"] == "Mira"

            # Students cannot use staff routes and vice versa
            resp = await client.get("/rankings/me", headers=staff_headers)
            assert resp.status_code == 403

            started = await _start(client, student_headers, ids["quiz"])
            assert started["attempt_number"] == 1
            assert started["time_limit_seconds"] == 600
            ended_at = datetime.fromisoformat(started["started_at"]) + timedelta(seconds=90)

            resp = await client.post(
                f"/attempts/{started['attempt_id']}/submit",
                headers=student_headers,
                json={
                    "answers": [
                        {"question_id": 1, "is_correct": True, "points_earned": 1},
                        {"question_id": 2, "is_correct": True, "points_earned": 1},
                    ],
                    "ended_at": ended_at.isoformat(),
                },
            )
            assert resp.status_code == 200
            result = resp.json()
            assert result["status"] == "submitted"
            assert result["score"]["percentage"] == 100
            assert result["passed"] is True
            assert result["total_time_spent"] == 90
            names = [b["name"] for b in result["newly_awarded_badges"]]
            assert names == ["First Steps", "High Scorer", "Perfect Score", "Lightning Fast"]

            # An attempt is frozen once submitted
            resp = await client.post(
                f"/attempts/{started['attempt_id']}/submit",
                headers=student_headers,
                json={"answers": []},
            )
            assert resp.status_code == 404
            assert resp.json()["code"] == "reference_not_found"

            resp = await client.get("/attempts/", headers=student_headers)
            attempts = resp.json()
            assert len(attempts) == 1
            assert attempts[0]["correct_answers"] == 2

            resp = await client.get("/badges/me", headers=student_headers)
            data = resp.json()
            assert data["stats"]["total"] == 4
            assert data["stats"]["by_tier"]["bronze"] >= 1

            resp = await client.get("/rankings/me", headers=student_headers)
            assert resp.status_code == 200
            ranking = resp.json()
            assert ranking["overall_stats"]["total_quizzes"] == 1
            assert ranking["badge_stats"]["total_badges"] == 4
            assert ranking["institution_name"] == "Hillside School"
            assert ranking["module_progress"][0]["best_score"] == 100
            assert 0 < ranking["ranking_score"] <= 100

            # A timed out attempt keeps its score but earns nothing
            second = await _start(client, student_headers, ids["quiz"])
            late = datetime.fromisoformat(second["started_at"]) + timedelta(hours=1)
            resp = await client.post(
                f"/attempts/{second['attempt_id']}/submit",
                headers=student_headers,
                json={
                    "answers": [{"question_id": 1, "is_correct": True, "points_earned": 1}],
                    "ended_at": late.isoformat(),
                },
            )
            assert resp.status_code == 200
            assert resp.json()["status"] == "timed_out"
            assert resp.json()["timed_out"] is True
            assert resp.json()["score"]["percentage"] == 50
            assert resp.json()["newly_awarded_badges"] == []

            # Positions come from the batch recompute
            resp = await client.post(
                "/rankings/recompute", headers=staff_headers, json={"scope": "global"}
            )
            assert resp.status_code == 403
            resp = await client.post(
                "/rankings/recompute", headers=staff_headers, json={"scope": "institutional"}
            )
            assert resp.status_code == 200
            assert resp.json()["students_updated"] == 1
            resp = await client.post(
                "/rankings/recompute", headers=admin_headers, json={"scope": "global"}
            )
            assert resp.json() == {"scope": "global", "students_updated": 1}

            resp = await client.get(
                "/rankings/leaderboard?scope=institutional", headers=student_headers
            )
            assert resp.status_code == 200
            board = resp.json()
            assert board["entries"][0]["student"]["id"] == student_id
            assert board["entries"][0]["is_current_user"] is True
            assert board["entries"][0]["percentile"] == 100
            assert board["requester_position"] is None

            resp = await client.get(
                f"/rankings/quiz/{ids['quiz']}/leaderboard", headers=student_headers
            )
            assert resp.json()["entries"][0]["score"] == 100

            resp = await client.get("/rankings/institution/summary", headers=staff_headers)
            assert resp.status_code == 200
            assert resp.json()["total_students"] == 1

            resp = await client.post(
                "/attempts/start", headers=student_headers, json={"quiz_id": 999}
            )
            assert resp.status_code == 404

    asyncio.run(run())


def test_attempt_limit():
    async def run():
        ids = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            resp = await client.post(
                "/students/",
                headers=admin_headers,
                json={"name": "Leo", "access_code": "LEO1", "institution_id": ids["school"]},
            )
            assert resp.status_code == 200
            resp = await client.post("/students/login", json={"access_code": "LEO1"})
            headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

            for _ in range(3):
                started = await _start(client, headers, ids["quiz"])
                resp = await client.post(
                    f"/attempts/{started['attempt_id']}/submit",
                    headers=headers,
                    json={"answers": []},
                )
                assert resp.json()["passed"] is False
            resp = await client.post(
                "/attempts/start", headers=headers, json={"quiz_id": ids["quiz"]}
            )
            assert resp.status_code == 403
            assert resp.json()["code"] == "attempt_limit_reached"

    asyncio.run(run())


def test_badge_administration():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            staff_headers = await _login(client, "staff@example.com", "staffpass")

            resp = await client.get("/badges/")
            catalog = {b["name"]: b for b in resp.json()}
            early = catalog["Early Adopter"]
            first = catalog["First Steps"]

            resp = await client.post(
                "/students/", headers=admin_headers, json={"name": "Ivy", "access_code": "IVY"}
            )
            student_id = resp.json()["id"]

            resp = await client.post(
                f"/badges/{early['id']}/award/{student_id}", headers=staff_headers
            )
            assert resp.status_code == 403
            resp = await client.post(
                f"/badges/{early['id']}/award/{student_id}", headers=admin_headers
            )
            assert resp.json() == {"outcome": "inserted"}
            resp = await client.post(
                f"/badges/{early['id']}/award/{student_id}", headers=admin_headers
            )
            assert resp.json() == {"outcome": "already_exists"}
            resp = await client.post(f"/badges/{early['id']}/award/999", headers=admin_headers)
            assert resp.status_code == 404

            # Criteria are frozen once awarded, cosmetics are not
            resp = await client.put(
                f"/badges/{early['id']}", headers=admin_headers, json={"quiz_count": 2}
            )
            assert resp.status_code == 409
            resp = await client.put(
                f"/badges/{early['id']}", headers=admin_headers, json={"icon": "🚀"}
            )
            assert resp.status_code == 200
            assert resp.json()["version"] == 2
            resp = await client.put(
                f"/badges/{first['id']}", headers=admin_headers, json={"quiz_count": 2}
            )
            assert resp.status_code == 200
            assert resp.json()["quiz_count"] == 2

            resp = await client.post(
                "/badges/",
                headers=admin_headers,
                json={"name": "Night Owl", "tier": "gold", "quiz_count": 10},
            )
            assert resp.status_code == 200
            assert resp.json()["version"] == 1
            resp = await client.post(
                "/badges/", headers=admin_headers, json={"name": "Night Owl"}
            )
            assert resp.status_code == 400

    asyncio.run(run())


def test_settings_endpoints():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/settings/")
            assert resp.status_code == 200
            assert resp.json()["site_name"] == "Quiz Achievements"
            assert resp.json()["auto_award_unconditional_badges"] is False

            staff_headers = await _login(client, "staff@example.com", "staffpass")
            resp = await client.put(
                "/settings/", headers=staff_headers, json={"site_name": "Hacked"}
            )
            assert resp.status_code == 403

            admin_headers = await _login(client, "admin@example.com", "adminpass")
            resp = await client.put(
                "/settings/",
                headers=admin_headers,
                json={"default_leaderboard_limit": 10, "auto_award_unconditional_badges": True},
            )
            assert resp.status_code == 200
            assert resp.json()["default_leaderboard_limit"] == 10
            assert resp.json()["auto_award_unconditional_badges"] is True

            resp = await client.put(
                "/settings/", headers=admin_headers, json={"default_leaderboard_limit": 500}
            )
            assert resp.status_code == 400

            resp = await client.post(
                "/login", json={"email": "admin@example.com", "password": "wrong"}
            )
            assert resp.status_code == 401

    asyncio.run(run())


def test_staff_accounts():
    async def run():
        ids = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/needs-admin")
            assert resp.json() == {"needs_admin": False}
            resp = await client.post(
                "/register",
                json={"name": "Eve", "email": "eve@example.com", "password": "x"},
            )
            assert resp.status_code == 404

            admin_headers = await _login(client, "admin@example.com", "adminpass")
            resp = await client.post(
                "/users/",
                headers=admin_headers,
                json={
                    "name": "Coordinator",
                    "email": "coord@example.com",
                    "password": "coordpass",
                    "institution_id": ids["school"],
                },
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "institution"

            resp = await client.post(
                "/users/",
                headers=admin_headers,
                json={"name": "Nobody", "email": "nobody@example.com", "password": "x"},
            )
            assert resp.status_code == 400

            coord_headers = await _login(client, "coord@example.com", "coordpass")
            resp = await client.get("/users/me", headers=coord_headers)
            assert resp.json()["institution_id"] == ids["school"]

            resp = await client.post(
                "/token",
                data={"username": "coord@example.com", "password": "coordpass"},
            )
            assert resp.status_code == 200
            assert resp.json()["token_type"] == "bearer"

    asyncio.run(run())
