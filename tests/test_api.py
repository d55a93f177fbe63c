"""HTTP tests against the FastAPI app with an in-memory database."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from linguist.db import get_db
from linguist.engine import get_engine
from linguist.main import app


@pytest.fixture
def client(engine, session_factory):
    def _db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_db] = _db
    # No context manager: startup would create tables in the configured database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ana(client):
    response = client.post("/users", json={"username": "ana", "level": "b1"})
    assert response.status_code == 201
    return response.json()


class TestUsersApi:
    def test_create_and_get(self, client, ana):
        assert ana["level"] == "B1"
        assert ana["daily_goal"] == 3

        response = client.get("/users/ana")
        assert response.status_code == 200
        assert response.json()["username"] == "ana"

    def test_duplicate_is_conflict(self, client, ana):
        response = client.post("/users", json={"username": "ana"})
        assert response.status_code == 409
        body = response.json()
        assert body["status"] == 409
        assert body["error"] == "Conflict"
        assert "ana" in body["message"]

    def test_unknown_level_is_bad_request(self, client):
        response = client.post("/users", json={"username": "ben", "level": "Z9"})
        assert response.status_code == 400
        assert response.json()["error"] == "Bad Request"

    def test_unknown_user_is_not_found(self, client):
        response = client.get("/users/ghost")
        assert response.status_code == 404
        body = response.json()
        assert body["message"] == "User not found: ghost"
        assert "timestamp" in body


class TestSkillsApi:
    def test_outcome_then_batch(self, client, ana):
        response = client.post("/users/ana/skills/outcomes", json={"rule_name": "past simple", "success": True})
        assert response.status_code == 200
        record = response.json()
        assert record["rule_name"] == "Past Simple"
        assert record["mastery_level"] == 5

        response = client.post(f"/skills/{record['id']}/batch", json={"correct_count": 4, "total_count": 5})
        assert response.status_code == 200
        result = response.json()
        assert result["previous_mastery"] == 5
        assert result["new_mastery"] == 15
        assert result["delta"] == 10
        assert result["record"]["practice_count"] == 6

    def test_blank_rule_is_bad_request(self, client, ana):
        response = client.post("/users/ana/skills/outcomes", json={"rule_name": "  ", "success": True})
        assert response.status_code == 400

    @pytest.mark.parametrize("correct, total", [(0, 0), (-1, 5), (6, 5)])
    def test_bad_counts_are_bad_request(self, client, ana, correct, total):
        record = client.post("/users/ana/skills/outcomes", json={"rule_name": "a", "success": True}).json()
        response = client.post(f"/skills/{record['id']}/batch", json={"correct_count": correct, "total_count": total})
        assert response.status_code == 400
        assert response.json()["error"] == "Bad Request"

    def test_related_lessons(self, client, ana):
        record = client.post("/users/ana/skills/outcomes", json={"rule_name": "articles", "success": True}).json()
        client.post("/users/ana/lessons", json={"topic": "Zoo", "grammar_focus": ["Articles"]})
        client.post("/users/ana/lessons", json={"topic": "Bank", "grammar_focus": ["tenses"]})

        lessons = client.get(f"/skills/{record['id']}/lessons").json()
        assert [lsn["topic"] for lsn in lessons] == ["Zoo"]

    def test_unknown_record(self, client, ana):
        assert client.get("/skills/999").status_code == 404
        assert client.post("/skills/999/batch", json={"correct_count": 1, "total_count": 1}).status_code == 404

    def test_weaknesses_and_due(self, client, ana, clock):
        client.post("/users/ana/skills/outcomes", json={"rule_name": "articles", "success": False})
        client.post("/users/ana/skills/outcomes", json={"rule_name": "tenses", "success": True})

        weak = client.get("/users/ana/skills/weaknesses", params={"threshold": 3}).json()
        assert [r["rule_name"] for r in weak] == ["Articles"]

        assert client.get("/users/ana/skills/due").json() == []
        clock.advance(days=1)
        assert len(client.get("/users/ana/skills/due").json()) == 2

    def test_storage_failure_is_internal_error(self, client, ana, session_factory):
        def boom(session, flush_context, instances):
            raise SQLAlchemyError("database is locked")

        event.listen(session_factory, "before_flush", boom)
        try:
            response = client.post("/users/ana/skills/outcomes", json={"rule_name": "tenses", "success": True})
        finally:
            event.remove(session_factory, "before_flush", boom)

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "An unexpected error occurred"
        assert "locked" not in body["message"]
        assert client.get("/users/ana/skills").json() == []


class TestVocabularyApi:
    def test_import_review_stats(self, client, ana):
        response = client.post(
            "/users/ana/vocabulary/import",
            json={
                "entries": [{"word": "casa", "translation": "house"}],
                "vocabulary_list": "perro = dog\ncasa = home",
                "context_note": "Basics",
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["created_count"] == 2

        card_id = body["created"][0]["id"]
        reviewed = client.post(f"/vocabulary/{card_id}/review", json={"correct": True}).json()
        assert reviewed["mastery_level"] == 15

        stats = client.get("/users/ana/vocabulary/stats").json()
        assert stats == {"total_words": 2, "mastered_words": 0, "due_for_review": 1}

    def test_unknown_card(self, client, ana):
        assert client.post("/vocabulary/5/review", json={"correct": False}).status_code == 404

    def test_import_for_unknown_user(self, client):
        response = client.post("/users/ghost/vocabulary/import", json={})
        assert response.status_code == 404


class TestPracticeAndProgressApi:
    def test_lesson_flow_and_dashboard(self, client, ana):
        lesson = client.post(
            "/users/ana/lessons", json={"topic": "Market", "grammar_focus": ["articles", "past simple"]}
        ).json()

        response = client.post(
            f"/users/ana/lessons/{lesson['id']}/practice",
            json={"accuracy": 85, "error_rules": ["past simple"]},
        )
        assert response.status_code == 200
        result = response.json()
        assert result["failed_rules"] == ["Past Simple"]
        assert result["succeeded_rules"] == ["Articles"]
        assert result["lesson"]["completed"] is True

        board = client.get("/users/ana/dashboard").json()
        assert board["total_sessions"] == 1
        assert board["current_streak"] == 1
        assert board["weakest_rules"] == ["Past Simple", "Articles"]

        timeline = client.get("/users/ana/timeline").json()
        assert [e["kind"] for e in timeline] == ["lesson"]

    def test_score_validation(self, client, ana):
        response = client.post("/users/ana/challenges/listening", json={"score": 150})
        assert response.status_code == 422

    def test_promotion_not_eligible(self, client, ana):
        response = client.post("/users/ana/promotion")
        assert response.status_code == 200
        body = response.json()
        assert body["promoted"] is False
        assert body["reason"] == "insufficient_rules_tracked"

    def test_unknown_lesson(self, client, ana):
        assert client.get("/users/ana/lessons/12").status_code == 404

    def test_session_history_and_delete(self, client, ana):
        lesson = client.post("/users/ana/lessons", json={"topic": "Market"}).json()
        first = client.post(f"/users/ana/lessons/{lesson['id']}/practice", json={"accuracy": 90}).json()
        client.post(f"/users/ana/lessons/{lesson['id']}/practice", json={"accuracy": 50})

        history = client.get(f"/users/ana/lessons/{lesson['id']}/sessions").json()
        assert len(history) == 2

        response = client.delete(f"/users/ana/sessions/{first['session_id']}")
        assert response.status_code == 200
        assert response.json()["best_score"] == 50
        assert response.json()["completed"] is False
        assert client.delete(f"/users/ana/sessions/{first['session_id']}").status_code == 404

    def test_challenge_history(self, client, ana):
        client.post("/users/ana/challenges/writing", json={"score": 66, "title": "Essay"})
        client.post("/users/ana/challenges/listening", json={"score": 71})

        writing = client.get("/users/ana/challenges/writing").json()
        assert [r["title"] for r in writing] == ["Essay"]
        assert client.get("/users/ana/challenges/speaking").status_code == 400


class TestHealthApi:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
