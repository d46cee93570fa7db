"""Tests for the FastAPI HTTP layer."""

import pytest
from fastapi.testclient import TestClient

from qzvert_play import api
from qzvert_play.grading import LenientGrader
from qzvert_play.sessions import SessionRegistry
from qzvert_play.storage import ActivityStore, ResultsLog

QUEST = {
    "id": "volcano",
    "title": "Volcanoes",
    "type": "quest_course",
    "stages": [
        {
            "title": "Magma",
            "lesson": "Magma is molten rock.",
            "quizzes": [
                {"question": "Where?", "options": ["Mantle", "Sky"], "correct_answer": 0},
            ],
        },
        {
            "title": "Eruptions",
            "lesson": "Pressure builds up.",
            "quizzes": [
                {"question": "Why?", "type": "subjective", "model_answer": "Gas pressure"},
            ],
        },
    ],
}

QUIZ = {
    "id": "math",
    "title": "Math",
    "kind": "quiz",
    "questions": [
        {"prompt": "1+1?", "options": ["1", "2"], "correct_index": 1, "points": 50},
        {"prompt": "2+2?", "options": ["4", "5"], "correct_index": 0, "points": 50},
    ],
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Client with storage redirected to a temp dir and offline grading."""
    store = ActivityStore(tmp_path / "activities")
    results = ResultsLog(tmp_path / "results")
    monkeypatch.setattr(api, "activity_store", store)
    monkeypatch.setattr(api, "results_log", results)
    monkeypatch.setattr(api, "registry", SessionRegistry(store, results))
    monkeypatch.setattr(api, "grader", LenientGrader())
    return TestClient(api.app)


def _open(client, activity, **config):
    assert client.post("/api/activities", json=activity).status_code == 200
    body = {"activity_id": activity["id"]}
    if config:
        body["config"] = config
    resp = client.post("/api/play", json=body)
    assert resp.status_code == 200
    return resp.json()


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestActivities:
    def test_crud_lifecycle(self, client):
        # Create (generator format is normalized)
        resp = client.post("/api/activities", json=QUEST)
        assert resp.status_code == 200
        created = resp.json()
        assert created["kind"] == "quest"
        assert created["stages"][0]["lesson_text"] == "Magma is molten rock."

        # Read
        resp = client.get("/api/activities/volcano")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Volcanoes"

        # Update
        resp = client.put("/api/activities/volcano", json={**QUEST, "title": "Lava"})
        assert resp.status_code == 200
        assert resp.json()["title"] == "Lava"

        # List
        resp = client.get("/api/activities")
        assert [a["title"] for a in resp.json()] == ["Lava"]

        # Delete
        assert client.delete("/api/activities/volcano").status_code == 200
        assert client.get("/api/activities/volcano").status_code == 404

    def test_invalid_activity(self, client):
        resp = client.post("/api/activities", json={"kind": "quiz", "questions": []})
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidDefinition"

    def test_traversal_id_rejected(self, client, tmp_path):
        resp = client.post("/api/activities", json={**QUIZ, "id": "../escaped"})
        assert resp.status_code == 422
        assert not (tmp_path / "escaped.json").exists()
        assert client.get("/api/activities/..%2Fescaped").status_code == 404

    def test_list_reports_generated_kind(self, client):
        client.post("/api/activities", json=QUEST)
        assert client.get("/api/activities").json() == [
            {"id": "volcano", "title": "Volcanoes", "kind": "quest"}
        ]


class TestPlay:
    def test_quiz_session(self, client):
        view = _open(client, QUIZ, lives_enabled=False)
        sid = view["session_id"]
        assert view["phase"] == "intro"
        assert view["lives"] is None

        view = client.post(f"/api/play/{sid}/start").json()
        assert view["phase"] == "playing"
        assert view["question"] == {
            "type": "multiple_choice",
            "prompt": "1+1?",
            "points": 50,
            "options": ["1", "2"],
        }
        assert view["question_number"] == 1
        assert view["question_total"] == 2

        resp = client.post(f"/api/play/{sid}/answer", json={"selected_index": 1})
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["correct"] is True
        assert result["correct_index"] == 1

        resp = client.post(f"/api/play/{sid}/answer", json={"selected_index": 1})
        body = resp.json()
        assert body["result"]["correct"] is False
        assert body["session"]["phase"] == "quiz_complete"
        assert body["session"]["score"] == 50
        assert body["session"]["outcome"] == "completed"

        summary = client.get(f"/api/play/{sid}/summary").json()
        assert summary["answered"] == 2
        assert summary["accuracy"] == 50.0

        results = client.get("/api/results", params={"activity_id": "math"}).json()
        assert len(results) == 1
        assert results[0]["score"] == 50
        assert results[0]["completed"] is True

    def test_quest_session(self, client):
        sid = _open(client, QUEST)["session_id"]

        view = client.post(f"/api/play/{sid}/start").json()
        assert view["phase"] == "lesson"
        assert view["stage"]["lesson_text"] == "Magma is molten rock."
        assert "question" not in view

        client.post(f"/api/play/{sid}/begin")
        body = client.post(f"/api/play/{sid}/answer", json={"selected_index": 0}).json()
        assert body["session"]["phase"] == "stage_complete"
        assert body["session"]["completed_stages"] == [0]
        assert [s["locked"] for s in body["session"]["progress_map"]] == [False, False]

        view = client.post(f"/api/play/{sid}/next-stage").json()
        assert view["phase"] == "lesson"
        assert view["cursor"] == {"stage_index": 1, "question_index": 0}

        client.post(f"/api/play/{sid}/begin")
        body = client.post(f"/api/play/{sid}/answer", json={"text": "Gas pushes it"}).json()
        assert body["result"]["correct"] is True
        assert body["result"]["model_answer"] == "Gas pressure"
        assert body["session"]["phase"] == "quest_complete"
        assert body["session"]["score"] == 200

        view = client.post(f"/api/play/{sid}/reset").json()
        assert view["phase"] == "intro"
        assert view["score"] == 0
        assert view["completed_stages"] == []

    def test_game_over(self, client):
        sid = _open(client, QUEST, max_lives=1)["session_id"]
        client.post(f"/api/play/{sid}/start")
        client.post(f"/api/play/{sid}/begin")
        body = client.post(f"/api/play/{sid}/answer", json={"selected_index": 1}).json()
        assert body["session"]["phase"] == "game_over"
        assert body["session"]["lives"] == 0
        assert body["session"]["outcome"] == "failed"

        resp = client.post(f"/api/play/{sid}/next-stage")
        assert resp.status_code == 409

    def test_locked_stage(self, client):
        sid = _open(client, QUEST)["session_id"]
        resp = client.post(f"/api/play/{sid}/stages/1/select")
        assert resp.status_code == 409
        assert resp.json()["error"] == "StageLocked"

        view = client.post(f"/api/play/{sid}/stages/0/select").json()
        assert view["phase"] == "lesson"

    def test_answer_before_start(self, client):
        sid = _open(client, QUIZ)["session_id"]
        resp = client.post(f"/api/play/{sid}/answer", json={"selected_index": 0})
        assert resp.status_code == 409

    def test_wrong_answer_shape(self, client):
        sid = _open(client, QUIZ)["session_id"]
        client.post(f"/api/play/{sid}/start")
        resp = client.post(f"/api/play/{sid}/answer", json={"text": "two"})
        assert resp.status_code == 409

    def test_unknown_activity(self, client):
        resp = client.post("/api/play", json={"activity_id": "nonexistent"})
        assert resp.status_code == 404

    def test_unknown_session(self, client):
        assert client.get("/api/play/nope").status_code == 404

    def test_quit(self, client):
        sid = _open(client, QUIZ)["session_id"]
        client.post(f"/api/play/{sid}/start")
        resp = client.delete(f"/api/play/{sid}")
        assert resp.json() == {"status": "closed", "outcome": "aborted"}
        assert client.get(f"/api/play/{sid}").status_code == 404
