"""Tests for the practice Web API."""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from wordseed.core.practice import PracticeEngine, get_practice_engine
from wordseed.db import concepts_repository, review_repository
from wordseed.db.concepts_repository import Scope
from wordseed.web.api import create_app


@pytest.fixture
def backend():
    return MagicMock()


@pytest.fixture
def client(tmp_path, backend):
    """Test client with a temp database and a mocked LLM backend."""
    app = create_app(db_path=tmp_path / "web.db")
    engine = PracticeEngine(backend)
    app.dependency_overrides[get_practice_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def cat(client):
    scope = Scope("alice", "zh")
    concepts_repository.mark_words_as_known(scope, ["我", "是", "动物", "吗", "有", "一", "只"])
    return concepts_repository.insert_concept(scope, word="猫", meaning="cat", pinyin="māo")


@pytest.fixture
def understood(client, cat):
    response = client.post("/api/practice/understood", json={"concept_id": cat.id})
    assert response.status_code == 200
    return {r.question_type: r for r in review_repository.list_records_for_concept(cat.id)}


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert "T" in data["timestamp"]


class TestNextEndpoint:
    """Tests for GET /api/practice/next."""

    def test_nothing_for_new_user(self, client):
        response = client.get("/api/practice/next", params={"user_id": "nobody"})

        assert response.status_code == 200
        assert response.json()["kind"] == "nothing"

    def test_first_encounter(self, client, cat):
        data = client.get("/api/practice/next", params={"user_id": "alice"}).json()

        assert data["kind"] == "first_encounter"
        assert data["concept_id"] == cat.id
        assert data["word"] == "猫"
        assert data["pinyin"] == "māo"
        assert data["record_id"] is None

    def test_user_id_required(self, client):
        assert client.get("/api/practice/next").status_code == 422


class TestUnderstoodEndpoint:
    """Tests for POST /api/practice/understood."""

    def test_creates_tracks(self, client, cat):
        response = client.post("/api/practice/understood", json={"concept_id": cat.id})

        assert response.status_code == 200
        assert response.json()["tracks"] == ["pinyin", "yes_no", "multiple_choice"]

    def test_unknown_concept(self, client):
        response = client.post("/api/practice/understood", json={"concept_id": 999})
        assert response.status_code == 404


class TestContentEndpoint:
    """Tests for POST /api/practice/content."""

    def test_generated_question_hides_answer(self, client, backend, cat):
        backend.generate.side_effect = [
            json.dumps({"question": "猫 是 动物 吗？", "answer": True}, ensure_ascii=False)
        ]

        response = client.post(
            "/api/practice/content", json={"concept_id": cat.id, "question_type": "yes_no"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["question"]["question_text"] == "猫 是 动物 吗？"
        assert "correct_answer" not in data["question"]

    def test_generation_failure_is_soft(self, client, backend, cat):
        bad = json.dumps({"question": "狗 是 动物 吗？", "answer": True}, ensure_ascii=False)
        backend.generate.side_effect = [bad, bad, bad]

        response = client.post(
            "/api/practice/content", json={"concept_id": cat.id, "question_type": "yes_no"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "soft_error"
        assert response.json()["fallback_mode"] == "sentence"

    def test_unknown_concept(self, client):
        response = client.post(
            "/api/practice/content", json={"concept_id": 999, "question_type": "pinyin"}
        )
        assert response.status_code == 404

    def test_invalid_question_type(self, client, cat):
        response = client.post(
            "/api/practice/content", json={"concept_id": cat.id, "question_type": "essay"}
        )
        assert response.status_code == 422


class TestAnswerEndpoint:
    """Tests for POST /api/practice/answer."""

    def test_self_graded_answer(self, client, understood):
        record = understood["yes_no"]

        response = client.post(
            "/api/practice/answer",
            json={"record_id": record.id, "version": record.version, "correct": True},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["tier"] == 1
        assert data["version"] == 2

    def test_pinyin_answer(self, client, understood):
        record = understood["pinyin"]

        data = client.post(
            "/api/practice/answer",
            json={"record_id": record.id, "version": record.version, "response": "mao1"},
        ).json()

        assert data["correct"] is True
        assert data["canonical_answer"] == "māo"

    def test_stale_version_is_soft_error(self, client, understood):
        record = understood["yes_no"]
        payload = {"record_id": record.id, "version": record.version, "correct": True}
        client.post("/api/practice/answer", json=payload)

        response = client.post("/api/practice/answer", json=payload)

        assert response.status_code == 200
        assert response.json()["status"] == "soft_error"
        assert review_repository.get_record(record.id).tier == 1

    def test_sentence_answer(self, client, backend, understood):
        record = understood["multiple_choice"]
        backend.generate.side_effect = [
            json.dumps({"correct": True, "feedback": "很好", "improved": None}, ensure_ascii=False)
        ]

        data = client.post(
            "/api/practice/answer",
            json={"record_id": record.id, "version": record.version, "sentence": "我 有 一 只 猫"},
        ).json()

        assert data["correct"] is True
        assert data["critique"]["feedback"] == "很好"

    def test_answer_payload_required(self, client, understood):
        record = understood["yes_no"]

        response = client.post(
            "/api/practice/answer", json={"record_id": record.id, "version": record.version}
        )

        assert response.status_code == 400

    def test_unknown_question_is_bad_request(self, client, understood):
        record = understood["yes_no"]

        response = client.post(
            "/api/practice/answer",
            json={"record_id": record.id, "version": 1, "question_id": 999, "response": "yes"},
        )

        assert response.status_code == 400


class TestStatusEndpoint:
    def test_status_includes_hsk_level(self, client, understood):
        data = client.get("/api/practice/status", params={"user_id": "alice"}).json()

        entries = {c["word"]: c for c in data["concepts"]}
        assert data["count"] == 8
        assert entries["猫"]["hsk_level"] == "1"
        assert [t["question_type"] for t in entries["猫"]["tracks"]] == [
            "pinyin",
            "yes_no",
            "multiple_choice",
        ]
        assert entries["猫"]["tracks"][0]["percent"] == 0
        assert entries["我"]["tracks"] == []


class TestPregenerateEndpoint:
    def test_queues_scope(self, client):
        response = client.post("/api/practice/pregenerate", params={"user_id": "alice"})

        assert response.status_code == 202
        data = response.json()
        assert data["queued"] is True
        assert data["user_id"] == "alice"
        assert data["language"] == "zh"
