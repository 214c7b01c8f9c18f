"""Tests for the practice engine facade."""

import asyncio
import json
import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from wordseed.config.app_config import AppConfig, PracticeConfig, ProviderConfig
from wordseed.core.practice import (
    PracticeEngine,
    build_llm_client,
    get_practice_engine,
    record_llm_usage,
    reset_practice_engine,
)
from wordseed.db import concepts_repository, questions_repository, usage_repository
from wordseed.db.concepts_repository import ConceptNotFoundError
from wordseed.llm.client import LLMClient, LLMResponse


def _responder(yes_no: dict, multiple_choice: dict):
    """Backend side effect answering by query type."""

    def generate(prompt: str, query_type: str = "generic", **kwargs) -> str:
        payload = yes_no if query_type == "yes_no" else multiple_choice
        return json.dumps(payload, ensure_ascii=False)

    return generate


@pytest.fixture
def cat(seeded_vocabulary, add_concept):
    return add_concept("猫", "cat", pinyin="māo", part_of_speech="noun")


@pytest.fixture
def engine(make_backend) -> PracticeEngine:
    return PracticeEngine(make_backend())


class TestContent:
    """Tests for get_or_generate_content."""

    def test_generates_and_stores_question(self, engine, cat, yes_no_response):
        engine.backend.generate.side_effect = [json.dumps(yes_no_response, ensure_ascii=False)]

        content = engine.get_or_generate_content(cat.id, "yes_no")

        assert content.status == "ok"
        assert content.question.question_text == "猫 是 动物 吗？"
        assert content.question.correct_answer == "yes"
        assert questions_repository.count_unused(cat.id, "yes_no") == 1

    def test_serves_cached_question_without_llm(self, engine, cat, yes_no_response):
        engine.backend.generate.side_effect = [json.dumps(yes_no_response, ensure_ascii=False)]

        first = engine.get_or_generate_content(cat.id, "yes_no")
        second = engine.get_or_generate_content(cat.id, "yes_no")

        assert second.question.id == first.question.id
        assert engine.backend.generate.call_count == 1

    def test_multiple_choice_question_stored(self, engine, cat):
        engine.backend.generate.side_effect = [
            json.dumps(
                {"sentence": "我 有 一 只 ____。", "options": ["你", "猫"], "correct_index": 1},
                ensure_ascii=False,
            )
        ]

        content = engine.get_or_generate_content(cat.id, "multiple_choice")

        assert content.status == "ok"
        assert content.question.options == ["你", "猫"]
        assert content.question.correct_answer == "1"

    def test_pinyin_needs_no_generation(self, engine, cat):
        content = engine.get_or_generate_content(cat.id, "pinyin")

        assert content.status == "ok"
        assert content.question is None
        engine.backend.generate.assert_not_called()

    def test_generation_failure_falls_back_to_sentence(self, engine, cat):
        bad = json.dumps({"question": "狗 是 动物 吗？", "answer": True}, ensure_ascii=False)
        engine.backend.generate.side_effect = [bad, bad, bad]

        content = engine.get_or_generate_content(cat.id, "yes_no")

        assert content.status == "soft_error"
        assert content.fallback_mode == "sentence"
        assert "猫" in content.message
        assert content.to_dict()["question"] is None

    def test_unknown_concept_is_hard_error(self, engine, db):
        assert engine.get_or_generate_content(999, "yes_no").status == "hard_error"

    def test_unsupported_type_is_hard_error(self, engine, cat):
        assert engine.get_or_generate_content(cat.id, "sentence").status == "hard_error"


class TestAsyncContent:
    """Tests for the shielded async variant."""

    @pytest.mark.asyncio
    async def test_returns_content(self, engine, cat, yes_no_response):
        engine.backend.generate.side_effect = [json.dumps(yes_no_response, ensure_ascii=False)]

        content = await engine.get_or_generate_content_async(cat.id, "yes_no", timeout_s=5)

        assert content.status == "ok"
        assert content.question is not None

    @pytest.mark.asyncio
    async def test_timeout_keeps_generating_in_background(self, engine, cat, yes_no_response):
        release = threading.Event()

        def slow_generate(prompt, query_type="generic", **kwargs):
            release.wait(5)
            return json.dumps(yes_no_response, ensure_ascii=False)

        engine.backend.generate.side_effect = slow_generate

        content = await engine.get_or_generate_content_async(cat.id, "yes_no", timeout_s=0.05)

        assert content.status == "soft_error"
        assert content.fallback_mode == "sentence"

        release.set()
        await asyncio.gather(*list(engine._inflight))

        assert questions_repository.count_unused(cat.id, "yes_no") == 1


class TestExplanations:
    """Tests for regenerate_explanations."""

    def test_stores_generated_explanations(self, engine, cat):
        response = {"explanations": ["猫 是 动物", "我 喜欢 猫"], "quality": 4, "desired_words": ["宠物"]}
        engine.backend.generate.side_effect = [json.dumps(response, ensure_ascii=False)]

        explanations = engine.regenerate_explanations(cat.id)

        assert explanations == ["猫 是 动物", "我 喜欢 猫"]
        stored = concepts_repository.get_concept(cat.id)
        assert stored.explanations == explanations
        assert stored.explanation_quality == 4
        assert stored.desired_words == ["宠物"]

    def test_falls_back_to_placeholder(self, engine, cat):
        engine.backend.generate.side_effect = ["nope", "nope", "nope"]

        explanations = engine.regenerate_explanations(cat.id)

        assert explanations == ["🤔💭 猫"]
        assert concepts_repository.get_concept(cat.id).explanation_quality == 1

    def test_unknown_concept_raises(self, engine, db):
        with pytest.raises(ConceptNotFoundError):
            engine.regenerate_explanations(999)


class TestEndToEnd:
    """First encounter through review with generated content."""

    def test_practice_flow(self, engine, cat, scope, now, yes_no_response):
        engine.backend.generate.side_effect = [json.dumps(yes_no_response, ensure_ascii=False)]

        item = engine.get_next_practice_item(scope, now)
        assert item.kind == "first_encounter"
        assert item.concept.id == cat.id

        engine.mark_understood(cat.id)
        later = concepts_repository.get_concept(cat.id).created_at + timedelta(minutes=11)

        item = engine.get_next_practice_item(scope, later)
        assert item.kind == "review"
        assert item.record.question_type == "pinyin"

        feedback = engine.answer_question(None, "mao1", item.record.ref)
        assert feedback.correct is True
        assert feedback.record.tier == 1

        item = engine.get_next_practice_item(scope, later)
        assert item.record.question_type == "yes_no"

        content = engine.get_or_generate_content(cat.id, "yes_no")
        feedback = engine.answer_question(content.question.id, "yes", item.record.ref)
        assert feedback.correct is True
        assert feedback.canonical_answer == "yes"
        assert engine.get_next_practice_item(scope, later).record.question_type == "multiple_choice"

    @pytest.mark.asyncio
    async def test_pregenerate(self, make_backend, cat, scope, now):
        engine = PracticeEngine(
            make_backend(),
            config=PracticeConfig(target_questions_per_type=1, concurrency=2),
        )
        engine.backend.generate.side_effect = _responder(
            {"question": "猫 是 动物 吗？", "answer": True},
            {"sentence": "我 有 一 只 ____。", "options": ["猫", "我"], "correct_index": 0},
        )
        engine.mark_understood(cat.id)

        result = await engine.pregenerate(scope)

        assert result.success
        assert result.generated == 2
        assert questions_repository.count_unused(cat.id, "multiple_choice") == 1


class TestWiring:
    """Tests for client construction and the engine singleton."""

    def test_record_llm_usage_logs_query(self, db):
        response = LLMResponse(
            content="{}",
            model="test-model",
            provider="lmstudio",
            usage={"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
            latency_ms=40,
        )

        record_llm_usage("yes_no", response)

        (summary,) = usage_repository.summarize_usage()
        assert summary.query_type == "yes_no"
        assert summary.input_tokens == 12
        assert summary.output_tokens == 3

    def test_record_llm_usage_keeps_learner(self, db):
        response = LLMResponse(content="{}", model="test-model", provider="lmstudio", latency_ms=5)

        record_llm_usage("yes_no", response, user_id="alice")
        record_llm_usage("multiple_choice", response, user_id="bob")

        (summary,) = usage_repository.summarize_usage("alice")
        assert summary.query_type == "yes_no"
        assert len(usage_repository.summarize_usage()) == 2

    def test_build_llm_client_uses_provider_config(self):
        config = AppConfig(
            providers={"local": ProviderConfig(base_url="http://localhost:9999/v1", default_model="tiny")},
            practice=PracticeConfig(default_provider="local"),
        )

        client = build_llm_client(config)

        assert isinstance(client, LLMClient)
        assert client.config.model == "tiny"
        assert client.config.base_url == "http://localhost:9999/v1"
        assert client.usage_recorder is record_llm_usage

    def test_engine_singleton(self, monkeypatch):
        fake_client = MagicMock()
        monkeypatch.setattr("wordseed.core.practice.build_llm_client", lambda config: fake_client)

        engine = get_practice_engine()
        assert get_practice_engine() is engine
        assert engine.backend is fake_client

        reset_practice_engine()
        assert get_practice_engine() is not engine
