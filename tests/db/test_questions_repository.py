"""Tests for generated question storage and usage logs."""

from datetime import timedelta

import pytest

from wordseed.core.srs import SRSState
from wordseed.db import concepts_repository, questions_repository, review_repository, usage_repository


@pytest.fixture
def cat(add_concept):
    return add_concept("猫", "cat", pinyin="māo")


def _add_question(concept, question_type="yes_no", text="猫 是 动物 吗？", **kwargs):
    return questions_repository.insert_question(
        concept.id, concept.user_id, question_type, question_text=text, **kwargs
    )


class TestInsertQuestion:
    """Tests for storing questions."""

    def test_insert_multiple_choice(self, cat):
        question = _add_question(
            cat,
            "multiple_choice",
            "我 有 一 只 ____。",
            correct_answer="0",
            options=["猫", "狗", "鸟"],
        )

        assert question.options == ["猫", "狗", "鸟"]
        assert question.correct_answer == "0"
        assert question.used is False

    def test_pinyin_is_not_a_stored_type(self, cat):
        with pytest.raises(ValueError):
            _add_question(cat, "pinyin")

    def test_public_dict_hides_answer(self, cat):
        question = _add_question(cat, correct_answer="yes", explanation="猫 是 动物")
        data = question.to_dict()

        assert "correct_answer" not in data
        assert "explanation" not in data
        assert data["question_text"] == "猫 是 动物 吗？"


class TestConsumption:
    """A question is served until it is used, and used once."""

    def test_unused_questions_oldest_first(self, cat, now):
        older = _add_question(cat, created_at=now - timedelta(hours=1))
        _add_question(cat, created_at=now)

        assert questions_repository.get_unused_question(cat.id, "yes_no").id == older.id

    def test_mark_used_once(self, cat, now):
        question = _add_question(cat)

        assert questions_repository.mark_used(question.id, now) is True
        assert questions_repository.mark_used(question.id, now) is False
        assert questions_repository.get_question(question.id).used_at == now
        assert questions_repository.get_unused_question(cat.id, "yes_no") is None

    def test_count_unused(self, cat):
        first = _add_question(cat)
        _add_question(cat)
        questions_repository.mark_used(first.id)

        assert questions_repository.count_unused(cat.id, "yes_no") == 1
        assert questions_repository.count_unused(cat.id, "multiple_choice") == 0


class TestConceptsNeedingQuestions:
    """Tests for the pre-generation work list."""

    def test_only_concepts_in_review(self, add_concept, cat, scope, now):
        add_concept("狗")
        review_repository.create_records(cat.id, cat.user_id, ["yes_no", "multiple_choice"], now)
        _add_question(cat)

        needed = questions_repository.concepts_needing_questions(
            scope, ["yes_no", "multiple_choice"], target=2
        )

        assert needed == [(cat.id, "yes_no", 1), (cat.id, "multiple_choice", 2)]

    def test_paused_concepts_skipped(self, cat, scope, now):
        review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)
        concepts_repository.set_paused(cat.id, True)

        assert questions_repository.concepts_needing_questions(scope, ["yes_no"]) == []

    def test_graduated_concepts_skipped(self, cat, scope, now):
        record = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)[0]
        review_repository.save_transition(record, SRSState(tier=7, streak=7, next_review=None), now)

        assert questions_repository.concepts_needing_questions(scope, ["yes_no"]) == []


class TestUsageLog:
    def test_summarize_by_query_type(self, db):
        usage_repository.log_llm_query("yes_no", "test-model", 100, 20, 300)
        usage_repository.log_llm_query("yes_no", "test-model", 50, 10, 200)
        usage_repository.log_llm_query("explanations", "test-model", None, None, None)

        summary = {row.query_type: row for row in usage_repository.summarize_usage()}

        assert summary["yes_no"].calls == 2
        assert summary["yes_no"].input_tokens == 150
        assert summary["yes_no"].output_tokens == 30
        assert summary["explanations"].input_tokens == 0

    def test_summarize_empty(self, db):
        assert usage_repository.summarize_usage() == []
