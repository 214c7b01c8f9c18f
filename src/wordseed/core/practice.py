"""Practice engine facade.

Wires the scheduler, content generator, answer pipeline and
pre-generation together behind the caller-facing operations used by the
CLI and the web API. Results carry a status of ok, soft_error or
hard_error; soft errors are recoverable notices (stale state, content
generation fallback), hard errors are bad requests.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from wordseed.config.app_config import AppConfig, PracticeConfig, load_app_config
from wordseed.core import answer_pipeline, scheduler
from wordseed.core.answer_pipeline import Feedback, FeedbackStatus, UnderstoodResult
from wordseed.core.content_generator import (
    MIN_QUALITY,
    ContentGenerator,
    ExplanationSet,
    GenerationFailedError,
)
from wordseed.core.pregeneration import PregenerationQueue, PregenerationResult, pregenerate_for_scope
from wordseed.core.scheduler import ConceptStatus, PracticeItem
from wordseed.core.vocabulary import SQLiteVocabulary, VocabularyProvider
from wordseed.db import concepts_repository, questions_repository, usage_repository
from wordseed.db.concepts_repository import ConceptRecord, Scope
from wordseed.db.questions_repository import GeneratedQuestion
from wordseed.db.review_repository import ReviewRef
from wordseed.llm.client import LLMClient, LLMConfig, LLMError, LLMResponse, TextBackend

logger = structlog.get_logger(__name__)

FALLBACK_EXPLANATION = "🤔💭 {word}"


@dataclass
class PracticeContent:
    """What to show for one (concept, question type) practice unit."""

    status: FeedbackStatus
    question_type: str
    concept: ConceptRecord | None = None
    question: GeneratedQuestion | None = None
    fallback_mode: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status,
            "question_type": self.question_type,
            "message": self.message,
            "fallback_mode": self.fallback_mode,
        }
        if self.concept is not None:
            result["concept_id"] = self.concept.id
            result["word"] = self.concept.word
        result["question"] = self.question.to_dict() if self.question else None
        return result


def record_llm_usage(query_type: str, response: LLMResponse, user_id: str | None = None) -> None:
    """Usage hook for LLMClient: one llm_queries row per completion."""
    usage_repository.log_llm_query(
        query_type=query_type,
        model=response.model,
        input_tokens=response.prompt_tokens,
        output_tokens=response.completion_tokens,
        latency_ms=response.latency_ms,
        user_id=user_id,
    )


def build_llm_client(config: AppConfig | None = None, provider: str | None = None) -> LLMClient:
    """Create the LLM client for the configured provider, with usage logging."""
    config = config or load_app_config()
    provider = provider or config.practice.default_provider
    provider_config = config.providers.get(provider)

    if provider_config is None:
        return LLMClient(provider=provider, usage_recorder=record_llm_usage)

    llm_config = LLMConfig(
        provider=provider,
        base_url=provider_config.base_url,
        model=provider_config.default_model,
        api_key=provider_config.get_api_key(),
    )
    return LLMClient(config=llm_config, usage_recorder=record_llm_usage)


class PracticeEngine:
    """Caller-facing practice operations."""

    def __init__(
        self,
        backend: TextBackend,
        vocabulary: VocabularyProvider | None = None,
        config: PracticeConfig | None = None,
        generator: ContentGenerator | None = None,
    ):
        self.backend = backend
        self.vocabulary = vocabulary or SQLiteVocabulary()
        self.config = config or PracticeConfig()
        self.generator = generator or ContentGenerator(
            backend,
            max_attempts=self.config.max_attempts,
            timeout_s=self.config.generation_timeout_s,
        )
        self._inflight: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def get_next_practice_item(self, scope: Scope, now: datetime | None = None) -> PracticeItem:
        return scheduler.get_next_practice_item(scope, now)

    def list_review_status(self, scope: Scope, now: datetime | None = None) -> list[ConceptStatus]:
        return scheduler.list_review_status(scope, now)

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    def generate_question(self, concept_id: int, question_type: str) -> GeneratedQuestion:
        """Generate and store one question.

        Raises:
            ConceptNotFoundError: If the concept does not exist
            GenerationFailedError: If no acceptable content was produced
            ValueError: For question types without generated content
        """
        concept = concepts_repository.require_concept(concept_id)
        known = self.vocabulary.known_vocabulary(concept.scope)

        if question_type == "yes_no":
            content = self.generator.generate_yes_no(concept, known)
            return questions_repository.insert_question(
                concept.id,
                concept.user_id,
                "yes_no",
                question_text=content.question,
                correct_answer=content.correct_answer,
                explanation=content.explanation,
            )

        if question_type == "multiple_choice":
            distractors = [c.word for c in concepts_repository.pick_distractors(concept)]
            content = self.generator.generate_multiple_choice(concept, known, distractors)
            return questions_repository.insert_question(
                concept.id,
                concept.user_id,
                "multiple_choice",
                question_text=content.sentence,
                correct_answer=content.correct_answer,
                options=content.options,
            )

        raise ValueError(f"No generated content for question type: {question_type}")

    def get_or_generate_content(self, concept_id: int, question_type: str) -> PracticeContent:
        """Return a cached unused question, generating one if none is stocked.

        Pinyin practice needs no generated content. When generation fails
        the result is a soft_error suggesting sentence practice instead.
        """
        concept = concepts_repository.get_concept(concept_id)
        if concept is None:
            return PracticeContent(
                status="hard_error",
                question_type=question_type,
                message=f"Concept not found: {concept_id}",
            )

        if question_type == "pinyin":
            return PracticeContent(status="ok", question_type=question_type, concept=concept)

        cached = questions_repository.get_unused_question(concept.id, question_type)
        if cached is not None:
            return PracticeContent(
                status="ok", question_type=question_type, concept=concept, question=cached
            )

        try:
            question = self.generate_question(concept.id, question_type)
        except GenerationFailedError as e:
            return PracticeContent(
                status="soft_error",
                question_type=question_type,
                concept=concept,
                fallback_mode=e.fallback_mode,
                message=f"Write a sentence using {concept.word}",
            )
        except ValueError as e:
            return PracticeContent(status="hard_error", question_type=question_type, message=str(e))

        return PracticeContent(
            status="ok", question_type=question_type, concept=concept, question=question
        )

    async def get_or_generate_content_async(
        self,
        concept_id: int,
        question_type: str,
        timeout_s: float | None = None,
    ) -> PracticeContent:
        """Async variant that keeps generating if the caller goes away.

        The blocking work runs in a thread. Cancelling the caller or
        hitting timeout_s does not stop the generation: its question is
        still stored and served by the next call.
        """
        task = asyncio.ensure_future(
            asyncio.to_thread(self.get_or_generate_content, concept_id, question_type)
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        try:
            if timeout_s is None:
                return await asyncio.shield(task)
            return await asyncio.wait_for(asyncio.shield(task), timeout_s)
        except asyncio.TimeoutError:
            logger.warning("content_generation_slow", concept_id=concept_id, timeout_s=timeout_s)
            return PracticeContent(
                status="soft_error",
                question_type=question_type,
                fallback_mode="sentence",
                message="Question is still being prepared, please retry shortly.",
            )

    def regenerate_explanations(self, concept_id: int) -> list[str]:
        """Replace a concept's explanations with freshly generated ones.

        Never fails on generation problems: falls back to a placeholder
        with quality 1. The model's quality score and desired words are
        stored alongside.
        """
        concept = concepts_repository.require_concept(concept_id)
        known = self.vocabulary.known_vocabulary(concept.scope)

        try:
            result = self.generator.generate_explanations(concept, known)
        except (GenerationFailedError, LLMError) as e:
            logger.warning("explanations_fallback", concept_id=concept.id, error=str(e))
            result = ExplanationSet(
                [FALLBACK_EXPLANATION.format(word=concept.word)], quality=MIN_QUALITY
            )

        concepts_repository.update_concept(
            concept.id,
            explanations=result.explanations,
            explanation_quality=result.quality,
            desired_words=result.desired_words,
        )
        return result.explanations

    # -------------------------------------------------------------------------
    # Answers
    # -------------------------------------------------------------------------

    def record_answer(
        self, record_ref: ReviewRef, correct: bool, question_id: int | None = None
    ) -> Feedback:
        return answer_pipeline.record_answer(record_ref, correct, question_id=question_id)

    def answer_question(self, question_id: int | None, response: Any, record_ref: ReviewRef) -> Feedback:
        return answer_pipeline.answer_question(question_id, response, record_ref)

    def mark_understood(self, concept_id: int) -> UnderstoodResult:
        return answer_pipeline.mark_understood(concept_id, self.vocabulary)

    def evaluate_sentence(self, record_ref: ReviewRef, sentence: str) -> Feedback:
        return answer_pipeline.evaluate_sentence(record_ref, sentence, self.backend, self.vocabulary)

    # -------------------------------------------------------------------------
    # Pre-generation
    # -------------------------------------------------------------------------

    async def pregenerate(self, scope: Scope) -> PregenerationResult:
        return await pregenerate_for_scope(
            self.generate_question,
            scope,
            target=self.config.target_questions_per_type,
            concurrency=self.config.concurrency,
        )

    def create_pregeneration_queue(self) -> PregenerationQueue:
        return PregenerationQueue(
            self.generate_question,
            target=self.config.target_questions_per_type,
            concurrency=self.config.concurrency,
        )


_engine: PracticeEngine | None = None


def get_practice_engine() -> PracticeEngine:
    """Get or create the process-wide engine."""
    global _engine
    if _engine is None:
        config = load_app_config()
        _engine = PracticeEngine(build_llm_client(config), config=config.practice)
    return _engine


def reset_practice_engine() -> None:
    """Reset the engine instance (for testing)."""
    global _engine
    _engine = None
