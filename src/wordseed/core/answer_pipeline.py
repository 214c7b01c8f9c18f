"""Answer and feedback pipeline.

Turns a learner's response into a scheduling update:

    response -> correctness -> SRS transition -> version-checked write -> Feedback

Stale state is not an error here: if the record was deleted, or changed
since the caller selected it, nothing is written and the Feedback carries
a soft_error notice asking the learner to continue.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

import structlog

from wordseed.core import sentence_evaluator
from wordseed.core.language import pinyin_matches
from wordseed.core.sentence_evaluator import SentenceEvaluation, SentenceEvaluationError
from wordseed.core.srs import question_types_for_language, transition
from wordseed.core.vocabulary import VocabularyProvider
from wordseed.db import concepts_repository, questions_repository, review_repository
from wordseed.db.concepts_repository import ConceptNotFoundError
from wordseed.db.database import utc_now
from wordseed.db.questions_repository import GeneratedQuestion
from wordseed.db.review_repository import ReviewRecord, ReviewRef, StaleRecordError
from wordseed.llm.client import TextBackend

logger = structlog.get_logger(__name__)

# =============================================================================
# TYPES
# =============================================================================

FeedbackStatus = Literal["ok", "soft_error", "hard_error"]

STALE_MESSAGE = "Progress could not be saved, please retry."
GONE_MESSAGE = "This review is no longer current."

_YES = {"yes", "y", "true", "1", "是", "对", "はい"}
_NO = {"no", "n", "false", "0", "不是", "不对", "不", "いいえ"}


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class Feedback:
    """Result of submitting an answer."""

    status: FeedbackStatus
    message: str = ""
    correct: bool | None = None
    canonical_answer: str | None = None
    explanation: str = ""
    record: ReviewRecord | None = None
    critique: SentenceEvaluation | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class UnderstoodResult:
    status: FeedbackStatus
    message: str = ""
    records: list[ReviewRecord] | None = None


class InvalidResponseError(ValueError):
    """The response cannot be interpreted for this question type."""

    pass


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def parse_yes_no(response: Any) -> str:
    """Normalize a yes/no response to "yes" or "no"."""
    if isinstance(response, bool):
        return "yes" if response else "no"
    text = str(response).strip().lower()
    if text in _YES:
        return "yes"
    if text in _NO:
        return "no"
    raise InvalidResponseError(f"Not a yes/no answer: {response!r}")


def parse_choice(response: Any, options: list[str]) -> int:
    """Normalize a multiple-choice response (index or option text) to an index."""
    if isinstance(response, bool):
        raise InvalidResponseError(f"Not an option: {response!r}")
    if isinstance(response, int):
        index = response
    else:
        text = str(response).strip()
        if text.lstrip("-").isdecimal():
            index = int(text)
        elif text in options:
            index = options.index(text)
        else:
            raise InvalidResponseError(f"Not an option: {response!r}")

    if not 0 <= index < len(options):
        raise InvalidResponseError(f"Option index out of range: {index}")
    return index


def _canonical_answer(question: GeneratedQuestion) -> str | None:
    if question.question_type == "multiple_choice" and question.correct_answer is not None:
        index = int(question.correct_answer)
        if 0 <= index < len(question.options):
            return question.options[index]
    return question.correct_answer


# =============================================================================
# MAIN FUNCTIONS
# =============================================================================


def record_answer(
    record_ref: ReviewRef,
    correct: bool,
    question_id: int | None = None,
    now: datetime | None = None,
) -> Feedback:
    """Apply an answer outcome to a review record.

    Args:
        record_ref: (record_id, version) the caller selected
        correct: Whether the learner answered correctly
        question_id: Generated question that was shown, marked used on success
        now: Reference time for the next review

    Returns:
        Feedback with status ok, or soft_error when the record is gone or stale
    """
    now = now or utc_now()

    record = review_repository.get_record(record_ref.record_id)
    if record is None:
        logger.info("review_record_gone", record_id=record_ref.record_id)
        return Feedback(status="soft_error", message=GONE_MESSAGE, correct=correct)

    if record.version != record_ref.version:
        logger.info(
            "stale_review_record",
            record_id=record.id,
            expected=record_ref.version,
            actual=record.version,
        )
        return Feedback(status="soft_error", message=STALE_MESSAGE, correct=correct, record=record)

    new_state = transition(record.state, correct, now)

    try:
        updated = review_repository.save_transition(record, new_state, now)
    except StaleRecordError as e:
        logger.info("stale_review_record", record_id=record.id, error=str(e))
        message = GONE_MESSAGE if e.actual_version is None else STALE_MESSAGE
        return Feedback(status="soft_error", message=message, correct=correct)

    if question_id is not None:
        questions_repository.mark_used(question_id, now)

    logger.info(
        "answer_recorded",
        record_id=updated.id,
        correct=correct,
        tier_before=record.tier,
        tier_after=updated.tier,
    )
    return Feedback(status="ok", correct=correct, record=updated)


def answer_question(
    question_id: int | None,
    response: Any,
    record_ref: ReviewRef,
    now: datetime | None = None,
) -> Feedback:
    """Grade a response and record it.

    Yes/no and multiple-choice answers are graded against a stored
    question; pinyin answers (question_id None) against the concept's
    reading.
    """
    record = review_repository.get_record(record_ref.record_id)
    if record is None:
        return Feedback(status="soft_error", message=GONE_MESSAGE)

    if question_id is None:
        if record.question_type != "pinyin":
            return Feedback(status="hard_error", message="A question id is required")
        concept = concepts_repository.get_concept(record.concept_id)
        if concept is None:
            return Feedback(status="soft_error", message=GONE_MESSAGE)
        correct = pinyin_matches(concept.pinyin, str(response))
        feedback = record_answer(record_ref, correct, now=now)
        feedback.canonical_answer = concept.pinyin
        return feedback

    question = questions_repository.get_question(question_id)
    if question is None:
        return Feedback(status="hard_error", message=f"Question not found: {question_id}")
    if question.concept_id != record.concept_id:
        return Feedback(status="hard_error", message="Question does not belong to this review")
    if question.question_type == "sentence":
        return Feedback(
            status="hard_error",
            message="Sentence questions are graded with evaluate_sentence",
        )
    if question.question_type != record.question_type:
        return Feedback(
            status="hard_error",
            message=(
                f"Question type {question.question_type} does not match "
                f"the {record.question_type} track"
            ),
        )

    try:
        if question.question_type == "yes_no":
            correct = parse_yes_no(response) == question.correct_answer
        else:
            correct = str(parse_choice(response, question.options)) == question.correct_answer
    except InvalidResponseError as e:
        return Feedback(status="hard_error", message=str(e))

    feedback = record_answer(record_ref, correct, question_id=question.id, now=now)
    feedback.canonical_answer = _canonical_answer(question)
    feedback.explanation = question.explanation
    return feedback


def mark_understood(
    concept_id: int,
    vocabulary: VocabularyProvider,
    now: datetime | None = None,
) -> UnderstoodResult:
    """Move a first-encounter concept into review.

    Hands off the understanding change (0 -> 1) to the vocabulary
    collaborator and creates tier-0 records for every track of the
    concept's language. Calling it again leaves existing tracks alone.
    """
    now = now or utc_now()

    try:
        concept = concepts_repository.require_concept(concept_id)
    except ConceptNotFoundError as e:
        return UnderstoodResult(status="hard_error", message=str(e))

    if concept.understanding == 0:
        concept = vocabulary.set_understanding(concept.id, 1)

    records = review_repository.create_records(
        concept.id,
        concept.user_id,
        question_types_for_language(concept.language),
        now,
    )
    logger.info("concept_understood", concept_id=concept.id, tracks=len(records))
    return UnderstoodResult(status="ok", records=records)


def evaluate_sentence(
    record_ref: ReviewRef,
    sentence: str,
    backend: TextBackend,
    vocabulary: VocabularyProvider,
    now: datetime | None = None,
) -> Feedback:
    """Critique a learner sentence and apply the verdict to the record."""
    record = review_repository.get_record(record_ref.record_id)
    if record is None:
        return Feedback(status="soft_error", message=GONE_MESSAGE)

    concept = concepts_repository.get_concept(record.concept_id)
    if concept is None:
        return Feedback(status="soft_error", message=GONE_MESSAGE)

    try:
        evaluation = sentence_evaluator.evaluate_sentence(
            backend,
            concept,
            sentence,
            vocabulary.known_vocabulary(concept.scope),
        )
    except SentenceEvaluationError as e:
        return Feedback(status="soft_error", message=f"Could not evaluate sentence: {e}")

    feedback = record_answer(record_ref, evaluation.correct, now=now)
    feedback.critique = evaluation
    return feedback
