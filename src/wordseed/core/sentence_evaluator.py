"""LLM critique of learner-written sentences.

Used for the open-ended "sentence" practice mode: the learner writes a
sentence with the target word and the model judges it, answering in
the target language with known vocabulary only.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from wordseed.core.language import rules_for
from wordseed.core.vocabulary import KnownVocabularySet
from wordseed.db.concepts_repository import ConceptRecord
from wordseed.llm.client import LLMError, TextBackend, parse_json_content
from wordseed.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)


@dataclass
class SentenceEvaluation:
    correct: bool
    feedback: str
    improved: str | None = None

    def to_dict(self) -> dict:
        return {"correct": self.correct, "feedback": self.feedback, "improved": self.improved}


class SentenceEvaluationError(Exception):
    """The model did not return a usable evaluation."""

    pass


def evaluate_sentence(
    backend: TextBackend,
    concept: ConceptRecord,
    sentence: str,
    vocabulary: KnownVocabularySet,
) -> SentenceEvaluation:
    """Ask the model whether a sentence uses the target word correctly.

    Raises:
        SentenceEvaluationError: On backend failure or malformed output
    """
    sentence = sentence.strip()
    if not sentence:
        raise SentenceEvaluationError("Empty sentence")

    rules = rules_for(concept.language)
    prompt = get_prompt(
        "evaluate_sentence",
        language_name=rules.name,
        word=concept.word,
        meaning=concept.meaning,
        sentence=sentence,
        known_sample=" ".join(vocabulary.sample(50)),
    )

    try:
        raw = backend.generate(
            prompt, query_type="evaluate_sentence", user_id=concept.user_id
        )
    except LLMError as e:
        logger.warning("sentence_evaluation_failed", word=concept.word, error=str(e))
        raise SentenceEvaluationError(str(e)) from e

    data = parse_json_content(raw)
    if data is None or "correct" not in data or not isinstance(data.get("feedback"), str):
        raise SentenceEvaluationError("Invalid evaluation format")

    improved = data.get("improved")
    if not isinstance(improved, str) or not improved.strip() or improved.strip() == "null":
        improved = None

    evaluation = SentenceEvaluation(
        correct=data["correct"] is True,
        feedback=data["feedback"].strip(),
        improved=improved,
    )
    logger.info("sentence_evaluated", word=concept.word, correct=evaluation.correct)
    return evaluation
