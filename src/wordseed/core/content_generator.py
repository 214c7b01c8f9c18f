"""Vocabulary-constrained content generation.

Responsibilities:
- Generate yes/no questions, fill-in-the-blank (multiple choice) questions
  and explanation sets for a concept using the LLM backend
- Accept only text whose every word/character is in the learner's allowed
  set (known vocabulary + target word + distractors + universal symbols)
- Retry with feedback naming the illegal tokens, at most max_attempts
  times, within an overall deadline
- Accept the valid subset of multi-variant responses (explanations)

Failures surface as GenerationFailedError carrying the offending tokens
and the suggested fallback practice mode.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

import structlog

from wordseed.core.language import BLANK_MARKER, LATIN_MARKER, LanguageRules, rules_for
from wordseed.core.vocabulary import KnownVocabularySet
from wordseed.db.concepts_repository import ConceptRecord
from wordseed.llm.client import LLMError, TextBackend, parse_json_content
from wordseed.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)

# =============================================================================
# TYPES
# =============================================================================

ContentKind = Literal["yes_no", "multiple_choice", "explanations"]
FallbackMode = Literal["sentence"]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_TIMEOUT_S = 90.0
MAX_EXPLANATIONS = 3
MAX_DESIRED_WORDS = 5
MIN_QUALITY = 1
MAX_QUALITY = 5
# Words listed in prompts for space-delimited languages
PROMPT_WORD_SAMPLE = 200


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class YesNoContent:
    question: str
    answer: bool
    explanation: str = ""

    @property
    def correct_answer(self) -> str:
        return "yes" if self.answer else "no"


@dataclass
class MultipleChoiceContent:
    sentence: str
    options: list[str]
    correct_index: int

    @property
    def correct_answer(self) -> str:
        return str(self.correct_index)


@dataclass
class ExplanationSet:
    explanations: list[str]
    rejected: list[str] = field(default_factory=list)
    quality: int | None = None
    desired_words: list[str] = field(default_factory=list)


class GenerationFailedError(Exception):
    """No acceptable content within the attempt budget."""

    def __init__(
        self,
        message: str,
        illegal_tokens: list[str] | None = None,
        attempts: int = 0,
        fallback_mode: FallbackMode = "sentence",
    ):
        self.illegal_tokens = list(illegal_tokens or [])
        self.attempts = attempts
        self.fallback_mode = fallback_mode
        super().__init__(message)


class GenerationTimeoutError(GenerationFailedError):
    """The overall generation deadline expired."""

    pass


class _RejectedResponse(Exception):
    """Attempt-local failure: parse error or structural problem."""

    pass


@dataclass
class _Check:
    """Outcome of validating one parsed response."""

    result: Any = None
    illegal: list[str] = field(default_factory=list)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def build_retry_feedback(previous_illegal: list[str], rules: LanguageRules) -> str:
    """Describe the previous attempt's illegal tokens for the next prompt."""
    if not previous_illegal:
        return ""

    tokens = [t for t in previous_illegal if t != LATIN_MARKER]
    latin_warning = (
        "You used Latin letters, which is FORBIDDEN. " if LATIN_MARKER in previous_illegal else ""
    )
    token_warning = (
        f"You used these FORBIDDEN {_unit_label(rules)}: {' '.join(tokens)}. " if tokens else ""
    )
    return get_prompt(
        "retry_feedback",
        latin_warning=latin_warning,
        token_warning=token_warning,
        unit_label=_unit_label(rules),
    )


def _unit_label(rules: LanguageRules) -> str:
    return "words" if rules.by_word else "characters"


def _known_sample(rules: LanguageRules, vocabulary: KnownVocabularySet) -> str:
    if rules.by_word:
        return " ".join(vocabulary.sample(PROMPT_WORD_SAMPLE))
    return "".join(sorted(rules.extract_tokens(vocabulary.words)))


def _merge(accumulated: list[str], new: list[str]) -> list[str]:
    return accumulated + [t for t in new if t not in accumulated]


def _require_text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise _RejectedResponse(f"missing or empty '{key}'")
    return value.strip()


def normalize_quality(value: Any) -> int | None:
    """Clamp a self-reported explanation quality to 1-5; non-integers give None."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return max(MIN_QUALITY, min(MAX_QUALITY, value))


def normalize_desired_words(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    words = [w.strip() for w in value if isinstance(w, str) and w.strip()]
    return words[:MAX_DESIRED_WORDS]


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no"):
        return False
    raise _RejectedResponse(f"answer is not a boolean: {value!r}")


# =============================================================================
# MAIN CLASS
# =============================================================================


class ContentGenerator:
    """Generate practice content that only uses known vocabulary."""

    def __init__(
        self,
        backend: TextBackend,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backend = backend
        self.max_attempts = max_attempts
        self.timeout_s = timeout_s
        self._clock = clock

    # -------------------------------------------------------------------------
    # Yes/No
    # -------------------------------------------------------------------------

    def generate_yes_no(
        self,
        concept: ConceptRecord,
        vocabulary: KnownVocabularySet,
    ) -> YesNoContent:
        """Generate a yes/no question about the meaning of a concept.

        Raises:
            GenerationFailedError: After max_attempts rejected responses
            GenerationTimeoutError: If the deadline passes between attempts
        """
        rules = rules_for(concept.language)
        allowed = rules.allowed_tokens(vocabulary.words, target=concept.word)

        def prompt(feedback: str) -> str:
            return get_prompt(
                "yes_no",
                language_name=rules.name,
                word=concept.word,
                meaning=concept.meaning,
                unit_label=_unit_label(rules),
                known_sample=_known_sample(rules, vocabulary),
                retry_feedback=feedback,
            )

        def check(data: dict) -> _Check:
            question = _require_text(data, "question")
            answer = _parse_bool(data.get("answer"))
            illegal = rules.find_illegal(question, allowed)
            if illegal:
                return _Check(illegal=illegal)

            explanation = data.get("explanation") or ""
            if not isinstance(explanation, str) or rules.find_illegal(explanation, allowed):
                logger.debug("yes_no_explanation_dropped", word=concept.word)
                explanation = ""
            return _Check(result=YesNoContent(question, answer, explanation.strip()))

        return self._run("yes_no", concept, rules, prompt, check)

    # -------------------------------------------------------------------------
    # Multiple choice (fill in the blank)
    # -------------------------------------------------------------------------

    def generate_multiple_choice(
        self,
        concept: ConceptRecord,
        vocabulary: KnownVocabularySet,
        distractors: list[str],
    ) -> MultipleChoiceContent:
        """Generate a fill-in-the-blank question with one correct option.

        Args:
            concept: Target concept (its word is the correct option)
            vocabulary: Learner's known vocabulary
            distractors: Wrong-option words offered to the model

        Raises:
            GenerationFailedError: After max_attempts rejected responses
            GenerationTimeoutError: If the deadline passes between attempts
        """
        rules = rules_for(concept.language)
        allowed = rules.allowed_tokens(
            vocabulary.words, target=concept.word, extra_words=distractors
        )

        def prompt(feedback: str) -> str:
            return get_prompt(
                "multiple_choice",
                language_name=rules.name,
                word=concept.word,
                meaning=concept.meaning,
                unit_label=_unit_label(rules),
                known_sample=_known_sample(rules, vocabulary),
                distractors=", ".join(distractors[:3]),
                retry_feedback=feedback,
            )

        def check(data: dict) -> _Check:
            sentence = _require_text(data, "sentence")
            if BLANK_MARKER not in sentence:
                raise _RejectedResponse("sentence has no blank")

            options = data.get("options")
            if not isinstance(options, list) or len(options) < 2:
                raise _RejectedResponse("options must be a list of at least two")
            if not all(isinstance(o, str) and o.strip() for o in options):
                raise _RejectedResponse("options must be non-empty strings")
            options = [o.strip() for o in options]

            index = data.get("correct_index")
            if isinstance(index, bool) or not isinstance(index, int):
                raise _RejectedResponse("correct_index must be an integer")
            if not 0 <= index < len(options):
                raise _RejectedResponse(f"correct_index {index} out of range")
            if len(set(options)) != len(options):
                raise _RejectedResponse("duplicate options")
            if options.count(concept.word) != 1 or options[index] != concept.word:
                raise _RejectedResponse("correct_index does not point at the target word")

            illegal = rules.find_illegal(sentence, allowed)
            for option in options:
                illegal = _merge(illegal, rules.find_illegal(option, allowed))
            if illegal:
                return _Check(illegal=illegal)
            return _Check(result=MultipleChoiceContent(sentence, options, index))

        return self._run("multiple_choice", concept, rules, prompt, check)

    # -------------------------------------------------------------------------
    # Explanations
    # -------------------------------------------------------------------------

    def generate_explanations(
        self,
        concept: ConceptRecord,
        vocabulary: KnownVocabularySet,
    ) -> ExplanationSet:
        """Generate up to three explanations, keeping the ones that pass.

        A response with at least one valid explanation is accepted without
        retrying; only a response with no valid explanation is retried.
        """
        rules = rules_for(concept.language)
        allowed = rules.allowed_tokens(vocabulary.words, target=concept.word)

        def prompt(feedback: str) -> str:
            return get_prompt(
                "explanations",
                language_name=rules.name,
                explanation_language=rules.explanation_language,
                word=concept.word,
                meaning=concept.meaning,
                previous=", ".join(concept.explanations),
                known_sample=" ".join(vocabulary.sample(50)),
                retry_feedback=feedback,
            )

        def check(data: dict) -> _Check:
            variants = data.get("explanations")
            if isinstance(variants, str):
                variants = [variants]
            if not isinstance(variants, list):
                raise _RejectedResponse("explanations must be a list")

            valid: list[str] = []
            rejected: list[str] = []
            illegal: list[str] = []
            for variant in variants:
                if not isinstance(variant, str) or not variant.strip():
                    continue
                found = rules.find_illegal(variant, allowed)
                if found:
                    rejected.append(variant)
                    illegal = _merge(illegal, found)
                else:
                    valid.append(variant.strip())

            if not valid:
                if not illegal:
                    raise _RejectedResponse("no explanations in response")
                return _Check(illegal=illegal)

            if rejected:
                logger.info(
                    "explanations_partially_accepted",
                    word=concept.word,
                    accepted=len(valid),
                    rejected=len(rejected),
                )
            return _Check(
                result=ExplanationSet(
                    valid[:MAX_EXPLANATIONS],
                    rejected,
                    quality=normalize_quality(data.get("quality")),
                    desired_words=normalize_desired_words(data.get("desired_words")),
                )
            )

        return self._run("explanations", concept, rules, prompt, check)

    # -------------------------------------------------------------------------
    # Retry loop
    # -------------------------------------------------------------------------

    def _run(
        self,
        kind: ContentKind,
        concept: ConceptRecord,
        rules: LanguageRules,
        build_prompt: Callable[[str], str],
        check: Callable[[dict], _Check],
    ) -> Any:
        deadline = self._clock() + self.timeout_s
        previous_illegal: list[str] = []
        all_illegal: list[str] = []

        for attempt in range(1, self.max_attempts + 1):
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "generation_timeout", kind=kind, word=concept.word, attempt=attempt
                )
                raise GenerationTimeoutError(
                    f"Generating {kind} for '{concept.word}' timed out after "
                    f"{attempt - 1} attempts",
                    illegal_tokens=all_illegal,
                    attempts=attempt - 1,
                )

            prompt = build_prompt(build_retry_feedback(previous_illegal, rules))

            try:
                raw = self.backend.generate(
                    prompt, query_type=kind, user_id=concept.user_id, timeout=remaining
                )
            except LLMError as e:
                logger.warning(
                    "generation_retry", kind=kind, attempt=attempt, reason="backend_error", error=str(e)
                )
                continue

            data = parse_json_content(raw)
            if data is None:
                logger.warning("generation_retry", kind=kind, attempt=attempt, reason="unparseable")
                continue

            try:
                outcome = check(data)
            except _RejectedResponse as e:
                logger.warning("generation_retry", kind=kind, attempt=attempt, reason=str(e))
                continue

            if outcome.illegal:
                logger.info(
                    "generation_retry",
                    kind=kind,
                    attempt=attempt,
                    reason="illegal_tokens",
                    illegal=outcome.illegal,
                )
                previous_illegal = _merge(previous_illegal, outcome.illegal)
                all_illegal = _merge(all_illegal, outcome.illegal)
                continue

            logger.info("content_generated", kind=kind, word=concept.word, attempts=attempt)
            return outcome.result

        logger.warning(
            "generation_failed", kind=kind, word=concept.word, illegal=all_illegal
        )
        detail = f" Could not avoid: {', '.join(all_illegal)}" if all_illegal else ""
        raise GenerationFailedError(
            f"Failed to generate valid {kind} for '{concept.word}' after "
            f"{self.max_attempts} attempts.{detail}",
            illegal_tokens=all_illegal,
            attempts=self.max_attempts,
        )
