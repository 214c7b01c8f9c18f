"""Repository functions for the concepts table.

A concept is one vocabulary item of one learner in one language. This
module doubles as the vocabulary collaborator: it answers "which words
does this learner know" and accepts understanding hand-offs.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from wordseed.db.database import from_db_timestamp, get_db, to_db_timestamp, utc_now

logger = structlog.get_logger(__name__)

PARTS_OF_SPEECH = (
    "noun",
    "verb",
    "adjective",
    "adverb",
    "pronoun",
    "preposition",
    "conjunction",
    "particle",
    "numeral",
    "measure_word",
    "interjection",
    "other",
)

_UPDATABLE_FIELDS = {
    "pinyin",
    "meaning",
    "part_of_speech",
    "explanations",
    "understanding",
    "paused",
    "explanation_quality",
    "desired_words",
}


class ConceptNotFoundError(LookupError):
    """Raised when a concept id does not exist."""

    def __init__(self, concept_id: int):
        self.concept_id = concept_id
        super().__init__(f"Concept not found: {concept_id}")


@dataclass(frozen=True)
class Scope:
    """A learner practicing one target language."""

    user_id: str
    language: str = "zh"


@dataclass
class ConceptRecord:
    """Concept record from database."""

    id: int
    user_id: str
    language: str
    word: str
    meaning: str
    pinyin: str | None = None
    part_of_speech: str = "other"
    explanations: list[str] = field(default_factory=list)
    understanding: int = 0
    paused: bool = False
    explanation_quality: int | None = None
    desired_words: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    @property
    def scope(self) -> Scope:
        return Scope(user_id=self.user_id, language=self.language)


def normalize_part_of_speech(pos: str | None) -> str:
    """Map free-form part-of-speech labels onto the closed set."""
    if not pos:
        return "other"
    normalized = pos.strip().lower().replace(" ", "_")
    return normalized if normalized in PARTS_OF_SPEECH else "other"


def insert_concept(
    scope: Scope,
    word: str,
    meaning: str,
    pinyin: str | None = None,
    part_of_speech: str = "other",
    explanations: list[str] | None = None,
    understanding: int = 0,
    paused: bool = False,
    explanation_quality: int | None = None,
    desired_words: list[str] | None = None,
    created_at: datetime | None = None,
) -> ConceptRecord:
    """Insert a new concept for a scope.

    Raises:
        ValueError: If understanding is outside 0-100
        sqlite3.IntegrityError: If the word already exists in the scope
    """
    if understanding < 0 or understanding > 100:
        raise ValueError(f"understanding must be 0-100, got {understanding}")

    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO concepts (
                user_id, language, word, pinyin, meaning, part_of_speech,
                explanations, understanding, paused, explanation_quality,
                desired_words, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                scope.user_id,
                scope.language,
                word,
                pinyin,
                meaning,
                normalize_part_of_speech(part_of_speech),
                json.dumps(explanations or [], ensure_ascii=False),
                understanding,
                int(paused),
                explanation_quality,
                json.dumps(desired_words or [], ensure_ascii=False),
                to_db_timestamp(created_at or utc_now()),
            ),
        )
        concept_id = cursor.lastrowid

    logger.debug("concepts.inserted", concept_id=concept_id, word=word)
    return require_concept(concept_id)


def get_concept(concept_id: int) -> ConceptRecord | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM concepts WHERE id = ?", (concept_id,)).fetchone()

    if row is None:
        return None
    return row_to_concept(row)


def require_concept(concept_id: int) -> ConceptRecord:
    """Get a concept or raise ConceptNotFoundError."""
    concept = get_concept(concept_id)
    if concept is None:
        raise ConceptNotFoundError(concept_id)
    return concept


def get_concept_by_word(scope: Scope, word: str) -> ConceptRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM concepts WHERE user_id = ? AND language = ? AND word = ?",
            (scope.user_id, scope.language, word),
        ).fetchone()

    if row is None:
        return None
    return row_to_concept(row)


def list_concepts(scope: Scope) -> list[ConceptRecord]:
    """All concepts of a scope, best understood first."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM concepts
            WHERE user_id = ? AND language = ?
            ORDER BY understanding DESC, word ASC
            """,
            (scope.user_id, scope.language),
        ).fetchall()

    return [row_to_concept(row) for row in rows]


def update_concept(concept_id: int, **fields) -> ConceptRecord:
    """Update selected columns of a concept.

    Raises:
        ValueError: On unknown field names
        ConceptNotFoundError: If the concept does not exist
    """
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")
    if not fields:
        return require_concept(concept_id)

    values = []
    for name, value in fields.items():
        if name in ("explanations", "desired_words"):
            value = json.dumps(value or [], ensure_ascii=False)
        elif name == "paused":
            value = int(bool(value))
        elif name == "part_of_speech":
            value = normalize_part_of_speech(value)
        values.append(value)

    assignments = ", ".join(f"{name} = ?" for name in fields)

    with get_db() as conn:
        cursor = conn.execute(
            f"UPDATE concepts SET {assignments} WHERE id = ?",
            (*values, concept_id),
        )
        if cursor.rowcount == 0:
            raise ConceptNotFoundError(concept_id)

    logger.debug("concepts.updated", concept_id=concept_id, fields=sorted(fields))
    return require_concept(concept_id)


def set_understanding(concept_id: int, understanding: int) -> ConceptRecord:
    if understanding < 0 or understanding > 100:
        raise ValueError(f"understanding must be 0-100, got {understanding}")
    return update_concept(concept_id, understanding=understanding)


def set_paused(concept_id: int, paused: bool) -> ConceptRecord:
    return update_concept(concept_id, paused=paused)


def toggle_paused(concept_id: int) -> ConceptRecord:
    concept = require_concept(concept_id)
    return set_paused(concept_id, not concept.paused)


def delete_concept(concept_id: int) -> bool:
    """Delete a concept (review records and questions cascade).

    Returns:
        True if deleted, False if not found
    """
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM concepts WHERE id = ?", (concept_id,))

    deleted = cursor.rowcount > 0
    if deleted:
        logger.debug("concepts.deleted", concept_id=concept_id)
    return deleted


def known_words(scope: Scope) -> set[str]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT word FROM concepts WHERE user_id = ? AND language = ?",
            (scope.user_id, scope.language),
        ).fetchall()
    return {row["word"] for row in rows}


def known_words_with_understanding(scope: Scope) -> dict[str, int]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT word, understanding FROM concepts WHERE user_id = ? AND language = ?",
            (scope.user_id, scope.language),
        ).fetchall()
    return {row["word"]: row["understanding"] for row in rows}


def mark_words_as_known(scope: Scope, words: list[str]) -> int:
    """Add words at 100% understanding without explanations.

    Words already in the scope are skipped.

    Returns:
        Number of words added
    """
    existing = known_words(scope)
    added = 0
    for word in dict.fromkeys(words):
        if word in existing:
            continue
        try:
            insert_concept(
                scope,
                word=word,
                meaning="-",
                pinyin="-" if scope.language == "zh" else None,
                understanding=100,
            )
        except sqlite3.IntegrityError:
            continue
        added += 1

    logger.info("concepts.marked_known", user_id=scope.user_id, added=added)
    return added


def pick_distractors(concept: ConceptRecord, limit: int = 5) -> list[ConceptRecord]:
    """Other words of the same scope to use as wrong options.

    Prefers the same part of speech; falls back to any word when fewer
    than three same-POS candidates exist.
    """
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM concepts
            WHERE user_id = ? AND language = ? AND id != ? AND part_of_speech = ?
              AND word != ?
            ORDER BY RANDOM() LIMIT ?
            """,
            (
                concept.user_id,
                concept.language,
                concept.id,
                concept.part_of_speech,
                concept.word,
                limit,
            ),
        ).fetchall()

        if len(rows) < 3:
            rows = conn.execute(
                """
                SELECT * FROM concepts
                WHERE user_id = ? AND language = ? AND id != ? AND word != ?
                ORDER BY RANDOM() LIMIT ?
                """,
                (concept.user_id, concept.language, concept.id, concept.word, limit),
            ).fetchall()

    return [row_to_concept(row) for row in rows]


def row_to_concept(row) -> ConceptRecord:
    """Convert database row to ConceptRecord."""
    return ConceptRecord(
        id=row["id"],
        user_id=row["user_id"],
        language=row["language"],
        word=row["word"],
        meaning=row["meaning"],
        pinyin=row["pinyin"],
        part_of_speech=row["part_of_speech"],
        explanations=json.loads(row["explanations"]) if row["explanations"] else [],
        understanding=row["understanding"],
        paused=bool(row["paused"]),
        explanation_quality=row["explanation_quality"],
        desired_words=json.loads(row["desired_words"]) if row["desired_words"] else [],
        created_at=from_db_timestamp(row["created_at"]),
    )
