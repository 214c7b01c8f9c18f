"""Repository functions for the questions table.

Generated questions are cached per (concept, question type) and consumed
once: ``mark_used`` only stamps rows whose used_at is still NULL, so two
callers racing on the same question cannot both consume it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from wordseed.db.concepts_repository import Scope
from wordseed.db.database import from_db_timestamp, get_db, to_db_timestamp, utc_now

logger = structlog.get_logger(__name__)

STORED_QUESTION_TYPES = ("yes_no", "multiple_choice", "sentence")


@dataclass
class GeneratedQuestion:
    """Generated question from database."""

    id: int
    concept_id: int
    user_id: str
    question_type: str
    question_text: str
    correct_answer: str | None = None
    options: list[str] = field(default_factory=list)
    explanation: str = ""
    used_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def used(self) -> bool:
        return self.used_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "concept_id": self.concept_id,
            "question_type": self.question_type,
            "question_text": self.question_text,
            "options": list(self.options),
        }


def insert_question(
    concept_id: int,
    user_id: str,
    question_type: str,
    question_text: str,
    correct_answer: str | None = None,
    options: list[str] | None = None,
    explanation: str = "",
    created_at: datetime | None = None,
) -> GeneratedQuestion:
    """Store a freshly generated question.

    Raises:
        ValueError: If question_type is not a stored type
    """
    if question_type not in STORED_QUESTION_TYPES:
        raise ValueError(f"Unknown question type: {question_type}")

    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO questions (
                concept_id, user_id, question_type, question_text,
                correct_answer, options, explanation, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                concept_id,
                user_id,
                question_type,
                question_text,
                correct_answer,
                json.dumps(options or [], ensure_ascii=False),
                explanation,
                to_db_timestamp(created_at or utc_now()),
            ),
        )
        question_id = cursor.lastrowid

    logger.debug(
        "questions.inserted",
        question_id=question_id,
        concept_id=concept_id,
        question_type=question_type,
    )
    stored = get_question(question_id)
    assert stored is not None
    return stored


def get_question(question_id: int) -> GeneratedQuestion | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM questions WHERE id = ?", (question_id,)).fetchone()

    if row is None:
        return None
    return _row_to_question(row)


def get_unused_question(concept_id: int, question_type: str) -> GeneratedQuestion | None:
    """Oldest unused question for a (concept, type) pair, if any."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT * FROM questions
            WHERE concept_id = ? AND question_type = ? AND used_at IS NULL
            ORDER BY created_at ASC, id ASC
            LIMIT 1
            """,
            (concept_id, question_type),
        ).fetchone()

    if row is None:
        return None
    return _row_to_question(row)


def count_unused(concept_id: int, question_type: str) -> int:
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT COUNT(*) AS n FROM questions
            WHERE concept_id = ? AND question_type = ? AND used_at IS NULL
            """,
            (concept_id, question_type),
        ).fetchone()
    return row["n"]


def mark_used(question_id: int, when: datetime | None = None) -> bool:
    """Stamp a question as consumed.

    Returns:
        True if this call consumed it, False if it was already used or missing
    """
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE questions SET used_at = ? WHERE id = ? AND used_at IS NULL",
            (to_db_timestamp(when or utc_now()), question_id),
        )

    consumed = cursor.rowcount > 0
    if not consumed:
        logger.debug("questions.already_used", question_id=question_id)
    return consumed


def concepts_needing_questions(
    scope: Scope,
    question_types: list[str],
    target: int = 2,
) -> list[tuple[int, str, int]]:
    """Find (concept, type) pairs whose unused stock is below target.

    Only concepts that are in review (have records) and are not paused
    are considered.

    Returns:
        List of (concept_id, question_type, missing_count)
    """
    needed: list[tuple[int, str, int]] = []

    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT DISTINCT c.id FROM concepts c
            JOIN review_records r ON r.concept_id = c.id
            WHERE c.user_id = ? AND c.language = ? AND c.paused = 0
              AND r.next_review IS NOT NULL
            ORDER BY c.id
            """,
            (scope.user_id, scope.language),
        ).fetchall()
        concept_ids = [row["id"] for row in rows]

        for concept_id in concept_ids:
            for question_type in question_types:
                row = conn.execute(
                    """
                    SELECT COUNT(*) AS n FROM questions
                    WHERE concept_id = ? AND question_type = ? AND used_at IS NULL
                    """,
                    (concept_id, question_type),
                ).fetchone()
                missing = target - row["n"]
                if missing > 0:
                    needed.append((concept_id, question_type, missing))

    return needed


def _row_to_question(row) -> GeneratedQuestion:
    """Convert database row to GeneratedQuestion."""
    return GeneratedQuestion(
        id=row["id"],
        concept_id=row["concept_id"],
        user_id=row["user_id"],
        question_type=row["question_type"],
        question_text=row["question_text"],
        correct_answer=row["correct_answer"],
        options=json.loads(row["options"]) if row["options"] else [],
        explanation=row["explanation"],
        used_at=from_db_timestamp(row["used_at"]),
        created_at=from_db_timestamp(row["created_at"]),
    )
