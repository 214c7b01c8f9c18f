"""Repository functions for the review_records table.

Review records hold the spaced-repetition state of one (concept,
question type) track. Writes go through ``save_transition``, which
performs an optimistic compare-and-swap on the ``version`` column so a
caller holding a stale copy can never overwrite newer tier state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog

from wordseed.core.srs import SRSState, initial_state, validate_state
from wordseed.db.concepts_repository import ConceptRecord, Scope, row_to_concept
from wordseed.db.database import from_db_timestamp, get_db, to_db_timestamp, utc_now

logger = structlog.get_logger(__name__)


class StaleRecordError(Exception):
    """The review record changed or vanished since it was read."""

    def __init__(self, record_id: int, expected_version: int | None, actual_version: int | None):
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if actual_version is None:
            message = f"Review record {record_id} no longer exists"
        else:
            message = (
                f"Review record {record_id} is at version {actual_version}, "
                f"expected {expected_version}"
            )
        super().__init__(message)


@dataclass(frozen=True)
class ReviewRef:
    """Handle a caller keeps between selection and answer submission."""

    record_id: int
    version: int


@dataclass
class ReviewRecord:
    """Review record from database."""

    id: int
    concept_id: int
    user_id: str
    question_type: str
    tier: int
    streak: int
    lapses: int
    next_review: datetime | None
    version: int
    updated_at: datetime | None = None

    @property
    def state(self) -> SRSState:
        return SRSState(
            tier=self.tier,
            streak=self.streak,
            lapses=self.lapses,
            next_review=self.next_review,
        )

    @property
    def ref(self) -> ReviewRef:
        return ReviewRef(record_id=self.id, version=self.version)

    @property
    def graduated(self) -> bool:
        return self.next_review is None


def create_records(
    concept_id: int,
    user_id: str,
    question_types: list[str],
    now: datetime | None = None,
) -> list[ReviewRecord]:
    """Create tier-0 tracks for a concept.

    Existing tracks are left untouched, so calling this twice is safe.

    Returns:
        All review records of the concept after the insert
    """
    now = now or utc_now()
    state = initial_state(now)

    with get_db() as conn:
        for question_type in question_types:
            conn.execute(
                """
                INSERT OR IGNORE INTO review_records (
                    concept_id, user_id, question_type, tier, streak, lapses,
                    next_review, version, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
                """,
                (
                    concept_id,
                    user_id,
                    question_type,
                    state.tier,
                    state.streak,
                    state.lapses,
                    to_db_timestamp(state.next_review),
                    to_db_timestamp(now),
                ),
            )

    logger.debug("review_records.created", concept_id=concept_id, types=question_types)
    return list_records_for_concept(concept_id)


def get_record(record_id: int) -> ReviewRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM review_records WHERE id = ?", (record_id,)
        ).fetchone()

    if row is None:
        return None
    return _row_to_record(row)


def get_record_for(concept_id: int, question_type: str) -> ReviewRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM review_records WHERE concept_id = ? AND question_type = ?",
            (concept_id, question_type),
        ).fetchone()

    if row is None:
        return None
    return _row_to_record(row)


def list_records_for_concept(concept_id: int) -> list[ReviewRecord]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM review_records WHERE concept_id = ? ORDER BY id",
            (concept_id,),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def list_records_for_scope(scope: Scope) -> list[ReviewRecord]:
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT r.* FROM review_records r
            JOIN concepts c ON c.id = r.concept_id
            WHERE c.user_id = ? AND c.language = ?
            ORDER BY c.id, r.id
            """,
            (scope.user_id, scope.language),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def find_due(scope: Scope, now: datetime, limit: int = 1) -> list[ReviewRecord]:
    """Due records of non-paused concepts, most overdue first.

    Ties break on lowest tier, then oldest concept. Graduated records
    (next_review NULL) never match.
    """
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT r.* FROM review_records r
            JOIN concepts c ON c.id = r.concept_id
            WHERE c.user_id = ? AND c.language = ? AND c.paused = 0
              AND r.next_review IS NOT NULL AND r.next_review <= ?
            ORDER BY r.next_review ASC, r.tier ASC, c.created_at ASC, c.id ASC, r.id ASC
            LIMIT ?
            """,
            (scope.user_id, scope.language, to_db_timestamp(now), limit),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def find_first_encounter(scope: Scope) -> ConceptRecord | None:
    """Oldest non-paused concept that has never been reviewed."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT c.* FROM concepts c
            WHERE c.user_id = ? AND c.language = ? AND c.paused = 0
              AND c.understanding = 0
              AND NOT EXISTS (
                  SELECT 1 FROM review_records r WHERE r.concept_id = c.id
              )
            ORDER BY c.created_at ASC, c.id ASC
            LIMIT 1
            """,
            (scope.user_id, scope.language),
        ).fetchone()

    if row is None:
        return None
    return row_to_concept(row)


def save_transition(
    record: ReviewRecord,
    new_state: SRSState,
    now: datetime | None = None,
) -> ReviewRecord:
    """Persist a state-machine result if the record is still current.

    Args:
        record: The copy the transition was computed from
        new_state: Result of srs.transition
        now: Timestamp for updated_at

    Returns:
        The stored record with its bumped version

    Raises:
        SRSInvariantError: If new_state breaks the tier ladder
        StaleRecordError: If the row changed or was deleted meanwhile
    """
    validate_state(new_state)
    now = now or utc_now()

    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE review_records SET
                tier = ?,
                streak = ?,
                lapses = ?,
                next_review = ?,
                version = version + 1,
                updated_at = ?
            WHERE id = ? AND version = ?
            """,
            (
                new_state.tier,
                new_state.streak,
                new_state.lapses,
                to_db_timestamp(new_state.next_review),
                to_db_timestamp(now),
                record.id,
                record.version,
            ),
        )

        if cursor.rowcount == 0:
            row = conn.execute(
                "SELECT version FROM review_records WHERE id = ?", (record.id,)
            ).fetchone()
            actual = row["version"] if row is not None else None
            raise StaleRecordError(record.id, record.version, actual)

    logger.debug(
        "review_records.transitioned",
        record_id=record.id,
        tier=new_state.tier,
        version=record.version + 1,
    )

    stored = get_record(record.id)
    if stored is None:
        raise StaleRecordError(record.id, record.version + 1, None)
    return stored


def delete_record(record_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM review_records WHERE id = ?", (record_id,))
    return cursor.rowcount > 0


def _row_to_record(row) -> ReviewRecord:
    """Convert database row to ReviewRecord."""
    return ReviewRecord(
        id=row["id"],
        concept_id=row["concept_id"],
        user_id=row["user_id"],
        question_type=row["question_type"],
        tier=row["tier"],
        streak=row["streak"],
        lapses=row["lapses"],
        next_review=from_db_timestamp(row["next_review"]),
        version=row["version"],
        updated_at=from_db_timestamp(row["updated_at"]),
    )
