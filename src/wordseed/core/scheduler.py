"""Practice scheduler.

Selects the next practice unit for a scope:

1. The most overdue review record (ties: lowest tier, then oldest concept)
2. Otherwise the oldest concept never seen before (a definition card)
3. Otherwise nothing

Selection is read-only, so asking twice without answering in between
returns the same item.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

import structlog

from wordseed.core.srs import format_question_type, format_relative, tier_to_percent
from wordseed.db import concepts_repository, review_repository
from wordseed.db.concepts_repository import ConceptRecord, Scope
from wordseed.db.database import utc_now
from wordseed.db.review_repository import ReviewRecord

logger = structlog.get_logger(__name__)

PracticeKind = Literal["review", "first_encounter", "nothing"]


@dataclass
class PracticeItem:
    """The next thing a learner should practice."""

    kind: PracticeKind
    concept: ConceptRecord | None = None
    record: ReviewRecord | None = None

    @property
    def question_type(self) -> str | None:
        return self.record.question_type if self.record else None

    def to_dict(self) -> dict:
        result: dict = {"kind": self.kind}
        if self.concept is not None:
            result["concept_id"] = self.concept.id
            result["word"] = self.concept.word
        if self.record is not None:
            result["record_id"] = self.record.id
            result["version"] = self.record.version
            result["question_type"] = self.record.question_type
            result["tier"] = self.record.tier
        return result


@dataclass
class TrackStatus:
    question_type: str
    label: str
    tier: int
    percent: int
    next_review: datetime | None
    due_in: str


@dataclass
class ConceptStatus:
    concept: ConceptRecord
    tracks: list[TrackStatus] = field(default_factory=list)

    @property
    def mastered(self) -> bool:
        return bool(self.tracks) and all(t.next_review is None for t in self.tracks)


def get_next_practice_item(scope: Scope, now: datetime | None = None) -> PracticeItem:
    """Pick the next practice unit for a learner.

    Args:
        scope: Learner and target language
        now: Reference time (defaults to current UTC time)

    Returns:
        PracticeItem of kind "review", "first_encounter" or "nothing"
    """
    now = now or utc_now()

    due = review_repository.find_due(scope, now, limit=1)
    if due:
        record = due[0]
        concept = concepts_repository.require_concept(record.concept_id)
        logger.debug(
            "practice.next_review",
            record_id=record.id,
            word=concept.word,
            question_type=record.question_type,
        )
        return PracticeItem(kind="review", concept=concept, record=record)

    concept = review_repository.find_first_encounter(scope)
    if concept is not None:
        logger.debug("practice.first_encounter", concept_id=concept.id, word=concept.word)
        return PracticeItem(kind="first_encounter", concept=concept)

    return PracticeItem(kind="nothing")


def list_review_status(scope: Scope, now: datetime | None = None) -> list[ConceptStatus]:
    """Every concept of the scope with its review tracks."""
    now = now or utc_now()

    by_concept: dict[int, list[ReviewRecord]] = {}
    for record in review_repository.list_records_for_scope(scope):
        by_concept.setdefault(record.concept_id, []).append(record)

    statuses = []
    for concept in concepts_repository.list_concepts(scope):
        tracks = [
            TrackStatus(
                question_type=record.question_type,
                label=format_question_type(record.question_type),
                tier=record.tier,
                percent=tier_to_percent(record.tier),
                next_review=record.next_review,
                due_in=format_relative(record.next_review, now),
            )
            for record in by_concept.get(concept.id, [])
        ]
        statuses.append(ConceptStatus(concept=concept, tracks=tracks))

    return statuses
