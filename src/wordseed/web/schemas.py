"""Pydantic schemas for the Web API.

Serialization models for practice items, generated content, answers
and review status.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

Status = Literal["ok", "soft_error", "hard_error"]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


# =============================================================================
# PRACTICE ITEM SCHEMAS
# =============================================================================


class PracticeItemResponse(BaseModel):
    """Next practice unit for a learner."""

    kind: Literal["review", "first_encounter", "nothing"]
    concept_id: int | None = None
    word: str | None = None
    pinyin: str | None = None
    meaning: str | None = None
    explanations: list[str] = Field(default_factory=list)
    record_id: int | None = None
    version: int | None = None
    question_type: str | None = None
    tier: int | None = None


# =============================================================================
# CONTENT SCHEMAS
# =============================================================================


class ContentRequest(BaseModel):
    """Request body for fetching practice content."""

    concept_id: int
    question_type: Literal["pinyin", "yes_no", "multiple_choice"]


class QuestionResponse(BaseModel):
    """A generated question, without its answer."""

    id: int
    question_type: str
    question_text: str
    options: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ContentResponse(BaseModel):
    status: Status
    question_type: str
    concept_id: int | None = None
    word: str | None = None
    question: QuestionResponse | None = None
    fallback_mode: str | None = None
    message: str = ""


# =============================================================================
# ANSWER SCHEMAS
# =============================================================================


class AnswerRequest(BaseModel):
    """Request body for submitting an answer.

    Exactly one of response (graded server-side), correct (self-graded)
    or sentence (LLM-evaluated) is expected.
    """

    record_id: int
    version: int
    question_id: int | None = None
    response: str | int | bool | None = None
    correct: bool | None = None
    sentence: str | None = Field(default=None, max_length=500)


class CritiqueResponse(BaseModel):
    correct: bool
    feedback: str
    improved: str | None = None


class FeedbackResponse(BaseModel):
    status: Status
    message: str = ""
    correct: bool | None = None
    canonical_answer: str | None = None
    explanation: str = ""
    tier: int | None = None
    version: int | None = None
    next_review: datetime | None = None
    critique: CritiqueResponse | None = None


class UnderstoodRequest(BaseModel):
    concept_id: int


class UnderstoodResponse(BaseModel):
    status: Status
    message: str = ""
    tracks: list[str] = Field(default_factory=list)


# =============================================================================
# STATUS SCHEMAS
# =============================================================================


class TrackStatusResponse(BaseModel):
    question_type: str
    label: str
    tier: int
    percent: int
    next_review: datetime | None = None
    due_in: str

    model_config = {"from_attributes": True}


class ConceptStatusResponse(BaseModel):
    concept_id: int
    word: str
    meaning: str
    hsk_level: str | None = None
    paused: bool = False
    mastered: bool = False
    tracks: list[TrackStatusResponse] = Field(default_factory=list)


class StatusResponse(BaseModel):
    concepts: list[ConceptStatusResponse]
    count: int


class PregenerateResponse(BaseModel):
    queued: bool
    user_id: str
    language: str
