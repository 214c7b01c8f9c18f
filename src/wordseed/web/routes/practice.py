"""Practice endpoints.

Soft errors (stale review state, generation fallback) are returned with
HTTP 200 and status "soft_error"; the client shows the notice and moves
on. Bad requests and unknown ids map to 400/404.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from wordseed.core.answer_pipeline import Feedback
from wordseed.core.practice import PracticeEngine, get_practice_engine
from wordseed.core.pregeneration import PregenerationQueue
from wordseed.core.reference_data import get_hsk_registry
from wordseed.db.concepts_repository import Scope
from wordseed.db.review_repository import ReviewRef
from wordseed.web.schemas import (
    AnswerRequest,
    ConceptStatusResponse,
    ContentRequest,
    ContentResponse,
    CritiqueResponse,
    FeedbackResponse,
    PracticeItemResponse,
    PregenerateResponse,
    QuestionResponse,
    StatusResponse,
    TrackStatusResponse,
    UnderstoodRequest,
    UnderstoodResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/practice", tags=["practice"])


async def get_pregeneration_queue(
    request: Request,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> PregenerationQueue:
    """Get the app-wide pre-generation queue, starting it on first use."""
    queue = getattr(request.app.state, "pregeneration_queue", None)
    if queue is None:
        queue = engine.create_pregeneration_queue()
        request.app.state.pregeneration_queue = queue
    queue.start()
    return queue


def _feedback_response(feedback: Feedback) -> FeedbackResponse:
    if feedback.status == "hard_error":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=feedback.message)

    record = feedback.record
    critique = feedback.critique
    return FeedbackResponse(
        status=feedback.status,
        message=feedback.message,
        correct=feedback.correct,
        canonical_answer=feedback.canonical_answer,
        explanation=feedback.explanation,
        tier=record.tier if record else None,
        version=record.version if record else None,
        next_review=record.next_review if record else None,
        critique=CritiqueResponse(**critique.to_dict()) if critique else None,
    )


@router.get("/next", response_model=PracticeItemResponse)
def next_item(
    user_id: str = Query(..., min_length=1),
    language: str = Query("zh"),
    engine: PracticeEngine = Depends(get_practice_engine),
) -> PracticeItemResponse:
    """Next practice item: a due review, a new word, or nothing."""
    item = engine.get_next_practice_item(Scope(user_id, language))
    concept = item.concept
    record = item.record

    return PracticeItemResponse(
        kind=item.kind,
        concept_id=concept.id if concept else None,
        word=concept.word if concept else None,
        pinyin=concept.pinyin if concept else None,
        meaning=concept.meaning if concept else None,
        explanations=concept.explanations if concept else [],
        record_id=record.id if record else None,
        version=record.version if record else None,
        question_type=record.question_type if record else None,
        tier=record.tier if record else None,
    )


@router.post("/content", response_model=ContentResponse)
async def content(
    request_data: ContentRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> ContentResponse:
    """Cached or freshly generated content for a (concept, question type)."""
    result = await engine.get_or_generate_content_async(
        request_data.concept_id,
        request_data.question_type,
        timeout_s=engine.config.generation_timeout_s,
    )

    if result.status == "hard_error":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)

    return ContentResponse(
        status=result.status,
        question_type=result.question_type,
        concept_id=result.concept.id if result.concept else request_data.concept_id,
        word=result.concept.word if result.concept else None,
        question=QuestionResponse.model_validate(result.question) if result.question else None,
        fallback_mode=result.fallback_mode,
        message=result.message,
    )


@router.post("/answer", response_model=FeedbackResponse)
def answer(
    request_data: AnswerRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> FeedbackResponse:
    """Submit an answer and get feedback plus the updated schedule."""
    ref = ReviewRef(record_id=request_data.record_id, version=request_data.version)

    if request_data.sentence is not None:
        feedback = engine.evaluate_sentence(ref, request_data.sentence)
    elif request_data.response is not None:
        feedback = engine.answer_question(request_data.question_id, request_data.response, ref)
    elif request_data.correct is not None:
        feedback = engine.record_answer(ref, request_data.correct, request_data.question_id)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One of response, correct or sentence is required",
        )

    return _feedback_response(feedback)


@router.post("/understood", response_model=UnderstoodResponse)
def understood(
    request_data: UnderstoodRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> UnderstoodResponse:
    """Mark a new word as understood, scheduling its first reviews."""
    result = engine.mark_understood(request_data.concept_id)
    if result.status == "hard_error":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)

    return UnderstoodResponse(
        status=result.status,
        message=result.message,
        tracks=[r.question_type for r in result.records or []],
    )


@router.get("/status", response_model=StatusResponse)
def review_status(
    user_id: str = Query(..., min_length=1),
    language: str = Query("zh"),
    engine: PracticeEngine = Depends(get_practice_engine),
) -> StatusResponse:
    """Review progress of every concept."""
    hsk = get_hsk_registry() if language == "zh" else None
    concepts = [
        ConceptStatusResponse(
            concept_id=entry.concept.id,
            word=entry.concept.word,
            meaning=entry.concept.meaning,
            hsk_level=hsk.lookup(entry.concept.word) if hsk else None,
            paused=entry.concept.paused,
            mastered=entry.mastered,
            tracks=[TrackStatusResponse.model_validate(t) for t in entry.tracks],
        )
        for entry in engine.list_review_status(Scope(user_id, language))
    ]
    return StatusResponse(concepts=concepts, count=len(concepts))


@router.post(
    "/pregenerate",
    response_model=PregenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def pregenerate(
    user_id: str = Query(..., min_length=1),
    language: str = Query("zh"),
    queue: PregenerationQueue = Depends(get_pregeneration_queue),
) -> PregenerateResponse:
    """Queue background question generation for a learner."""
    queued = queue.submit(Scope(user_id, language))
    logger.info("pregeneration_submitted", user_id=user_id, language=language, queued=queued)
    return PregenerateResponse(queued=queued, user_id=user_id, language=language)
