"""Background question pre-generation.

Keeps every active (concept, question type) pair stocked with unused
questions so practice never waits on the LLM. Work fans out across
concepts with bounded concurrency; one concept failing never aborts the
others.

Scopes are submitted explicitly to a PregenerationQueue. Each submission
is processed at most once, and a scope already waiting in the queue is
not queued a second time. Runs are idempotent: only missing questions
are generated.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

import structlog

from wordseed.core.srs import question_types_for_language
from wordseed.db import questions_repository
from wordseed.db.concepts_repository import Scope

logger = structlog.get_logger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_TARGET = 2
# Finished runs kept on a queue for inspection
DEFAULT_HISTORY = 50
GENERATED_TYPES = ("yes_no", "multiple_choice")

# Blocking call that generates and stores one question
GenerateFn = Callable[[int, str], object]


@dataclass
class PregenerationResult:
    """Outcome of one pre-generation run for a scope."""

    scope: Scope
    jobs: int = 0
    generated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0


def generated_types_for(language: str) -> list[str]:
    return [t for t in question_types_for_language(language) if t in GENERATED_TYPES]


async def pregenerate_for_scope(
    generate: GenerateFn,
    scope: Scope,
    target: int = DEFAULT_TARGET,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> PregenerationResult:
    """Top up unused questions for every active concept of a scope.

    Args:
        generate: Blocking callable (concept_id, question_type) run in a thread
        scope: Learner and language
        target: Unused questions wanted per (concept, type)
        concurrency: Maximum generations in flight

    Returns:
        PregenerationResult with counts and collected errors
    """
    result = PregenerationResult(scope=scope)
    needed = questions_repository.concepts_needing_questions(
        scope, generated_types_for(scope.language), target
    )
    result.jobs = len(needed)
    if not needed:
        return result

    semaphore = asyncio.Semaphore(concurrency)

    async def fill(concept_id: int, question_type: str, missing: int) -> None:
        async with semaphore:
            for _ in range(missing):
                try:
                    await asyncio.to_thread(generate, concept_id, question_type)
                except Exception as e:
                    error_msg = f"{question_type} for concept {concept_id}: {e}"
                    logger.warning(
                        "pregeneration_failed",
                        concept_id=concept_id,
                        question_type=question_type,
                        error=str(e),
                    )
                    result.failed += 1
                    result.errors.append(error_msg)
                    return
                result.generated += 1

    logger.info(
        "pregeneration_started",
        user_id=scope.user_id,
        language=scope.language,
        jobs=len(needed),
    )
    await asyncio.gather(
        *(fill(concept_id, question_type, missing) for concept_id, question_type, missing in needed)
    )
    logger.info(
        "pregeneration_finished",
        user_id=scope.user_id,
        generated=result.generated,
        failed=result.failed,
    )
    return result


class PregenerationQueue:
    """Single-worker queue of scopes awaiting pre-generation."""

    def __init__(
        self,
        generate: GenerateFn,
        target: int = DEFAULT_TARGET,
        concurrency: int = DEFAULT_CONCURRENCY,
        history: int = DEFAULT_HISTORY,
    ):
        self._generate = generate
        self._target = target
        self._concurrency = concurrency
        self._queue: asyncio.Queue[Scope | None] = asyncio.Queue()
        self._pending: set[Scope] = set()
        self._worker: asyncio.Task | None = None
        self.results: deque[PregenerationResult] = deque(maxlen=history)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, scope: Scope) -> bool:
        """Queue a scope.

        Returns:
            False if the scope was already waiting (the submission is coalesced)
        """
        if scope in self._pending:
            logger.debug("pregeneration_coalesced", user_id=scope.user_id, language=scope.language)
            return False
        self._pending.add(scope)
        self._queue.put_nowait(scope)
        return True

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run())

    async def join(self) -> None:
        """Wait until every submitted scope has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Finish queued work, then stop the worker."""
        if self._worker is None:
            return
        self._queue.put_nowait(None)
        await self._worker
        self._worker = None

    async def _run(self) -> None:
        while True:
            scope = await self._queue.get()
            try:
                if scope is None:
                    return
                self._pending.discard(scope)
                result = await pregenerate_for_scope(
                    self._generate, scope, self._target, self._concurrency
                )
                self.results.append(result)
            except Exception as e:
                logger.error("pregeneration_run_failed", error=str(e))
            finally:
                self._queue.task_done()
