"""
Pipeline Orchestrator: top-level entry point.

One state machine (``QueryPipeline``), two ways of walking it:

  - ``InlineStrategy``: classify → fetch → synthesize in one call.
  - ``TwoPhaseStrategy``: ``begin`` stops at CONTEXT_REQUIRED and returns
    ``NeedsContext``; the caller performs the store access and hands the
    fetched records back to ``resume``.

Short-circuit exits (greeting / cannot help / no results) never touch
the synthesis model; the first two never touch the store either.
"""

from __future__ import annotations

import asyncio
import re
from typing import Awaitable, TypeVar

from digitalius.core.config import settings
from digitalius.core.errors import (
    ClassificationUnavailable,
    QueryValidationError,
    StoreUnavailable,
    UpstreamServiceError,
)
from digitalius.pipeline.dispatcher import CollectionDispatcher
from digitalius.pipeline.intent import IntentClassifier
from digitalius.pipeline.normalizer import normalize_records
from digitalius.pipeline.synthesis import AnswerSynthesizer, build_answer_context
from digitalius.prompts.constants import (
    CANNOT_HELP_ANSWER,
    GREETING_ANSWER,
    GREETING_TOKENS,
    NO_RESULTS_ANSWER,
)
from digitalius.schemas.intent import Intent, IntentKind
from digitalius.schemas.pipeline import (
    Complete,
    NeedsContext,
    PipelineRun,
    PipelineState,
)
from digitalius.schemas.records import FetchResult
from digitalius.schemas.response import SearchResponse
from digitalius.utils.logging import get_logger
from digitalius.utils.timing import Timer, request_deadline

logger = get_logger("digitalius.pipeline.orchestrator")

T = TypeVar("T")

_GREETING_RE = re.compile(
    r"(?<!\w)(?:" + "|".join(re.escape(t) for t in GREETING_TOKENS) + r")(?!\w)",
    re.IGNORECASE,
)


def is_greeting(query: str) -> bool:
    return bool(_GREETING_RE.search(query or ""))


def validate_query(query: str | None) -> str:
    """Strip and bound-check the query; raises QueryValidationError."""
    text = (query or "").strip()
    if not text:
        raise QueryValidationError("La consulta es obligatoria.")
    if len(text) > settings.query_max_length:
        raise QueryValidationError(
            f"La consulta no puede exceder los {settings.query_max_length} caracteres."
        )
    return text


def needs_short_circuit(intent: Intent) -> bool:
    """
    Unknown intents, and searches with neither keywords nor year, are
    answered without store access.  Latest and count intents are
    meaningful without search terms.
    """
    if intent.kind == IntentKind.UNKNOWN:
        return True
    return intent.kind == IntentKind.SEARCH_INFO and not intent.has_search_terms


class QueryPipeline:
    """The shared state machine definition both strategies drive."""

    def __init__(
        self,
        classifier: IntentClassifier,
        dispatcher: CollectionDispatcher,
        synthesizer: AnswerSynthesizer,
    ):
        self.classifier = classifier
        self.dispatcher = dispatcher
        self.synthesizer = synthesizer

    # ── START → CLASSIFIED → {SHORT_CIRCUITED | CONTEXT_REQUIRED} ───
    async def begin(self, run: PipelineRun) -> NeedsContext | Complete:
        with Timer("classify") as t:
            try:
                intent = await self.classifier.classify(run.query)
            except ClassificationUnavailable as e:
                logger.warning("[PIPELINE] Classifier unavailable, treating as unknown: %s", e)
                intent = Intent.unknown()
        run.stage_timings["classify"] = t.elapsed_s
        run.intent = intent
        run.advance(PipelineState.CLASSIFIED)

        if needs_short_circuit(intent):
            run.advance(PipelineState.SHORT_CIRCUITED)
            answer = GREETING_ANSWER if is_greeting(run.query) else CANNOT_HELP_ANSWER
            logger.info("[PIPELINE] Short-circuit: kind=%s (no store access)", intent.kind.value)
            return Complete(
                state=run.state,
                intent=intent,
                payload=SearchResponse(results=[], answer=answer),
            )

        run.advance(PipelineState.CONTEXT_REQUIRED)
        return NeedsContext(intent=intent)

    # ── CONTEXT_REQUIRED → DISPATCHED → NORMALIZED ──────────────────
    async def fetch_context(self, run: PipelineRun) -> FetchResult:
        intent = self._require_intent(run)
        with Timer("dispatch") as t:
            fetched = await self.dispatcher.dispatch(intent)
        run.stage_timings["dispatch"] = t.elapsed_s
        run.advance(PipelineState.DISPATCHED)
        return self.normalize(run, fetched)

    def normalize(self, run: PipelineRun, fetched: FetchResult) -> FetchResult:
        if fetched.count is None:
            fetched = fetched.model_copy(update={"records": normalize_records(fetched.records)})
        run.advance(PipelineState.NORMALIZED)
        return fetched

    # ── NORMALIZED → {NO_RESULTS | SYNTHESIZED} ─────────────────────
    async def answer(self, run: PipelineRun, fetched: FetchResult) -> Complete:
        intent = self._require_intent(run)
        is_count = intent.kind == IntentKind.COUNT_ITEMS

        if not is_count and not fetched.records:
            run.advance(PipelineState.NO_RESULTS)
            logger.info("[PIPELINE] No matching documents; synthesis skipped")
            return Complete(
                state=run.state,
                intent=intent,
                payload=SearchResponse(results=[], answer=NO_RESULTS_ANSWER),
            )

        if is_count:
            context = build_answer_context(run.query, intent, count=fetched.count or 0)
        else:
            context = build_answer_context(run.query, intent, records=fetched.records)

        with Timer("synthesize") as t:
            answer = await self.synthesizer.synthesize(context)
        run.stage_timings["synthesize"] = t.elapsed_s
        run.advance(PipelineState.SYNTHESIZED)

        return Complete(
            state=run.state,
            intent=intent,
            payload=SearchResponse(
                results=[r.data for r in fetched.records],
                answer=answer,
            ),
        )

    @staticmethod
    def _require_intent(run: PipelineRun) -> Intent:
        if run.intent is None:
            raise RuntimeError("pipeline step called before classification")
        return run.intent


class _Strategy:
    def __init__(self, pipeline: QueryPipeline, *, timeout: float | None = None):
        self.pipeline = pipeline
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds

    async def _bounded(self, run: PipelineRun, coro: Awaitable[T]) -> T:
        """
        Apply the request-level timeout.  Expiry cancels the await, skips
        synthesis and surfaces as UpstreamServiceError; store reads already
        running in executor threads stop at the shared request deadline.
        """
        try:
            with request_deadline(self.timeout):
                return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(
                "[PIPELINE] Timed out after %.1fs in state=%s", self.timeout, run.state.value,
            )
            raise UpstreamServiceError(f"request timed out after {self.timeout}s") from e
        except (StoreUnavailable, UpstreamServiceError) as e:
            logger.error(
                "[PIPELINE] %s in state=%s: %s", type(e).__name__, run.state.value, e,
                exc_info=True,
            )
            raise

    @staticmethod
    def _finished(run: PipelineRun, result: Complete) -> Complete:
        if not run.finished:
            raise RuntimeError(f"pipeline returned from non-terminal state {run.state.value}")
        return result


class InlineStrategy(_Strategy):
    """Classify, fetch and synthesize within one call."""

    async def run(self, query: str) -> Complete:
        run = PipelineRun(query=validate_query(query))
        logger.info("[PIPELINE] Started | query: %s", run.query[:80])
        result = self._finished(run, await self._bounded(run, self._walk(run)))
        logger.info(
            "[PIPELINE] Done in %.2fs | state=%s | results=%d",
            run.elapsed_seconds, result.state.value, len(result.payload.results),
        )
        return result

    async def _walk(self, run: PipelineRun) -> Complete:
        step = await self.pipeline.begin(run)
        if isinstance(step, Complete):
            return step
        fetched = await self.pipeline.fetch_context(run)
        return await self.pipeline.answer(run, fetched)


class TwoPhaseStrategy(_Strategy):
    """
    Split protocol: ``begin`` may ask for context; the caller fetches it
    (``fetch``) and completes the answer with ``resume``.  ``answer`` does
    both under a single request deadline.
    """

    async def begin(self, query: str) -> NeedsContext | Complete:
        run = PipelineRun(query=validate_query(query))
        logger.info("[PIPELINE] Two-phase begin | query: %s", run.query[:80])
        return await self._bounded(run, self.pipeline.begin(run))

    async def fetch(self, query: str, intent: Intent) -> FetchResult:
        """Store access on behalf of the caller (CONTEXT_REQUIRED → NORMALIZED)."""
        run = self._resumed_run(query, intent)
        return await self._bounded(run, self.pipeline.fetch_context(run))

    async def resume(self, query: str, intent: Intent, fetched: FetchResult) -> Complete:
        """Finish with caller-supplied context; records are re-normalized (idempotent)."""
        run = self._resumed_run(query, intent)
        run.advance(PipelineState.DISPATCHED)

        async def _finish() -> Complete:
            normalized = self.pipeline.normalize(run, fetched)
            return await self.pipeline.answer(run, normalized)

        return self._finished(run, await self._bounded(run, _finish()))

    async def answer(self, query: str, intent: Intent) -> Complete:
        """Fetch the context and synthesize, bounded together by one timeout."""
        run = self._resumed_run(query, intent)

        async def _fetch_and_answer() -> Complete:
            fetched = await self.pipeline.fetch_context(run)
            return await self.pipeline.answer(run, fetched)

        return self._finished(run, await self._bounded(run, _fetch_and_answer()))

    @staticmethod
    def _resumed_run(query: str, intent: Intent) -> PipelineRun:
        if needs_short_circuit(intent):
            raise QueryValidationError(
                f"intent kind={intent.kind.value} does not require document context"
            )
        return PipelineRun(
            query=validate_query(query),
            intent=intent,
            state=PipelineState.CONTEXT_REQUIRED,
            history=[PipelineState.CONTEXT_REQUIRED],
        )
