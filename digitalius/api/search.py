"""
Thin API routes for /search.

No business logic: validates the request, drives one of the two
orchestration strategies and maps pipeline errors to HTTP statuses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from digitalius.core.errors import (
    DigitaliusError,
    QueryValidationError,
    StoreUnavailable,
)
from digitalius.pipeline.orchestrator import InlineStrategy, QueryPipeline, TwoPhaseStrategy
from digitalius.prompts.constants import STORE_ERROR_ANSWER, UPSTREAM_ERROR_ANSWER
from digitalius.schemas.pipeline import Complete, StepResult
from digitalius.schemas.response import ResumeRequest, SearchRequest, SearchResponse
from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.api.search")

router = APIRouter(tags=["Search"])


def get_pipeline(request: Request) -> QueryPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=STORE_ERROR_ANSWER,
        )
    return pipeline


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    pipeline: QueryPipeline = Depends(get_pipeline),
):
    """Answer a query with the inline (single round-trip) strategy."""
    logger.info("[SEARCH] New query: %s", request.query[:80])
    try:
        result = await InlineStrategy(pipeline).run(request.query)
    except DigitaliusError as e:
        raise _http_error(e) from e
    return result.payload


@router.post("/search/classify", response_model=StepResult)
async def classify(
    request: SearchRequest,
    pipeline: QueryPipeline = Depends(get_pipeline),
):
    """First leg of the two-phase protocol: a terminal answer, or a request for context."""
    try:
        return await TwoPhaseStrategy(pipeline).begin(request.query)
    except DigitaliusError as e:
        raise _http_error(e) from e


@router.post("/search/answer", response_model=Complete)
async def answer(
    request: ResumeRequest,
    pipeline: QueryPipeline = Depends(get_pipeline),
):
    """Second leg: fetch the context for the classified intent and synthesize."""
    try:
        return await TwoPhaseStrategy(pipeline).answer(request.query, request.intent)
    except DigitaliusError as e:
        raise _http_error(e) from e


def _http_error(exc: DigitaliusError) -> HTTPException:
    """Map a pipeline exception to one user-facing message per failure class."""
    if isinstance(exc, QueryValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, StoreUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORE_ERROR_ANSWER)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=UPSTREAM_ERROR_ANSWER)
