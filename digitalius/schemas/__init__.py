"""
Pydantic schemas for every pipeline boundary.
Each module covers one pipeline stage or cross-cutting concern.
"""

from digitalius.schemas.intent import (
    Intent,
    IntentKind,
    DocumentType,
    SubType,
)
from digitalius.schemas.records import (
    DocumentKind,
    TaggedRecord,
    FetchResult,
)
from digitalius.schemas.response import (
    AnswerContext,
    SearchRequest,
    ResumeRequest,
    SearchResponse,
)
from digitalius.schemas.pipeline import (
    PipelineState,
    NeedsContext,
    Complete,
    StepResult,
    PipelineRun,
)

__all__ = [
    # Intent
    "Intent",
    "IntentKind",
    "DocumentType",
    "SubType",
    # Records
    "DocumentKind",
    "TaggedRecord",
    "FetchResult",
    # Response
    "AnswerContext",
    "SearchRequest",
    "ResumeRequest",
    "SearchResponse",
    # Pipeline
    "PipelineState",
    "NeedsContext",
    "Complete",
    "StepResult",
    "PipelineRun",
]
