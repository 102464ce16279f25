"""
Schemas for Stage 3 (Answer Synthesis) input and the API layer.

AnswerContext is what the synthesis collaborator receives.
SearchRequest / SearchResponse are the external API contract.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints

from digitalius.core.config import settings
from digitalius.schemas.intent import Intent


# ── Synthesis input ─────────────────────────────────────────────────
class AnswerContext(BaseModel):
    """Field-pruned projection of the results plus prompt-formatting metadata."""
    query: str
    document_type: str = Field(alias="documentType")
    intent_kind: str = Field(alias="intentKind")
    results_count: int = Field(0, alias="resultsCount")
    context: str
    regulation_link: str | None = Field(None, alias="regulationLink")

    class Config:
        populate_by_name = True


# ── External API schemas ────────────────────────────────────────────
# Length bounds apply after surrounding whitespace is stripped
QueryText = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=settings.query_max_length),
]


class SearchRequest(BaseModel):
    query: QueryText


class ResumeRequest(SearchRequest):
    """Second leg of the two-phase protocol: the query plus its classified intent."""
    intent: Intent


class SearchResponse(BaseModel):
    """Public payload: the normalized records and the synthesized answer."""
    results: list[dict[str, Any]] = Field(default_factory=list)
    answer: str
