"""
Pipeline Stage 3: Answer synthesis.

The pipeline's job here is only to assemble the Answer Context:
records projected without internal fields and serialized as JSON (or
the bare count for count intents), plus the intent metadata the
synthesis prompt needs.  Prose comes from the collaborator.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Protocol

from openai import OpenAIError

from digitalius.core.config import settings
from digitalius.core.errors import UpstreamServiceError
from digitalius.prompts.answer_generator import build_answer_prompt, build_system_prompt
from digitalius.prompts.constants import EMPTY_SYNTHESIS_ANSWER
from digitalius.schemas.intent import DocumentType, Intent
from digitalius.schemas.records import ID_FIELD, DocumentKind, TaggedRecord
from digitalius.schemas.response import AnswerContext
from digitalius.services.llm import LLMResponseError, complete_json
from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.pipeline.synthesis")

# Fields never shown to the synthesis model
_PRUNED_FIELDS = frozenset({ID_FIELD})


def project_record(record: TaggedRecord) -> dict[str, Any]:
    return {k: v for k, v in record.data.items() if k not in _PRUNED_FIELDS}


def build_answer_context(
    query: str,
    intent: Intent,
    *,
    records: list[TaggedRecord] | None = None,
    count: int | None = None,
) -> AnswerContext:
    """
    Answer Context for a record listing, or for a scalar count.

    The regulation link is attached only when the regulation is in scope:
    a regulation or "all" query, or a regulation section among the records.
    """
    if count is not None:
        context = str(count)
        results_count = count
    else:
        projected = [project_record(r) for r in records or []]
        context = json.dumps(projected, ensure_ascii=False, indent=2, default=str)
        results_count = len(projected)

    return AnswerContext(
        query=query,
        document_type=intent.document_type.value,
        intent_kind=intent.kind.value,
        results_count=results_count,
        context=context,
        regulation_link=settings.regulation_link if _covers_regulation(intent, records) else None,
    )


def _covers_regulation(intent: Intent, records: list[TaggedRecord] | None) -> bool:
    if intent.document_type in (DocumentType.REGULATION, DocumentType.ALL):
        return True
    return any(r.kind == DocumentKind.REGULATION for r in records or [])


class AnswerSynthesizer(Protocol):
    async def synthesize(self, context: AnswerContext) -> str: ...


class OpenAIAnswerSynthesizer:
    """JSON-mode chat completion → ``{"answer": ...}``."""

    def __init__(self, model: str | None = None, client: Any | None = None):
        self.model = model or settings.synthesis_model
        self._client = client

    async def synthesize(self, context: AnswerContext) -> str:
        system_prompt = build_system_prompt(settings.long_listing_threshold)
        user_prompt = build_answer_prompt(context)
        logger.info(
            "[SYNTHESIS] Prompt: %d chars | results=%d | intent=%s",
            len(system_prompt) + len(user_prompt), context.results_count, context.intent_kind,
        )

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(
                None,
                lambda: complete_json(
                    model=self.model,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    temperature=0.3,
                    max_tokens=2000,
                    client=self._client,
                ),
            )
        except (OpenAIError, LLMResponseError, RuntimeError) as e:
            raise UpstreamServiceError(f"answer synthesis failed: {e}") from e

        answer = data.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            logger.warning("Answer LLM returned no content; using fallback message.")
            return EMPTY_SYNTHESIS_ANSWER
        return answer.strip()
