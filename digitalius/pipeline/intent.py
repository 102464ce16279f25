"""
Pipeline Stage 1: Intent classification.

The classifier is an external collaborator: the pipeline only sees
``classify(query) -> Intent`` or ``ClassificationUnavailable``.  The
default implementation asks an OpenAI model for a JSON object and
coerces it with ``Intent.from_payload``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from openai import OpenAIError

from digitalius.core.config import settings
from digitalius.core.errors import ClassificationUnavailable
from digitalius.prompts.intent_classifier import build_intent_prompt
from digitalius.schemas.intent import Intent
from digitalius.services.llm import LLMResponseError, complete_json
from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.pipeline.intent")


class IntentClassifier(Protocol):
    async def classify(self, query: str) -> Intent: ...


class OpenAIIntentClassifier:
    """JSON-mode chat completion → Intent."""

    def __init__(self, model: str | None = None, client: Any | None = None):
        self.model = model or settings.classifier_model
        self._client = client

    async def classify(self, query: str) -> Intent:
        system_prompt, user_prompt = build_intent_prompt(query)
        loop = asyncio.get_running_loop()
        try:
            payload = await loop.run_in_executor(
                None,
                lambda: complete_json(
                    model=self.model,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    temperature=0.0,
                    max_tokens=300,
                    client=self._client,
                ),
            )
        except (OpenAIError, LLMResponseError, RuntimeError) as e:
            raise ClassificationUnavailable(str(e)) from e

        intent = Intent.from_payload(payload)
        logger.info(
            "[INTENT] Classified: kind=%s | type=%s | keywords=%s | year=%s | subType=%s",
            intent.kind.value,
            intent.document_type.value,
            list(intent.keywords),
            intent.year,
            intent.sub_type.value if intent.sub_type else "-",
        )
        return intent
