"""
OpenAI client singleton and the JSON-mode completion helper shared by
the intent classifier and the answer synthesizer.
"""

from __future__ import annotations

import json
import threading
from typing import Any

from openai import OpenAI

from digitalius.core.config import settings
from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.services.llm")


class LLMResponseError(RuntimeError):
    """The model answered, but not with a usable JSON object."""


# ── Singleton OpenAI client ─────────────────────────────────────────
_client_lock = threading.Lock()
_client_instance: OpenAI | None = None


def get_openai_client() -> OpenAI:
    """
    Return a module-level OpenAI client singleton.

    Raises RuntimeError when the API key is missing.
    """
    global _client_instance
    if _client_instance is not None:
        return _client_instance

    with _client_lock:
        if _client_instance is not None:
            return _client_instance

        if not settings.openai_api_key:
            raise RuntimeError("OpenAI API key not configured (OPENAI_API_KEY).")

        _client_instance = OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        logger.info("OpenAI client singleton initialized.")
        return _client_instance


def complete_json(
    *,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.2,
    max_tokens: int = 1500,
    client: Any | None = None,
) -> dict[str, Any]:
    """
    Run one chat completion in JSON mode and return the decoded object.

    Raises LLMResponseError when the reply is empty or not a JSON object;
    OpenAI errors propagate unchanged.
    """
    client = client or get_openai_client()
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        response_format={"type": "json_object"},
        temperature=temperature,
        max_tokens=max_tokens,
    )

    if not response.choices:
        raise LLMResponseError("completion returned no choices")

    raw = response.choices[0].message.content
    if not raw or not raw.strip():
        raise LLMResponseError("completion returned empty content")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"completion returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise LLMResponseError("completion JSON was not an object")
    return data
