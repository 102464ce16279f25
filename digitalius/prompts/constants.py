"""
Centralized user-facing messages and greeting vocabulary.

Every terminal answer the pipeline produces without calling the
synthesis model lives here.
"""

from __future__ import annotations


ASSISTANT_NAME = "Digitalius"


# ── Fixed terminal answers ──────────────────────────────────────────
GREETING_ANSWER = (
    f"¡Hola! Soy {ASSISTANT_NAME}, tu asistente de IA para la búsqueda de "
    "documentos. ¿En qué puedo ayudarte hoy?"
)

CANNOT_HELP_ANSWER = (
    "No estoy seguro de cómo ayudar con eso. Por favor, intente una consulta "
    "diferente o más específica."
)

NO_RESULTS_ANSWER = "No se encontraron documentos que coincidan con su búsqueda."

EMPTY_SYNTHESIS_ANSWER = (
    "No pude generar una respuesta basada en los documentos proporcionados."
)

UPSTREAM_ERROR_ANSWER = (
    "El servicio de respuestas no está disponible en este momento. "
    "Por favor, intente nuevamente en unos minutos."
)

STORE_ERROR_ANSWER = (
    "No se pudo acceder a la base de documentos. "
    "Por favor, intente nuevamente más tarde."
)


# ── Greeting detection ──────────────────────────────────────────────
GREETING_TOKENS: tuple[str, ...] = (
    "hola",
    "buenos días",
    "buenos dias",
    "buenas tardes",
    "buenas noches",
    "buenas",
    "saludos",
    "hello",
    "hi",
)
