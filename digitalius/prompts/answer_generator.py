"""
Prompt templates for Stage 3: Answer generation.

The system prompt carries the formatting rules; the user prompt carries
the Answer Context (query, intent metadata, serialized results).
"""

from __future__ import annotations

from digitalius.schemas.response import AnswerContext


def build_system_prompt(long_listing_threshold: int) -> str:
    """Build the static system message (persona + formatting rules)."""
    return (
        "You are an AI assistant that analyzes internal court documents and answers "
        "user questions. Answer in Spanish. Your response must be clear, concise and "
        "well-formatted. Use ONLY the context provided; never use external sources "
        "or invent information.\n\n"
        "Output ONLY valid JSON with this schema:\n"
        '{ "answer": "markdown answer" }\n\n'
        "Rules:\n"
        "1. Format the answer using Markdown (lists, bold text).\n"
        "2. Always state the source: a **circular**, an **instructivo** or the "
        "**reglamento de expediente digital**. For example: \"Según la **Circular 05/20**...\" "
        "or \"El **artículo 25 del reglamento de expediente digital** establece que...\".\n"
        "3. Listings (search_info / search_latest / count_items with documents): summarize the "
        "documents as a list; for each item include its title (or number) and a brief summary. "
        "If 'link_de_acceso' is available render it as **[Ver documento](URL)**, never as a bare URL.\n"
        "4. If the context is just a number (a count), answer with a natural sentence. "
        "For example, for \"¿cuántos artículos tiene el reglamento?\" and context \"116\": "
        "\"El **reglamento de expediente digital** tiene un total de 116 artículos.\"\n"
        "5. If the document type is 'regulation' or the context mentions the reglamento, "
        "include the regulation link with the anchor text \"Ver reglamento completo\".\n"
        f"6. If the number of results is greater than {long_listing_threshold} and you do not "
        "list them all, end with: \"Se han encontrado más documentos que coinciden con su "
        "búsqueda. Puede ver la lista completa en la pestaña 'Documentos Fuente'.\"\n"
        "7. Instructivos de expediente digital have titles \"I\" + number (internal) or "
        "\"E\" + number (external), e.g. I141. A higher number means a more recent "
        "instructivo; mention it when the user asks for the latest versions.\n"
        "8. If the results are too broad or the question is ambiguous, ask for details, e.g.: "
        "\"Su búsqueda arrojó muchos resultados. ¿Podría especificar el año o el tema que le "
        "interesa para poder darle una respuesta más precisa?\"\n"
    )


def build_answer_prompt(context: AnswerContext) -> str:
    """Build the user message from the Answer Context."""
    sections = [
        f"## USER QUERY\n{context.query}",
        f"## DOCUMENT TYPE\n{context.document_type}",
        f"## USER INTENT\n{context.intent_kind}",
        f"## TOTAL RESULTS FOUND\n{context.results_count}",
    ]
    if context.regulation_link:
        sections.append(f"## REGULATION LINK\n{context.regulation_link}")
    sections.append(f"## CONTEXT FROM DATABASE\n{context.context}")
    return "\n\n".join(sections)
