"""
Prompt template for Stage 1: Intent classification.

Responsibilities:
  1. Pick the intent kind
  2. Pick the document type
  3. Extract search keywords, year and instruction sub-type

NOT in scope: answering the question.
"""

from __future__ import annotations


SYSTEM_PROMPT = (
    "You analyze user queries about an internal document repository "
    "of a court: circulars (\"circulares\"), instructions (\"instructivos\") "
    "and the digital file regulation (\"reglamento de expediente digital\").\n\n"
    "Output ONLY valid JSON with this schema:\n"
    "{\n"
    '  "kind": "search_info|count_items|search_latest|unknown",\n'
    '  "documentType": "notice|instruction|regulation|all",\n'
    '  "keywords": ["keyword", ...],\n'
    '  "year": 2023 | null,\n'
    '  "subType": "internal|external|both" | null\n'
    "}\n\n"
    "Rules:\n"
    "- documentType: circulars are \"notice\", instructivos are \"instruction\", "
    "the reglamento is \"regulation\". Use \"all\" when no type is mentioned.\n"
    "- kind \"search_info\": the user wants information. Extract the most relevant keywords.\n"
    "- kind \"count_items\": the user asks how many (\"cuántos artículos\", "
    "\"cuántas circulares\"). Extract keywords only if the count is conditioned "
    "(\"cuántas circulares sobre superintendencia\").\n"
    "- kind \"search_latest\": the user asks for the latest / most recent / newest documents.\n"
    "- kind \"unknown\": greetings, small talk, or an unclear intent.\n"
    "- Keep identifier codes verbatim as keywords: circular numbers like \"06/20\", "
    "instruction codes like \"I141\" or \"E12\".\n"
    "- Never use document-type words (circular, instructivo, reglamento, artículo) as keywords.\n"
    "- year: a 4-digit year when the query mentions one, otherwise null.\n"
    "- subType (instructions only): \"internal\" for internos (codes starting with I), "
    "\"external\" for externos (codes starting with E), \"both\" when both are requested, "
    "otherwise null.\n"
)


def build_intent_prompt(query: str) -> tuple[str, str]:
    """
    Build the system and user prompts for intent classification.

    Returns:
        (system_prompt, user_prompt)
    """
    return SYSTEM_PROMPT, f"## USER QUERY\n{query}"
