"""
Pipeline Stage 2a: Intent → MongoDB filter document.

Conjunctive keywords, disjunctive fields: every keyword must match
somewhere in the document, not necessarily in the same field.  All
functions are pure (no I/O) and return fresh dicts on every call.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable

from digitalius.schemas.intent import DocumentType
from digitalius.schemas.records import (
    DocumentKind,
    NORMATIVE_TYPE_FIELD,
    NUMBER_FIELD,
    SUMMARY_FIELD,
    TOPIC_FIELD,
    KEYWORDS_FIELD,
    TITLE_FIELD,
    ISSUE_DATE_FIELD,
    SECTION_TITLE_FIELD,
    ARTICLES_FIELD,
    ARTICLE_SUMMARY_FIELD,
    ARTICLE_KEYWORDS_FIELD,
    AFFECTED_ENTITIES_FIELD,
)

Predicate = dict[str, Any]

# "06/20" style circular codes
NOTICE_NUMBER_PATTERN = re.compile(r"^\d{1,2}/\d{2}$")

NOTICE_TYPE_LABEL = "CIRCULAR"

SEARCH_FIELDS: dict[DocumentKind, tuple[str, ...]] = {
    DocumentKind.NOTICE: (
        NORMATIVE_TYPE_FIELD,
        NUMBER_FIELD,
        SUMMARY_FIELD,
        TOPIC_FIELD,
        KEYWORDS_FIELD,
        f"{AFFECTED_ENTITIES_FIELD}.nombre_entidad",
        f"{AFFECTED_ENTITIES_FIELD}.tipo",
        f"{AFFECTED_ENTITIES_FIELD}.tipo_entidad",
    ),
    DocumentKind.INSTRUCTION: (
        TITLE_FIELD,
        SUMMARY_FIELD,
        KEYWORDS_FIELD,
        NORMATIVE_TYPE_FIELD,
    ),
    DocumentKind.REGULATION: (
        SECTION_TITLE_FIELD,
        f"{ARTICLES_FIELD}.{ARTICLE_SUMMARY_FIELD}",
        f"{ARTICLES_FIELD}.{ARTICLE_KEYWORDS_FIELD}",
    ),
}


def kinds_for(document_type: DocumentType | DocumentKind | str) -> list[DocumentKind]:
    """Collection kinds covered by a document type ("all" → every kind)."""
    value = getattr(document_type, "value", document_type)
    if value == DocumentType.ALL.value:
        return list(DocumentKind)
    return [DocumentKind(value)]


def search_fields(document_type: DocumentType | DocumentKind | str) -> list[str]:
    """Ordered, de-duplicated text fields searched for a document type."""
    fields: list[str] = []
    for kind in kinds_for(document_type):
        for name in SEARCH_FIELDS[kind]:
            if name not in fields:
                fields.append(name)
    return fields


def find_notice_number(keywords: Iterable[str]) -> str | None:
    """First keyword shaped like a circular code ("6/20", "06/20"), if any."""
    for keyword in keywords:
        if NOTICE_NUMBER_PATTERN.match(keyword.strip()):
            return keyword.strip()
    return None


def compile_predicate(
    keywords: Iterable[str],
    document_type: DocumentType | DocumentKind | str,
    year: int | None = None,
) -> Predicate:
    """
    Build the filter for one collection kind (or "all").

    1. A circular code keyword overrides everything else for notices.
    2. One ``$or`` over the searchable fields per keyword, ANDed.
    3. Optional year clause, ANDed.
    An empty keyword list without a year yields ``{}`` (match all);
    refusing to dispatch that case is the orchestrator's job.
    """
    keywords = [k for k in keywords if k and k.strip()]
    kinds = kinds_for(document_type)
    covers_notices = DocumentKind.NOTICE in kinds

    number = find_notice_number(keywords)
    if number is not None and covers_notices:
        return {
            NORMATIVE_TYPE_FIELD: _contains(NOTICE_TYPE_LABEL),
            NUMBER_FIELD: number,
        }

    clauses: list[Predicate] = []

    fields = search_fields(document_type)
    for keyword in keywords:
        token = keyword.strip()
        clauses.append({"$or": [{field: _contains(token)} for field in fields]})

    if year is not None:
        clauses.append(_year_clause(year, covers_notices))

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _year_clause(year: int, covers_notices: bool) -> Predicate:
    year_long = str(year)
    year_short = year_long[-2:]

    date_range: Predicate = {"$gte": datetime(year, 1, 1)}
    if year < 9999:
        date_range["$lt"] = datetime(year + 1, 1, 1)

    options: list[Predicate] = [
        {ISSUE_DATE_FIELD: {"$regex": f"^{year_long}", "$options": "i"}},
        # Issue dates stored as BSON dates never match a regex
        {ISSUE_DATE_FIELD: date_range},
    ]
    if covers_notices:
        options.append({
            "$and": [
                {NORMATIVE_TYPE_FIELD: _contains(NOTICE_TYPE_LABEL)},
                {NUMBER_FIELD: {"$regex": f"/{year_short}$", "$options": "i"}},
            ]
        })
    return {"$or": options}


def _contains(text: str) -> Predicate:
    """Case-insensitive substring match; the text is matched literally."""
    return {"$regex": re.escape(text), "$options": "i"}
