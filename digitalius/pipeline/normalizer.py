"""
Pipeline Stage 2c: Deduplication and normalization of raw records.

Turns raw MongoDB documents into JSON-ready dicts:
  - first occurrence wins per identity (``str(_id)``)
  - ``None`` fields dropped, dates rendered as ISO-8601 strings
  - legacy ``link_acceso`` renamed to ``link_de_acceso``
  - comma-delimited keyword strings split into trimmed lists
  - article numbers coerced to ``str``

Every step is idempotent, so normalizing twice is a no-op.  Shapes the
normalizer does not recognise are passed through, never rejected.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Iterable

from bson import ObjectId

from digitalius.schemas.records import (
    DocumentKind,
    TaggedRecord,
    ID_FIELD,
    KEYWORDS_FIELD,
    LINK_FIELD,
    LEGACY_LINK_FIELD,
    AFFECTED_ENTITIES_FIELD,
    ARTICLES_FIELD,
    ARTICLE_NUMBER_FIELD,
    ARTICLE_KEYWORDS_FIELD,
)
from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.pipeline.normalizer")


def normalize_records(records: Iterable[TaggedRecord]) -> list[TaggedRecord]:
    """Deduplicate by identity, then normalize each record according to its kind."""
    seen: set[str] = set()
    normalized: list[TaggedRecord] = []
    duplicates = 0

    for record in records:
        identity = record.identity
        if identity:
            if identity in seen:
                duplicates += 1
                continue
            seen.add(identity)
        normalized.append(normalize_record(record))

    if duplicates:
        logger.info("[NORMALIZE] Dropped %d duplicate record(s)", duplicates)
    return normalized


def normalize_record(record: TaggedRecord) -> TaggedRecord:
    data = _clean_mapping(record.data)

    if ID_FIELD in data:
        data[ID_FIELD] = str(data[ID_FIELD])

    if LEGACY_LINK_FIELD in data:
        legacy = data.pop(LEGACY_LINK_FIELD)
        data.setdefault(LINK_FIELD, legacy)

    if KEYWORDS_FIELD in data:
        data[KEYWORDS_FIELD] = split_keywords(data[KEYWORDS_FIELD])

    _KIND_NORMALIZERS[record.kind](data)
    return TaggedRecord(kind=record.kind, data=data)


def split_keywords(value: Any) -> Any:
    """``"a, b ,c"`` → ``["a", "b", "c"]``; lists are trimmed; anything else is kept."""
    if isinstance(value, str):
        return [token.strip() for token in value.split(",") if token.strip()]
    if isinstance(value, list):
        return [item.strip() if isinstance(item, str) else item for item in value]
    return value


# ── Kind-specific normalizers ───────────────────────────────────────

def _normalize_notice(data: dict[str, Any]) -> None:
    entities = data.get(AFFECTED_ENTITIES_FIELD)
    if isinstance(entities, list):
        data[AFFECTED_ENTITIES_FIELD] = [
            _clean_mapping(e) if isinstance(e, dict) else e for e in entities
        ]


def _normalize_instruction(data: dict[str, Any]) -> None:
    return None


def _normalize_regulation(data: dict[str, Any]) -> None:
    articles = data.get(ARTICLES_FIELD)
    if not isinstance(articles, list):
        return
    cleaned = []
    for article in articles:
        if isinstance(article, dict):
            article = _clean_mapping(article)
            if ARTICLE_NUMBER_FIELD in article:
                article[ARTICLE_NUMBER_FIELD] = str(article[ARTICLE_NUMBER_FIELD])
            if ARTICLE_KEYWORDS_FIELD in article:
                article[ARTICLE_KEYWORDS_FIELD] = split_keywords(article[ARTICLE_KEYWORDS_FIELD])
        cleaned.append(article)
    data[ARTICLES_FIELD] = cleaned


_KIND_NORMALIZERS: dict[DocumentKind, Callable[[dict[str, Any]], None]] = {
    DocumentKind.NOTICE: _normalize_notice,
    DocumentKind.INSTRUCTION: _normalize_instruction,
    DocumentKind.REGULATION: _normalize_regulation,
}


# ── Helpers ─────────────────────────────────────────────────────────

def _clean_mapping(mapping: dict[str, Any]) -> dict[str, Any]:
    """Shallow copy without ``None`` values, with dates and ObjectIds stringified."""
    return {
        key: _to_json_scalar(value)
        for key, value in mapping.items()
        if value is not None
    }


def _to_json_scalar(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    return value
