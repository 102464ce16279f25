"""
Schema for Stage 1 (Query Understanding) output.

Intent is the single structured object that flows from the classifier
into the compiler and dispatcher.  It is frozen once built; the only
way in from an untrusted payload is ``Intent.from_payload`` which never
raises and degrades to ``kind=unknown`` when the payload is unusable.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class IntentKind(str, Enum):
    SEARCH_INFO = "search_info"
    COUNT_ITEMS = "count_items"
    SEARCH_LATEST = "search_latest"
    UNKNOWN = "unknown"


class DocumentType(str, Enum):
    NOTICE = "notice"
    INSTRUCTION = "instruction"
    REGULATION = "regulation"
    ALL = "all"


class SubType(str, Enum):
    """Instruction scope: coded "I" (internal) or "E" (external) in titles."""
    INTERNAL = "internal"
    EXTERNAL = "external"
    BOTH = "both"


# ── Aliases accepted from the classifier (Spanish and legacy names) ─
_KIND_ALIASES: dict[str, IntentKind] = {k.value: k for k in IntentKind}

_DOCUMENT_TYPE_ALIASES: dict[str, DocumentType] = {
    "notice": DocumentType.NOTICE,
    "notices": DocumentType.NOTICE,
    "circular": DocumentType.NOTICE,
    "circulares": DocumentType.NOTICE,
    "instruction": DocumentType.INSTRUCTION,
    "instructions": DocumentType.INSTRUCTION,
    "instructivo": DocumentType.INSTRUCTION,
    "instructivos": DocumentType.INSTRUCTION,
    "regulation": DocumentType.REGULATION,
    "reglamento": DocumentType.REGULATION,
    "reglamentos": DocumentType.REGULATION,
    "all": DocumentType.ALL,
    "todos": DocumentType.ALL,
}

_SUB_TYPE_ALIASES: dict[str, SubType] = {
    "internal": SubType.INTERNAL,
    "interno": SubType.INTERNAL,
    "i": SubType.INTERNAL,
    "external": SubType.EXTERNAL,
    "externo": SubType.EXTERNAL,
    "e": SubType.EXTERNAL,
    "both": SubType.BOTH,
    "ambos": SubType.BOTH,
}


class Intent(BaseModel):
    """Structured interpretation of a free-text query."""
    kind: IntentKind = IntentKind.UNKNOWN
    document_type: DocumentType = Field(DocumentType.ALL, alias="documentType")
    keywords: tuple[str, ...] = ()
    year: int | None = None
    sub_type: SubType | None = Field(None, alias="subType")

    class Config:
        frozen = True
        populate_by_name = True

    @property
    def has_search_terms(self) -> bool:
        return bool(self.keywords) or self.year is not None

    @classmethod
    def unknown(cls) -> "Intent":
        return cls(kind=IntentKind.UNKNOWN)

    @classmethod
    def from_payload(cls, payload: Any) -> "Intent":
        """
        Coerce a classifier payload into an Intent.

        Accepts ``intent`` as a synonym of ``kind`` and
        ``instructivoType`` as a synonym of ``subType``.  Unknown
        values fall back to the defaults instead of raising.
        """
        if not isinstance(payload, dict):
            return cls.unknown()

        kind = _lookup(_KIND_ALIASES, payload.get("kind", payload.get("intent")))
        if kind is None:
            return cls.unknown()

        document_type = _lookup(
            _DOCUMENT_TYPE_ALIASES,
            payload.get("documentType", payload.get("document_type")),
        ) or DocumentType.ALL

        sub_type = _lookup(
            _SUB_TYPE_ALIASES,
            payload.get(
                "subType",
                payload.get("sub_type", payload.get("instructivoType")),
            ),
        )

        return cls(
            kind=kind,
            document_type=document_type,
            keywords=_coerce_keywords(payload.get("keywords")),
            year=_coerce_year(payload.get("year")),
            sub_type=sub_type,
        )


def _lookup(aliases: dict[str, Any], raw: Any) -> Any:
    if not isinstance(raw, str):
        return None
    return aliases.get(raw.strip().lower())


def _coerce_keywords(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        return ()
    keywords: list[str] = []
    for item in raw:
        if not isinstance(item, (str, int)):
            continue
        token = str(item).strip()
        if token and token not in keywords:
            keywords.append(token)
    return tuple(keywords)


def _coerce_year(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if isinstance(raw, int) and 1000 <= raw <= 9999:
        return raw
    return None
