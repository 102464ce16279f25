"""
Schemas for Stage 2 (Retrieval) output.

The three collections have divergent shapes, so a record is carried as
its raw document plus a ``kind`` tag.  The compiler and the normalizer
dispatch on the tag instead of sniffing for field presence.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DocumentKind(str, Enum):
    NOTICE = "notice"
    INSTRUCTION = "instruction"
    REGULATION = "regulation"


# ── Stored field names (shared by compiler, normalizer, synthesis) ──
ID_FIELD = "_id"
TITLE_FIELD = "titulo"
SUMMARY_FIELD = "resumen"
KEYWORDS_FIELD = "palabras_clave"
LINK_FIELD = "link_de_acceso"
LEGACY_LINK_FIELD = "link_acceso"
NORMATIVE_TYPE_FIELD = "tipo_normativa"
NUMBER_FIELD = "numero"
TOPIC_FIELD = "tema"
ISSUE_DATE_FIELD = "fecha_expedicion"
AFFECTED_ENTITIES_FIELD = "entidades_afectadas"
SECTION_TITLE_FIELD = "titulo_seccion"
ARTICLES_FIELD = "articulos"
ARTICLE_NUMBER_FIELD = "numero_articulo"
ARTICLE_SUMMARY_FIELD = "resumen_articulo"
ARTICLE_KEYWORDS_FIELD = "palabras_clave_articulo"


class TaggedRecord(BaseModel):
    """One stored document together with the collection kind it came from."""
    kind: DocumentKind
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def identity(self) -> str:
        return str(self.data.get(ID_FIELD, ""))

    @property
    def title(self) -> str | None:
        value = self.data.get(TITLE_FIELD) or self.data.get(SECTION_TITLE_FIELD)
        return value if isinstance(value, str) else None


class FetchResult(BaseModel):
    """
    Output of the dispatcher for one Intent.

    ``count`` is set only for count_items intents; ``records`` is then empty.
    """
    records: list[TaggedRecord] = Field(default_factory=list)
    count: int | None = None
    collections_searched: list[str] = Field(default_factory=list)
