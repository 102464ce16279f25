"""
Pipeline Stage 2b: Collection dispatch.

Selects the collections for an Intent, compiles one predicate per
collection kind and runs the reads concurrently.  "Most recent"
intents bypass plain filtering: instructions are ranked by the code
in their title, circulars by issue date.

NO LLM calls.  Returns raw (un-normalized) tagged records.
"""

from __future__ import annotations

import asyncio
from typing import Any

from digitalius.core.config import settings
from digitalius.schemas.intent import Intent, IntentKind, DocumentType
from digitalius.schemas.records import (
    DocumentKind,
    FetchResult,
    TaggedRecord,
    TITLE_FIELD,
    ISSUE_DATE_FIELD,
)
from digitalius.pipeline.query_compiler import compile_predicate, kinds_for
from digitalius.pipeline.latest import prefixes_for, select_latest, title_regex_for
from digitalius.services.document_store import DocumentStore
from digitalius.utils.logging import get_logger

logger = get_logger("digitalius.pipeline.dispatcher")


class CollectionDispatcher:
    """Runs the store reads for one Intent against a shared DocumentStore."""

    def __init__(self, store: DocumentStore, *, latest_notices_limit: int | None = None):
        self.store = store
        self.latest_notices_limit = latest_notices_limit or settings.latest_notices_limit

    async def dispatch(self, intent: Intent) -> FetchResult:
        kinds = kinds_for(intent.document_type)
        searched = [self.store.collection_names[k] for k in kinds]

        if intent.kind == IntentKind.COUNT_ITEMS:
            total = await self.count(intent, kinds)
            logger.info("[DISPATCH] count over %s = %d", searched, total)
            return FetchResult(count=total, collections_searched=searched)

        if intent.kind == IntentKind.SEARCH_LATEST:
            records = await self.fetch_latest(intent)
        else:
            records = await self.fetch_matching(intent, kinds)

        logger.info("[DISPATCH] %s over %s → %d raw record(s)", intent.kind.value, searched, len(records))
        return FetchResult(records=records, collections_searched=searched)

    # ── search_info ─────────────────────────────────────────────────
    async def fetch_matching(
        self,
        intent: Intent,
        kinds: list[DocumentKind],
    ) -> list[TaggedRecord]:
        """One filtered read per kind, concurrently; results concatenated in kind order."""
        tasks = [
            self._find_tagged(kind, compile_predicate(intent.keywords, kind, intent.year))
            for kind in kinds
        ]
        results = await asyncio.gather(*tasks)
        return [record for batch in results for record in batch]

    # ── count_items ─────────────────────────────────────────────────
    async def count(self, intent: Intent, kinds: list[DocumentKind]) -> int:
        """Documents for circulars / instructions, unwound articles for the regulation."""
        tasks = []
        for kind in kinds:
            predicate = compile_predicate(intent.keywords, kind, intent.year)
            if kind == DocumentKind.REGULATION:
                tasks.append(self.store.count_articles(predicate))
            else:
                tasks.append(self.store.count(kind, predicate))
        counts = await asyncio.gather(*tasks)
        return sum(counts)

    # ── search_latest ───────────────────────────────────────────────
    async def fetch_latest(self, intent: Intent) -> list[TaggedRecord]:
        """
        Latest instructions (by title code) and/or latest circulars (by date).

        The regulation has no chronology and contributes nothing.
        """
        tasks = []
        if intent.document_type in (DocumentType.INSTRUCTION, DocumentType.ALL):
            tasks.append(self.latest_instructions(intent))
        if intent.document_type in (DocumentType.NOTICE, DocumentType.ALL):
            tasks.append(self.latest_notices(intent))
        if not tasks:
            logger.info("[DISPATCH] search_latest not applicable to %s", intent.document_type.value)
            return []

        results = await asyncio.gather(*tasks)
        return [record for batch in results for record in batch]

    async def latest_instructions(self, intent: Intent) -> list[TaggedRecord]:
        prefixes = prefixes_for(intent.sub_type)
        predicate = _and(
            {TITLE_FIELD: {"$regex": title_regex_for(prefixes)}},
            compile_predicate(intent.keywords, DocumentKind.INSTRUCTION, intent.year),
        )
        candidates = await self._find_tagged(DocumentKind.INSTRUCTION, predicate)
        latest = select_latest(candidates, prefixes)
        logger.info(
            "[LATEST] %d instruction candidate(s) for %s → %s",
            len(candidates), "/".join(prefixes), [r.title for r in latest],
        )
        return latest

    async def latest_notices(self, intent: Intent) -> list[TaggedRecord]:
        predicate = compile_predicate(intent.keywords, DocumentKind.NOTICE, intent.year)
        return await self._find_tagged(
            DocumentKind.NOTICE,
            predicate,
            sort_field=ISSUE_DATE_FIELD,
            limit=self.latest_notices_limit,
        )

    async def _find_tagged(
        self,
        kind: DocumentKind,
        predicate: dict[str, Any],
        **kwargs: Any,
    ) -> list[TaggedRecord]:
        docs = await self.store.find(kind, predicate, **kwargs)
        return [TaggedRecord(kind=kind, data=doc) for doc in docs]


def _and(*predicates: dict[str, Any]) -> dict[str, Any]:
    present = [p for p in predicates if p]
    if not present:
        return {}
    if len(present) == 1:
        return present[0]
    return {"$and": present}
