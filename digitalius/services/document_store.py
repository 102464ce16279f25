"""
MongoDB access for the three document collections.

One ``DocumentStore`` is built at process start and handed to the
dispatcher.  The underlying ``MongoClient`` (which owns the connection
pool) is created lazily on first use and released by ``close()`` at
shutdown, never per request.

pymongo is synchronous, so every read runs in the default thread
executor; concurrent fetches for different collections do not block
the event loop or each other.  Cancelling the awaiting task cannot stop
a thread, so each read also carries the request deadline: the driver
enforces it through ``pymongo.timeout`` and cursor draining checks it
between documents.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Iterable

import pymongo
from pymongo import DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from digitalius.core.config import settings
from digitalius.core.errors import StoreUnavailable, UpstreamServiceError
from digitalius.schemas.records import (
    DocumentKind,
    ARTICLES_FIELD,
)
from digitalius.utils.logging import get_logger
from digitalius.utils.timing import Deadline, current_deadline

logger = get_logger("digitalius.services.document_store")


def default_collection_names() -> dict[DocumentKind, str]:
    return {
        DocumentKind.NOTICE: settings.notices_collection,
        DocumentKind.INSTRUCTION: settings.instructions_collection,
        DocumentKind.REGULATION: settings.regulations_collection,
    }


class DocumentStore:
    """Pooled, read-only access to the notice / instruction / regulation collections."""

    def __init__(
        self,
        uri: str | None = None,
        database_name: str | None = None,
        *,
        client: Any | None = None,
        collection_names: dict[DocumentKind, str] | None = None,
    ):
        self._uri = uri if uri is not None else settings.mongodb_uri
        self._database_name = database_name or settings.mongodb_database_name
        self._client = client
        self._owns_client = client is None
        self._lock = threading.Lock()
        self.collection_names = collection_names or default_collection_names()

    # ── Lifecycle ───────────────────────────────────────────────────
    @property
    def client(self) -> Any:
        if self._client is not None:
            return self._client

        with self._lock:
            if self._client is not None:
                return self._client
            if not self._uri:
                raise StoreUnavailable(
                    "MongoDB URI not configured (MONGODB_URI)."
                )
            self._client = MongoClient(
                self._uri,
                maxPoolSize=settings.mongodb_max_pool_size,
                serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
                timeoutMS=settings.mongodb_timeout_ms,
            )
            logger.info("MongoDB client initialized (database=%s).", self._database_name)
            return self._client

    def close(self) -> None:
        """Release the connection pool.  Safe to call more than once."""
        with self._lock:
            if self._client is not None and self._owns_client:
                self._client.close()
                logger.info("MongoDB client closed.")
            if self._owns_client:
                self._client = None

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except (PyMongoError, StoreUnavailable) as e:
            logger.warning("MongoDB ping failed: %s", e)
            return False

    def collection(self, kind: DocumentKind) -> Any:
        return self.client[self._database_name][self.collection_names[kind]]

    # ── Reads ───────────────────────────────────────────────────────
    async def find(
        self,
        kind: DocumentKind,
        predicate: dict[str, Any],
        *,
        sort_field: str | None = None,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Documents matching ``predicate``, optionally newest-first by ``sort_field``."""

        def _sync_find(deadline: Deadline | None) -> list[dict[str, Any]]:
            cursor = self.collection(kind).find(predicate)
            if sort_field:
                cursor = cursor.sort(sort_field, DESCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return _drain(cursor, deadline)

        return await self._run(kind, "find", _sync_find)

    async def count(self, kind: DocumentKind, predicate: dict[str, Any]) -> int:
        """Number of documents matching ``predicate``."""

        def _sync_count(deadline: Deadline | None) -> int:
            return int(self.collection(kind).count_documents(predicate))

        return await self._run(kind, "count", _sync_count)

    async def count_articles(self, predicate: dict[str, Any]) -> int:
        """Number of individual articles (unwound) across matching regulation sections."""
        pipeline: list[dict[str, Any]] = []
        if predicate:
            pipeline.append({"$match": predicate})
        pipeline.extend([
            {"$unwind": f"${ARTICLES_FIELD}"},
            {"$group": {"_id": None, "total": {"$sum": 1}}},
        ])

        def _sync_aggregate(deadline: Deadline | None) -> int:
            rows = _drain(self.collection(DocumentKind.REGULATION).aggregate(pipeline), deadline)
            return int(rows[0]["total"]) if rows else 0

        return await self._run(DocumentKind.REGULATION, "count_articles", _sync_aggregate)

    async def _run(
        self,
        kind: DocumentKind,
        op: str,
        fn: Callable[[Deadline | None], Any],
    ) -> Any:
        deadline = current_deadline()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _within_deadline, fn, deadline)
        except PyMongoError as e:
            logger.error(
                "[STORE] %s on %s failed: %s", op, self.collection_names[kind], e,
            )
            raise StoreUnavailable(str(e)) from e


# ── Deadline enforcement (runs in the executor thread) ──────────────

def _within_deadline(fn: Callable[[Deadline | None], Any], deadline: Deadline | None) -> Any:
    if deadline is None:
        return fn(None)
    _check(deadline)
    with pymongo.timeout(deadline.remaining):
        return fn(deadline)


def _drain(cursor: Iterable[dict[str, Any]], deadline: Deadline | None) -> list[dict[str, Any]]:
    """Materialize a cursor, giving up as soon as the request deadline passes."""
    docs: list[dict[str, Any]] = []
    for doc in cursor:
        if deadline is not None:
            _check(deadline)
        docs.append(doc)
    return docs


def _check(deadline: Deadline) -> None:
    if deadline.expired:
        logger.warning("[STORE] Read aborted: request deadline exceeded")
        raise UpstreamServiceError("store read aborted: request deadline exceeded")
