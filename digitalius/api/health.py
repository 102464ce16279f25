"""
Health check endpoint for monitoring.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request):
    """Basic health check, plus a MongoDB ping when the store is configured."""
    store = getattr(request.app.state, "document_store", None)
    database = "unconfigured" if store is None else ("ok" if store.ping() else "unavailable")
    return {"status": "ok", "service": "digitalius", "database": database}
