import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from digitalius.core.config import settings
from digitalius.api.search import router as search_router
from digitalius.api.health import router as health_router
from digitalius.pipeline.dispatcher import CollectionDispatcher
from digitalius.pipeline.intent import OpenAIIntentClassifier
from digitalius.pipeline.orchestrator import QueryPipeline
from digitalius.pipeline.synthesis import OpenAIAnswerSynthesizer
from digitalius.services.document_store import DocumentStore
from digitalius.utils.logging import get_logger, setup_logging

logger = get_logger("digitalius.main")

app = FastAPI(
    title=settings.app_name,
    description="Digitalius: questions over circulars, instructivos and the digital file regulation",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router, prefix="/api/v1")
app.include_router(health_router, prefix="/api")


def build_pipeline(store: DocumentStore) -> QueryPipeline:
    """Wire the default collaborators around a shared DocumentStore."""
    return QueryPipeline(
        classifier=OpenAIIntentClassifier(),
        dispatcher=CollectionDispatcher(store),
        synthesizer=OpenAIAnswerSynthesizer(),
    )


@app.on_event("startup")
async def on_startup():
    """
    1. Initialize structured logging
    2. Build the process-wide DocumentStore (client connects lazily)
    3. Wire the query pipeline
    """
    setup_logging(logging.INFO if settings.environment == "development" else logging.WARNING)
    logger.info("Starting Digitalius Backend...")

    if not settings.mongodb_uri:
        logger.warning("MONGODB_URI is not set - store access will fail until configured")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set - every query will short-circuit")

    store = DocumentStore()
    app.state.document_store = store
    app.state.pipeline = build_pipeline(store)
    logger.info("[OK] Digitalius Backend started successfully")


@app.on_event("shutdown")
async def on_shutdown():
    """Release the MongoDB connection pool."""
    logger.info("Shutting down Digitalius Backend...")
    store = getattr(app.state, "document_store", None)
    if store is not None:
        store.close()
    logger.info("[OK] Shutdown complete")
