"""
Realty Chat - Main FastAPI Application.

Conversational real-estate assistant: answers questions from the property
and document corpus and captures leads over several turns.

Run with:
    uvicorn realty_chat.main:app --reload
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import acreate_client
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from realty_chat.agents.orchestrator import build_orchestrator
from realty_chat.api.v1.admin import router as admin_router
from realty_chat.api.v1.chat import router as chat_router
from realty_chat.config import get_settings
from realty_chat.constants import API_TITLE, API_VERSION
from realty_chat.logging_config import setup_logging
from realty_chat.middleware import RequestContextMiddleware
from realty_chat.services.embeddings import OpenAIEmbeddingProvider
from realty_chat.services.generation import OpenAIGenerationProvider
from realty_chat.services.history_store import InMemoryHistoryStore, SupabaseHistoryStore
from realty_chat.services.lead_store import InMemoryLeadStore, SupabaseLeadStore
from realty_chat.services.notification import LogNotificationSink, ResendNotificationSink
from realty_chat.services.openai_client import get_openai_client
from realty_chat.services.property_directory import (
    InMemoryPropertyDirectory,
    SupabasePropertyDirectory,
)
from realty_chat.services.vector_index import InMemoryVectorIndex, SupabaseVectorIndex

# Get settings before logging setup so we know the debug flag
settings = get_settings()

# Propagate LangSmith settings into os.environ so the SDK can find them.
# pydantic-settings reads .env into the Settings model but does NOT inject
# values into os.environ, which is where langsmith and openai_client.py look.
if settings.langchain_tracing_v2 and settings.langsmith_api_key:
    os.environ["LANGCHAIN_TRACING_V2"] = "true"
    os.environ["LANGSMITH_API_KEY"] = settings.langsmith_api_key
    os.environ["LANGSMITH_PROJECT"] = settings.langsmith_project

# Configure logging
setup_logging(settings.debug)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler for startup and shutdown."""
    logger.info("api_startup", cors_origins=settings.cors_origins)

    supabase_client: AsyncSupabaseClient | None = None
    if settings.supabase_url and settings.supabase_secret_key:
        try:
            supabase_client = await acreate_client(
                settings.supabase_url,
                settings.supabase_secret_key,
            )
            logger.info("supabase_configured")
        except Exception as e:
            logger.warning("supabase_init_failed", error=str(e))
    else:
        logger.warning("supabase_not_configured", detail="Using in-memory stores")

    tables = settings.tables
    if supabase_client is not None:
        lead_store = SupabaseLeadStore(supabase_client, tables.leads)
        history_store = SupabaseHistoryStore(supabase_client, tables.chat_history)
        directory = SupabasePropertyDirectory(supabase_client, tables.properties)
        index = SupabaseVectorIndex(supabase_client, tables.documents, tables.match_rpc)
    else:
        lead_store = InMemoryLeadStore()
        history_store = InMemoryHistoryStore()
        directory = InMemoryPropertyDirectory()
        index = InMemoryVectorIndex()

    if settings.resend_api_key and settings.lead_notification_to:
        notifier = ResendNotificationSink(
            settings.resend_api_key,
            settings.lead_notification_to,
            settings.lead_notification_from,
            config=settings.notification,
        )
        logger.info("lead_notifications_enabled")
    else:
        notifier = LogNotificationSink()
        logger.warning("resend_not_configured", detail="Leads will only be logged")

    openai_client = get_openai_client(settings.openai_api_key)
    embedder = OpenAIEmbeddingProvider(openai_client, settings.openai_config.embedding_model)
    generator = OpenAIGenerationProvider(openai_client, settings.openai_config.chat_model)

    _app.state.supabase = supabase_client
    _app.state.embedder = embedder
    _app.state.vector_index = index
    _app.state.property_directory = directory
    _app.state.orchestrator = build_orchestrator(
        settings,
        embedder=embedder,
        generator=generator,
        index=index,
        directory=directory,
        lead_store=lead_store,
        history_store=history_store,
        notifier=notifier,
    )

    logger.info("services_initialized")

    yield

    if isinstance(notifier, ResendNotificationSink):
        await notifier.close()
    await openai_client.close()
    logger.info("api_shutdown")


# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description=(
        "Conversational real-estate assistant: property search, document "
        "questions and lead capture."
    ),
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Request context middleware must come before CORS so every response gets
# the X-Request-ID header (including preflight OPTIONS responses).
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(chat_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "description": "Conversational real-estate assistant",
        "docs": "/docs",
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}
