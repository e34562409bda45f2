"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mangekyo.api.v1.routes import cache, engines, sessions, translation
from mangekyo.config import configure_logging, settings
from mangekyo.core.translation.orchestrator import build_orchestrator
from mangekyo.models.database.base import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    configure_logging(settings.log_level)

    # Startup: Initialize database and wire the orchestrator
    await init_db()
    orchestrator = build_orchestrator(settings)
    await orchestrator.cache.warm_up()
    app.state.orchestrator = orchestrator
    logger.info(
        "Translation service ready: primary=%s, fallback=%s, cache=%s",
        settings.primary_engine,
        settings.fallback_engine,
        settings.cache_strategy,
    )

    yield

    # Shutdown: flush cache writes and save session context
    await orchestrator.close()


app = FastAPI(
    title=settings.app_name,
    description="Manga translation service with honorific and SFX handling",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(translation.router, prefix="/api/v1", tags=["translation"])
app.include_router(cache.router, prefix="/api/v1", tags=["cache"])
app.include_router(engines.router, prefix="/api/v1", tags=["engines"])
app.include_router(sessions.router, prefix="/api/v1", tags=["sessions"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Mangekyo Translator API", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
