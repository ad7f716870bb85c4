"""Attune API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery — anti-pattern)
    - Global error handlers map AttuneError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup via lifespan context manager

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py; main only registers them
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.routes import empathy, health, sessions, stages
from app.config import get_settings
from app.infrastructure.database import init_db
from app.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("Attune API started")
    yield
    logger.info("Attune API shutting down")


app = FastAPI(title="Attune API", version="0.1.0", lifespan=lifespan)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration (no convention-over-config)
app.include_router(health.router)
app.include_router(sessions.router)
app.include_router(stages.router)
app.include_router(empathy.router)

register_error_handlers(app)
