"""Academy Sessions API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map AcademyError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, identity provider, RTC transport and sweeper initialized on startup
      via the lifespan context manager, and torn down in reverse order

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Collaborators stored on app.state: routes reach them through api/deps, tests
      replace them with dependency_overrides
    - In-flight background signals drained on shutdown so RTC teardown is not lost
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy.api.error_handlers import register_error_handlers
from academy.api.routes import (
    approval_requests, classrooms, health, live_sessions, session_chat,
)
from academy.config import Settings, get_settings
from academy.infrastructure.background import background_signals
from academy.infrastructure.database import init_db
from academy.infrastructure.identity import HttpIdentityProvider, TrustedTokenIdentityProvider
from academy.infrastructure.observability import setup_logging
from academy.infrastructure.rtc_transport import HttpRoomTransport, LoggingRoomTransport
from academy.services.session_lifecycle import SessionLifecycle
from academy.services.session_sweeper import SessionSweeper

logger = logging.getLogger(__name__)


def build_identity_provider(settings: Settings):
    if settings.identity_provider == "http":
        return HttpIdentityProvider(
            settings.identity_service_url, settings.identity_timeout_seconds,
        )
    return TrustedTokenIdentityProvider()


def build_room_transport(settings: Settings):
    if settings.rtc_service_url:
        return HttpRoomTransport(settings.rtc_service_url, settings.rtc_timeout_seconds)
    return LoggingRoomTransport()


def build_sweeper(settings: Settings, session_scope, transport) -> SessionSweeper:
    grace = timedelta(minutes=settings.session_start_grace_minutes)
    return SessionSweeper(
        session_scope,
        lambda db: SessionLifecycle(db, transport=transport, grace=grace),
        interval_seconds=settings.session_sweep_interval_seconds,
        max_retries=settings.storage_max_retries,
        base_delay_ms=settings.storage_base_delay_ms,
        max_delay_ms=settings.storage_max_delay_ms,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    identity = build_identity_provider(settings)
    transport = build_room_transport(settings)
    sweeper = build_sweeper(settings, manager.session, transport)
    app.state.identity_provider = identity
    app.state.room_transport = transport
    app.state.sweeper = sweeper
    if settings.session_sweep_enabled:
        sweeper.start()
    logger.info("Academy sessions API started")
    yield
    logger.info("Academy sessions API shutting down")
    await sweeper.stop()
    await background_signals.drain()
    await transport.aclose()
    await identity.aclose()
    await manager.dispose()


app = FastAPI(
    title="Academy Sessions API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(classrooms.router)
app.include_router(approval_requests.router)
app.include_router(live_sessions.router)
app.include_router(session_chat.router)

register_error_handlers(app)
