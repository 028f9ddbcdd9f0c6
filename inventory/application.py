"""Application factory. No business logic; only wiring and middleware."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from inventory.api.v1 import router as v1_router
from inventory.core.config import Settings, get_settings
from inventory.core.database import build_engine, build_session_factory
from inventory.core.errors import register_exception_handlers
from inventory.core.security import Clock, utc_now
from inventory.services.auth import AuthService
from inventory.services.bootstrap import initialize_database

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def create_app(
    settings: Settings | None = None,
    engine: Engine | None = None,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """
    Build the application and its long-lived collaborators.

    The AuthService and session factory are created once here and reached by
    request handlers through app.state; nothing is kept in module globals.
    """
    settings = settings or get_settings()
    engine = engine or build_engine(settings)
    session_factory = session_factory or build_session_factory(engine)
    auth_service = AuthService(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Permission policy and first admin must exist before any request is served.
        await run_in_threadpool(
            initialize_database, engine, session_factory, settings, auth_service.hasher
        )
        logger.info("Inventory API started (env=%s)", settings.APP_ENV)
        yield

    app = FastAPI(
        title="Inventory API",
        version=API_VERSION,
        description="Inventory management API: authentication, users and permissions.",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.auth_service = auth_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {
            "message": "Inventory API",
            "version": API_VERSION,
            "status": "running",
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app
