"""
FastAPI application factory for the cone counter backend.

Run with: uvicorn --factory cone_counter.app:create_app
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from cone_counter.auth import TokenVerifier
from cone_counter.config import Settings, get_settings
from cone_counter.db import EventStore
from cone_counter.dependencies import build_event_store, build_token_verifier
from cone_counter.error_handlers import register_error_handlers
from cone_counter.normalize import normalize_local_fields
from cone_counter.routes import router
from cone_counter.service import Clock, utc_now

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    event_store: Optional[EventStore] = None,
    token_verifier: Optional[TokenVerifier] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.normalize_on_startup:
            normalize_local_fields(
                app.state.event_store, settings.tz, now=app.state.clock()
            )
        yield
        logger.info("Shutting down, closing event store")
        app.state.event_store.close()

    app = FastAPI(title="Cone Counter API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.clock = clock or utc_now
    app.state.event_store = event_store or build_event_store(settings)
    app.state.token_verifier = token_verifier or build_token_verifier(settings)
    logger.info("Local fields derived in timezone %s", settings.local_timezone)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    register_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app
