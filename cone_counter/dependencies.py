"""
Dependency wiring for the FastAPI app.

`build_*` functions construct the long-lived handles once, in the app
factory. Request-time dependencies read them back from `app.state`, so
there is no module-level client and tests can pass their own handles.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Header, Request

from cone_counter.auth import (
    FirebaseTokenVerifier,
    Principal,
    StaticTokenVerifier,
    TokenVerifier,
    extract_bearer_token,
)
from cone_counter.config import Settings
from cone_counter.db import EventStore, InMemoryEventStore, SqlEventStore
from cone_counter.service import EventService

logger = logging.getLogger(__name__)


def build_event_store(settings: Settings) -> EventStore:
    if settings.event_store == "sql":
        logger.info("Using SQL event store")
        return SqlEventStore(settings.database_url or "")
    if settings.event_store == "firestore":
        from cone_counter.firebase import initialize_firebase
        from cone_counter.firestore_db import FirestoreEventStore

        logger.info("Using Firestore event store")
        return FirestoreEventStore(app=initialize_firebase(settings))
    logger.info("Using in-memory event store")
    return InMemoryEventStore()


def build_token_verifier(settings: Settings) -> TokenVerifier:
    if settings.auth_mode == "static":
        logger.warning(
            "Static token authentication enabled (%d tokens); do not use in production",
            len(settings.static_tokens),
        )
        return StaticTokenVerifier(settings.static_tokens)

    from cone_counter.firebase import initialize_firebase

    return FirebaseTokenVerifier(
        app=initialize_firebase(settings),
        check_revoked=settings.check_revoked_tokens,
    )


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_event_service(request: Request) -> EventService:
    state = request.app.state
    return EventService(state.event_store, state.settings.tz, state.clock)


def get_current_principal(
    request: Request, authorization: Optional[str] = Header(default=None)
) -> Principal:
    """
    Resolve the bearer token to a principal, recording the user on first sight.
    """
    token = extract_bearer_token(authorization)
    principal = request.app.state.token_verifier.verify(token)
    get_event_service(request).register_user(
        principal.uid, principal.email, principal.display_name
    )
    return principal
