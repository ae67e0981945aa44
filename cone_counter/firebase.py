"""
Firebase Admin SDK initialization.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials

from cone_counter.config import Settings

logger = logging.getLogger(__name__)


def _service_account(settings: Settings) -> dict:
    return {
        "type": "service_account",
        "project_id": settings.firebase_project_id,
        "private_key_id": settings.firebase_private_key_id,
        "private_key": settings.firebase_private_key,
        "client_email": settings.firebase_client_email,
        "client_id": settings.firebase_client_id,
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
        "client_x509_cert_url": settings.firebase_client_cert_url,
    }


def initialize_firebase(settings: Settings) -> firebase_admin.App:
    """
    Return the default Firebase app, initializing it on first use.

    Uses the service account from settings when a client email and private
    key are configured, otherwise Application Default Credentials
    (GOOGLE_APPLICATION_CREDENTIALS or the metadata server).
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if settings.firebase_client_email and settings.firebase_private_key:
        credential = credentials.Certificate(_service_account(settings))
        source = "service account"
    else:
        credential = credentials.ApplicationDefault()
        source = "application default credentials"

    options = (
        {"projectId": settings.firebase_project_id}
        if settings.firebase_project_id
        else None
    )
    app = firebase_admin.initialize_app(credential, options)
    logger.info(
        "Firebase Admin SDK initialized (project=%s, credentials=%s)",
        settings.firebase_project_id or "<default>",
        source,
    )
    return app
