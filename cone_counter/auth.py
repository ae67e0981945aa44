"""
Bearer token verification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import firebase_admin
from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

from cone_counter.errors import Unauthenticated, UpstreamFailure

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Principal:
    uid: str
    email: str = ""
    display_name: str = ""


class TokenVerifier(Protocol):
    """Turns a bearer token into a principal or raises `Unauthenticated`."""

    def verify(self, token: str) -> Principal:
        ...


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens against Google's published signing keys."""

    def __init__(
        self, app: Optional[firebase_admin.App] = None, check_revoked: bool = False
    ):
        self.app = app
        self.check_revoked = check_revoked

    def verify(self, token: str) -> Principal:
        try:
            decoded = auth.verify_id_token(
                token, app=self.app, check_revoked=self.check_revoked
            )
        except auth.ExpiredIdTokenError as exc:
            raise Unauthenticated("expired_token", str(exc)) from exc
        except auth.RevokedIdTokenError as exc:
            raise Unauthenticated("revoked_token", str(exc)) from exc
        except auth.UserDisabledError as exc:
            raise Unauthenticated("disabled_user", str(exc)) from exc
        except auth.CertificateFetchError as exc:
            logger.exception("Could not fetch Firebase token signing keys")
            raise UpstreamFailure("verify_id_token", str(exc)) from exc
        except (auth.InvalidIdTokenError, auth.UserNotFoundError, ValueError) as exc:
            raise Unauthenticated("invalid_token", str(exc)) from exc
        except firebase_exceptions.FirebaseError as exc:
            # Revocation checks look the user up, which can fail upstream.
            logger.exception("Firebase token verification failed")
            raise UpstreamFailure("verify_id_token", str(exc)) from exc

        return Principal(
            uid=decoded["uid"],
            email=decoded.get("email") or "",
            display_name=decoded.get("name") or "",
        )


class StaticTokenVerifier:
    """Fixed token -> uid table for local development and tests."""

    def __init__(self, tokens: dict[str, str]):
        self.tokens = dict(tokens)

    def verify(self, token: str) -> Principal:
        uid = self.tokens.get(token)
        if uid is None:
            raise Unauthenticated("invalid_token", "unknown static token")
        return Principal(uid=uid)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthenticated("missing_token")
    token = authorization[len(BEARER_PREFIX) :].strip()
    if not token:
        raise Unauthenticated("missing_token")
    return token
