"""
Error hierarchy for the cone counter API.

Every error carries a machine-readable code, an HTTP status, a
human-readable message and an optional internal detail string. The
global handlers in `cone_counter.error_handlers` turn them into the JSON
envelope returned by `to_response()`.
"""

from __future__ import annotations

from typing import Optional


class ConeCounterError(Exception):
    """Base exception for all domain and infrastructure failures."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = 500,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.detail = detail

    def to_response(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "detail": self.detail,
            }
        }


# ─── Client errors (400-level) ──────────────────────────────────


class Unauthenticated(ConeCounterError):
    """Missing, malformed, expired or otherwise rejected bearer token."""

    MESSAGES = {
        "missing_token": "No token provided",
        "invalid_token": "Invalid token",
        "expired_token": "Token has expired",
        "revoked_token": "Token has been revoked",
        "disabled_user": "User account is disabled",
    }

    def __init__(self, reason: str = "invalid_token", detail: Optional[str] = None):
        super().__init__(
            self.MESSAGES.get(reason, "Invalid token"), reason, 401, detail
        )
        self.reason = reason


class NotFound(ConeCounterError):
    """The id does not resolve for the calling owner.

    Events owned by someone else raise this too, so callers cannot test
    for the existence of other users' data.
    """

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found", "not_found", 404, resource_id)


class InvalidInput(ConeCounterError):
    """Malformed request payload or parameter."""

    def __init__(
        self, message: str, detail: Optional[str] = None, code: str = "invalid_input"
    ):
        super().__init__(message, code, 400, detail)


class InvalidInstant(InvalidInput):
    """A value could not be parsed as a point in time."""

    def __init__(self, value: object):
        super().__init__(
            "Invalid timestamp", detail=repr(value), code="invalid_instant"
        )
        self.value = value


# ─── Server errors (500-level) ──────────────────────────────────


class UpstreamFailure(ConeCounterError):
    """The persistence layer or identity provider call failed."""

    def __init__(self, operation: str, detail: Optional[str] = None):
        super().__init__(
            "Upstream service unavailable, please retry",
            "upstream_failure",
            502,
            f"{operation}: {detail}" if detail else operation,
        )
        self.operation = operation


class NormalizationError(UpstreamFailure):
    """Local field normalization stopped part way through.

    `updated` holds the number of records that were committed before the
    failure. Re-running the normalization is safe.
    """

    def __init__(self, updated: int, detail: Optional[str] = None):
        super().__init__("normalize_local_fields", detail)
        self.code = "normalization_failed"
        self.updated = updated

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["updated"] = self.updated
        return response


class ConfigurationIncomplete(ConeCounterError):
    """Required configuration values are missing on the server."""

    def __init__(self, missing: list[str]):
        super().__init__(
            "Firebase configuration incomplete",
            "config_incomplete",
            500,
            ", ".join(missing),
        )
        self.missing = missing

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["missing"] = self.missing
        return response
