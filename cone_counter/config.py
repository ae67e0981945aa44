"""
Configuration and settings for the cone counter backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Keys the browser client needs to bootstrap Firebase Authentication.
FIREBASE_WEB_CONFIG_FIELDS = {
    "apiKey": "vite_firebase_api_key",
    "authDomain": "vite_firebase_auth_domain",
    "projectId": "vite_firebase_project_id",
    "storageBucket": "vite_firebase_storage_bucket",
    "messagingSenderId": "vite_firebase_messaging_sender_id",
    "appId": "vite_firebase_app_id",
}


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Local fields (date, time, weekday) are derived in this zone.
    local_timezone: str = Field(default="UTC")

    # Event storage
    event_store: Literal["memory", "sql", "firestore"] = Field(default="memory")
    database_url: Optional[str] = Field(default=None)
    normalize_on_startup: bool = Field(default=False)

    # Authentication
    auth_mode: Literal["firebase", "static"] = Field(default="firebase")
    # Development only: maps bearer tokens to user ids.
    static_tokens: dict[str, str] = Field(default_factory=dict)
    check_revoked_tokens: bool = Field(default=False)

    # Firebase Admin service account
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)
    firebase_private_key_id: Optional[str] = Field(default=None)
    firebase_client_id: Optional[str] = Field(default=None)
    firebase_client_cert_url: Optional[str] = Field(default=None)

    # Public web client config served by /firebase-config
    vite_firebase_api_key: Optional[str] = Field(default=None)
    vite_firebase_auth_domain: Optional[str] = Field(default=None)
    vite_firebase_project_id: Optional[str] = Field(default=None)
    vite_firebase_storage_bucket: Optional[str] = Field(default=None)
    vite_firebase_messaging_sender_id: Optional[str] = Field(default=None)
    vite_firebase_app_id: Optional[str] = Field(default=None)

    @field_validator("local_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("firebase_private_key")
    @classmethod
    def _unescape_private_key(cls, value: Optional[str]) -> Optional[str]:
        # Keys pasted into .env files usually carry literal "\n" sequences.
        if value:
            return value.replace("\\n", "\n")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.local_timezone)

    def firebase_web_config(self) -> dict[str, Optional[str]]:
        return {
            key: getattr(self, attr) for key, attr in FIREBASE_WEB_CONFIG_FIELDS.items()
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
