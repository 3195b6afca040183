"""Gateway configuration via environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_database_url(url: str) -> str:
    """Rewrite a plain ``postgresql://`` URL to use the asyncpg driver."""
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- HTTP ---
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    SERVICE_NAME: str = "Session Gateway"
    CORS_ORIGINS: list[str] = ["*"]

    # --- Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # --- Credential storage (empty DATABASE_URL => file backend) ---
    DATABASE_URL: str = ""
    AUTH_DIR: str = "./auth_session"
    SESSION_ID: str = "default"

    # --- Reconnection ---
    MAX_RECONNECT_ATTEMPTS: int = 5
    RECONNECT_DELAY_SECONDS: float = 5.0

    # --- Messaging network ---
    DEFAULT_DOMAIN: str = "s.whatsapp.net"
    LOGGED_OUT_STATUS_CODE: int = 401
    PROTOCOL_CLIENT: str = ""
    BROWSER: list[str] = ["Session Gateway", "Chrome", "120.0.0"]
    SYNC_FULL_HISTORY: bool = False

    # --- Pairing code rendering ---
    QR_BOX_SIZE: int = 10
    QR_BORDER: int = 4

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _fix_pg_scheme(cls, v: str) -> str:
        return normalize_database_url(v) if isinstance(v, str) else v

    @field_validator("MAX_RECONNECT_ATTEMPTS")
    @classmethod
    def _positive_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_RECONNECT_ATTEMPTS must be at least 1")
        return v

    @field_validator("RECONNECT_DELAY_SECONDS")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("RECONNECT_DELAY_SECONDS cannot be negative")
        return v

    @field_validator("BROWSER")
    @classmethod
    def _browser_triple(cls, v: list[str]) -> list[str]:
        if len(v) != 3:
            raise ValueError("BROWSER must be [name, browser, version]")
        return v

    @property
    def uses_database(self) -> bool:
        return bool(self.DATABASE_URL)


settings = Settings()
