from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY_SECONDS = 0.5


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for connection attempts refused by the server."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything a ConnectionManager needs besides the descriptor."""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ssl_cert_file: str = "~/.postgresql/postgresql.crt"
    ssl_key_file: str = "~/.postgresql/postgresql.key"
    session_gucs: tuple[tuple[str, str], ...] = ()
    application_name: str = "pgsession"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Target database
    DATABASE_URL: Optional[str] = None
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_NAME: str = Field(default="postgres")
    DATABASE_USER: str = Field(default="postgres")
    DATABASE_PASSWORD: str = Field(default="")
    DATABASE_SSL_MODE: str = Field(default="disable")
    DATABASE_TABLE_NAME: Optional[str] = None

    # Connection behaviour
    PG_CONNECT_MAX_ATTEMPTS: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    PG_CONNECT_RETRY_DELAY_SECONDS: float = Field(default=DEFAULT_RETRY_DELAY_SECONDS, ge=0)
    PG_SSL_CERT_FILE: str = "~/.postgresql/postgresql.crt"
    PG_SSL_KEY_FILE: str = "~/.postgresql/postgresql.key"
    PG_APPLICATION_NAME: str = "pgsession"
    PG_SESSION_GUCS: dict[str, str] = Field(default_factory=dict)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Optional path to a YAML config that can override/extend env
    CONFIG_YAML: Optional[str] = Field(default="config/settings.yaml")

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith(("postgresql://", "postgres://")):
            raise ValueError("DATABASE_URL must start with postgresql://")
        return value

    @field_validator("DATABASE_SSL_MODE")
    @classmethod
    def validate_ssl_mode(cls, value: str) -> str:
        allowed = {"disable", "try", "require", "prefer", "allow", "verify-ca", "verify-full"}
        if value.lower() not in allowed:
            raise ValueError(f"DATABASE_SSL_MODE must be one of {sorted(allowed)}")
        return value.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return value

    def descriptor(self):
        """Build the ConnectionDescriptor for the configured target."""
        from pgsession.db.descriptor import ConnectionDescriptor

        if self.DATABASE_URL:
            return ConnectionDescriptor.from_url(
                self.DATABASE_URL, table_name=self.DATABASE_TABLE_NAME
            )
        return ConnectionDescriptor(
            user=self.DATABASE_USER,
            password=self.DATABASE_PASSWORD,
            host=self.DATABASE_HOST,
            port=self.DATABASE_PORT,
            dbname=self.DATABASE_NAME,
            ssl_mode=self.DATABASE_SSL_MODE,
            table_name=self.DATABASE_TABLE_NAME,
        )

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            retry=RetryPolicy(
                max_attempts=self.PG_CONNECT_MAX_ATTEMPTS,
                delay_seconds=self.PG_CONNECT_RETRY_DELAY_SECONDS,
            ),
            ssl_cert_file=self.PG_SSL_CERT_FILE,
            ssl_key_file=self.PG_SSL_KEY_FILE,
            session_gucs=tuple(self.PG_SESSION_GUCS.items()),
            application_name=self.PG_APPLICATION_NAME,
        )


def load_settings() -> Settings:
    """Load Settings from env (.env) and optionally merge a YAML file for overrides.

    Environment variables always take precedence over YAML values.
    """
    base = Settings()  # loads from env/.env

    yaml_path = base.CONFIG_YAML
    if yaml_path and Path(yaml_path).exists():
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, dict):
            overrides: dict[str, Any] = {key.upper(): value for key, value in data.items()}
            # Only fields set from the environment beat the YAML file
            explicit = base.model_dump(include=base.model_fields_set)
            return Settings(**{**overrides, **explicit})

    return base


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the cached settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings() -> Settings:
    """Discard cached settings and load them again."""
    global _settings
    _settings = load_settings()
    return _settings
