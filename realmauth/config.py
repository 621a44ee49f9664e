from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from realmauth.logging import get_logger

logger = get_logger(__name__)


class StoreBackend(str, Enum):
    """Backing store implementations the runtime can build."""

    MEMORY = "memory"
    REDIS = "redis"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for identifiers, stores and authenticators."""

    storage_identity_key: str = env_field(
        "IDENTITY",
        "STORAGE_IDENTITY_KEY",
        description="Fixed key prefix combined with the realm to scope identity storage",
    )
    default_realm: str = env_field("default", "DEFAULT_REALM")
    store_backend: StoreBackend = env_field(StoreBackend.MEMORY, "STORE_BACKEND")
    redis_url: str | None = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_socket_timeout: float = env_field(5.0, "REDIS_SOCKET_TIMEOUT")
    session_ttl_seconds: int = env_field(
        24 * 60 * 60,
        "SESSION_TTL_SECONDS",
        description="Expiry applied to realm namespaces by stores that support it",
    )
    allow_store_fallback: bool = env_field(
        False,
        "ALLOW_STORE_FALLBACK",
        description="Fall back to the in-memory store when Redis is unreachable",
    )
    allow_unfulfilled_identity: bool = env_field(
        False,
        "ALLOW_UNFULFILLED_IDENTITY",
        description="Accept unfulfilled identities in set_identity and fail at sign-in instead",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("store_backend")
    @classmethod
    def _validate_backend(cls, value: StoreBackend) -> StoreBackend:
        return StoreBackend(value)

    @field_validator("storage_identity_key", "default_realm")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("session_ttl_seconds")
    @classmethod
    def _validate_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("session_ttl_seconds must be positive")
        return value


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
        logger.debug(
            "settings_loaded",
            store_backend=_settings_cache.store_backend.value,
            default_realm=_settings_cache.default_realm,
        )
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
