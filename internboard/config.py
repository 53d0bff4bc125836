from __future__ import annotations

import os
from typing import Any, List, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Process-wide settings read once from the environment and ``.env``."""

    # Token secrets and lifespans have no defaults: the runtime refuses to start without them.
    access_token_secret: Optional[str] = env_field(None, "ACCESS_TOKEN_SECRET")
    refresh_token_secret: Optional[str] = env_field(None, "REFRESH_TOKEN_SECRET")
    access_token_lifespan_minutes: Optional[int] = env_field(
        None,
        "ACCESS_TOKEN_LIFESPAN_MINUTES",
        description="Access token lifetime in minutes",
    )
    refresh_token_lifespan_minutes: Optional[int] = env_field(
        None,
        "REFRESH_TOKEN_LIFESPAN_MINUTES",
        description="Refresh token lifetime in minutes, also the refresh record expiry",
    )
    jwt_algorithm: str = env_field("HS256", "JWT_ALGORITHM")

    database_url: str = env_field(
        "postgresql://localhost:5432/internboard", "DATABASE_URL"
    )
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Deterministic behaviour for CI; allows the memory store",
    )

    refresh_cookie_name: str = env_field("refreshToken", "REFRESH_COOKIE_NAME")
    refresh_cookie_path: str = env_field("/api/auth/refresh", "REFRESH_COOKIE_PATH")
    refresh_cookie_secure: bool = env_field(True, "REFRESH_COOKIE_SECURE")
    cors_allow_origins: List[str] = env_field([], "CORS_ALLOW_ORIGINS")
    post_owner_allow_missing: bool = env_field(
        True,
        "POST_OWNER_ALLOW_MISSING",
        description="Let the post ownership guard pass when the post does not exist",
    )
    build_sha: str = env_field("dev", "BUILD_SHA")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("access_token_secret", "refresh_token_secret", mode="before")
    @classmethod
    def _blank_secret_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "access_token_lifespan_minutes", "refresh_token_lifespan_minutes", mode="before"
    )
    @classmethod
    def _blank_lifespan_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value)


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
