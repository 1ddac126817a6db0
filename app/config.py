"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ReelWatch", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")
    watch_region: str = Field(default="US", alias="WATCH_REGION")
    trending_window: Literal["day", "week"] = Field(
        default="week", alias="TRENDING_WINDOW"
    )

    jwt_secret: str | None = Field(default=None, alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expiry_seconds: int | None = Field(
        default=None, alias="JWT_EXPIRY_SECONDS", ge=60
    )
    password_hash_rounds: int = Field(
        default=12, alias="PASSWORD_HASH_ROUNDS", ge=4, le=31
    )

    cors_origins_raw: str = Field(default="*", alias="CORS_ORIGINS")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./reelwatch.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", "jwt_secret", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        """Treat blank secrets as unset so callers fail closed."""

        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("jwt_expiry_seconds", mode="before")
    @classmethod
    def _parse_optional_int(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cors_origins_raw", mode="before")
    @classmethod
    def _join_origins(cls, value: object) -> str:
        """Accept a comma separated string or an iterable of origins."""

        if value is None:
            return "*"
        if isinstance(value, str):
            return value
        if isinstance(value, Iterable):
            return ",".join(str(part) for part in value)
        raise TypeError("CORS_ORIGINS must be a string or iterable of strings")

    @property
    def cors_origins(self) -> tuple[str, ...]:
        """Return the de-duplicated list of allowed browser origins."""

        cleaned: list[str] = []
        for entry in self.cors_origins_raw.split(","):
            origin = entry.strip().rstrip("/")
            if origin and origin not in cleaned:
                cleaned.append(origin)
        return tuple(cleaned) or ("*",)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
