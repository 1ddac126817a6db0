"""Pydantic models describing request and response payloads."""

from __future__ import annotations

from typing import Any, Literal, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ItemKind = Literal["movie", "tv"]


class WatchlistEntry(BaseModel):
    """A tracked ``(id, type)`` pair; equality is on both fields."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    item_id: int = Field(
        validation_alias=AliasChoices("id", "item_id"),
        serialization_alias="id",
        ge=1,
    )
    item_kind: ItemKind = Field(
        validation_alias=AliasChoices("type", "item_kind"),
        serialization_alias="type",
    )

    @field_validator("item_id", mode="before")
    @classmethod
    def _reject_bool(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("id must be an integer")
        return value

    @property
    def key(self) -> tuple[int, str]:
        return self.item_id, self.item_kind

    def to_payload(self) -> dict[str, Any]:
        """Return the wire representation ``{"id": ..., "type": ...}``."""

        return self.model_dump(by_alias=True)


class SignupPayload(BaseModel):
    name: str | None = None
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, value: object) -> object:
        if isinstance(value, str):
            return normalise_email(value)
        return value


class LoginPayload(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, value: object) -> object:
        if isinstance(value, str):
            return normalise_email(value)
        return value


class AuthResult(BaseModel):
    """Token and display name returned after signup or login."""

    token: str
    name: str


class CatalogQuery(BaseModel):
    """Browse filters accepted by ``GET /api/movies``."""

    content_type: ItemKind = Field(
        default="movie", validation_alias=AliasChoices("type", "content_type")
    )
    page: int = Field(default=1, ge=1, le=500)
    search: str | None = None
    genre: int | None = None
    rating: float | None = Field(default=None, ge=0, le=10)
    language: str | None = None
    mood: str | None = None

    @field_validator("search", "language", "mood", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("genre", "rating", mode="before")
    @classmethod
    def _parse_optional_number(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("mood", mode="after")
    @classmethod
    def _lower_mood(cls, value: str | None) -> str | None:
        return value.lower() if value else value

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "CatalogQuery":
        return cls.model_validate(dict(params))


def normalise_email(value: str) -> str:
    """Return the canonical form used to key accounts."""

    return value.strip().lower()


def default_display_name(email: str) -> str:
    """Derive a display name from the local part of an email address."""

    local, _, _ = email.partition("@")
    return local or email
