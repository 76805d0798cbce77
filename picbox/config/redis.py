from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class RedisConfig(BaseModel):
    """Redis connection settings for the saved-media cache and counters."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str | None = Field(default=None, validation_alias="REDIS_URL")
    host: str = Field(default="127.0.0.1", validation_alias="REDIS_HOST")
    port: int = Field(default=6379, validation_alias="REDIS_PORT")
    db: int = Field(default=0, validation_alias="REDIS_DB")
    password: str | None = Field(default=None, validation_alias="REDIS_PASSWORD")
    prefix: str = Field(default="picbox", validation_alias="REDIS_PREFIX")
    socket_timeout: float = Field(default=5.0, validation_alias="REDIS_SOCKET_TIMEOUT")
    saved_media_max_entries: int | None = Field(
        default=None,
        validation_alias="REDIS_SAVED_MEDIA_MAX_ENTRIES",
        description="Keep only the most recent N saved ids per user. Unset means unbounded.",
    )

    @field_validator("url", "password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any, info: ValidationInfo) -> str | None:
        cleaned = str(value).strip() if value is not None else ""
        if len(cleaned) > 200:
            msg = f"Redis {info.field_name} is longer than 200 characters"
            raise ValueError(msg)
        return cleaned or None

    @field_validator("host", "prefix", mode="before")
    @classmethod
    def _require_token(cls, value: Any, info: ValidationInfo) -> str:
        if value in (None, ""):
            value = cls.model_fields[info.field_name].default
        text = str(value).strip()
        limit = 50 if info.field_name == "prefix" else 200
        if not text:
            msg = f"Redis {info.field_name} cannot be empty"
            raise ValueError(msg)
        if len(text) > limit or any(ch.isspace() for ch in text):
            msg = f"Redis {info.field_name} must be at most {limit} characters without whitespace"
            raise ValueError(msg)
        return text

    @field_validator("port", "db", mode="before")
    @classmethod
    def _bounded_int(cls, value: Any, info: ValidationInfo) -> int:
        if value in (None, ""):
            return int(cls.model_fields[info.field_name].default)
        try:
            number = int(str(value))
        except ValueError as exc:
            msg = f"Redis {info.field_name} must be an integer, got {value!r}"
            raise ValueError(msg) from exc
        if not 0 <= number <= 65535:
            msg = f"Redis {info.field_name} must be in 0..65535"
            raise ValueError(msg)
        return number

    @field_validator("socket_timeout", mode="before")
    @classmethod
    def _timeout(cls, value: Any) -> float:
        if value in (None, ""):
            return 5.0
        try:
            seconds = float(str(value))
        except ValueError as exc:
            msg = f"Redis socket timeout must be a number, got {value!r}"
            raise ValueError(msg) from exc
        if not 0 < seconds <= 60:
            msg = "Redis socket timeout must be in (0, 60] seconds"
            raise ValueError(msg)
        return seconds

    @field_validator("saved_media_max_entries", mode="before")
    @classmethod
    def _cap(cls, value: Any) -> int | None:
        if value in (None, "", 0, "0"):
            return None
        try:
            cap = int(str(value))
        except ValueError as exc:
            msg = f"Saved media max entries must be an integer, got {value!r}"
            raise ValueError(msg) from exc
        if not 0 < cap <= 1_000_000:
            msg = "Saved media max entries must be in 1..1000000, or 0 for unbounded"
            raise ValueError(msg)
        return cap
