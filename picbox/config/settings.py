from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typing import Self

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database import DatabaseConfig
from .dropbox import DropboxConfig
from .redis import RedisConfig

logger = logging.getLogger(__name__)


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    max_concurrent_submissions: int = Field(
        default=4, validation_alias="SYNC_MAX_CONCURRENT_SUBMISSIONS"
    )
    destination_dir: str = Field(default="/picbox", validation_alias="SYNC_DESTINATION_DIR")

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("max_concurrent_submissions", mode="before")
    @classmethod
    def _validate_max_concurrent(cls, value: Any) -> int:
        try:
            parsed = int(str(value or 4))
        except ValueError as exc:
            msg = "Max concurrent submissions must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 100:
            msg = "Max concurrent submissions must be between 1 and 100"
            raise ValueError(msg)
        return parsed

    @field_validator("destination_dir", mode="before")
    @classmethod
    def _validate_destination_dir(cls, value: Any) -> str:
        raw = str(value or "/picbox").strip()
        if not raw.startswith("/"):
            raw = f"/{raw}"
        return raw.rstrip("/") or "/"


def _env_names(field: FieldInfo) -> list[str]:
    alias = field.validation_alias
    if isinstance(alias, AliasChoices):
        names = [choice for choice in alias.choices if isinstance(choice, str)]
    else:
        names = [alias] if isinstance(alias, str) else []
    if field.alias:
        names.append(field.alias)
    return names


def _first_present(source: dict[str, Any], names: list[str]) -> str | None:
    return next((name for name in names if name in source), None)


@dataclass(frozen=True)
class AppConfig:
    dropbox: DropboxConfig
    redis: RedisConfig
    database: DatabaseConfig
    runtime: RuntimeConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env``.

    Nested models are populated by matching ``validation_alias`` on each field.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    dropbox: DropboxConfig = Field(default_factory=DropboxConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="before")
    @classmethod
    def _collect_sections(cls, data: Any) -> Any:
        """Group flat ``DROPBOX_*``/``REDIS_*``/``DB_*`` variables into sections.

        Keyword arguments passed to the constructor shadow ``os.environ``.
        """
        if not isinstance(data, dict):
            return data

        source = {**os.environ, **data}
        collected = dict(data)
        for section, model in _SECTIONS.items():
            values = {
                name: source[env_name]
                for name, field in model.model_fields.items()
                if (env_name := _first_present(source, _env_names(field))) is not None
            }
            if not values:
                continue
            explicit = collected.get(section)
            collected[section] = {**values, **explicit} if isinstance(explicit, dict) else values
        return collected

    @model_validator(mode="after")
    def _warn_missing_dropbox_app(self) -> Self:
        if not self.dropbox.client_id or not self.dropbox.client_secret:
            logger.warning(
                "dropbox_app_credentials_missing",
                extra={"hint": "set DROPBOX_CLIENT_ID and DROPBOX_CLIENT_SECRET"},
            )
        return self

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            dropbox=self.dropbox,
            redis=self.redis,
            database=self.database,
            runtime=self.runtime,
        )


_SECTIONS: dict[str, type[BaseModel]] = {
    "dropbox": DropboxConfig,
    "redis": RedisConfig,
    "database": DatabaseConfig,
    "runtime": RuntimeConfig,
}


def load_config(**overrides: Any) -> AppConfig:
    """Load application configuration from the environment and ``.env``.

    Raises:
        RuntimeError: If configuration validation fails.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc
    return settings.as_app_config()
