from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class DatabaseConfig(BaseModel):
    """Credential store location and reconnect policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str = Field(default="/data/picbox.db", validation_alias="DB_PATH")
    reconnect_max_attempts: int = Field(
        default=3,
        validation_alias="DB_RECONNECT_MAX_ATTEMPTS",
        description="Reconnect attempts before the store is reported unavailable",
    )
    reconnect_delay_sec: float = Field(
        default=1.0,
        validation_alias="DB_RECONNECT_DELAY_SEC",
        description="Pause between reconnect attempts",
    )
    user_list_limit: int = Field(default=500, validation_alias="DB_USER_LIST_LIMIT")

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        path = str(value or "/data/picbox.db").strip()
        if "\x00" in path:
            msg = "Database path contains invalid characters"
            raise ValueError(msg)
        return path

    @field_validator("reconnect_max_attempts", "user_list_limit", mode="before")
    @classmethod
    def _validate_positive_int(cls, value: Any, info: ValidationInfo) -> int:
        if value in (None, ""):
            return int(cls.model_fields[info.field_name].default)
        try:
            parsed = int(str(value))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        if parsed <= 0:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} must be positive"
            raise ValueError(msg)
        return parsed

    @field_validator("reconnect_delay_sec", mode="before")
    @classmethod
    def _validate_delay(cls, value: Any) -> float:
        if value in (None, ""):
            return 1.0
        try:
            parsed = float(str(value))
        except ValueError as exc:
            msg = "Database reconnect delay must be a valid number"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 60:
            msg = "Database reconnect delay must be between 0 and 60 seconds"
            raise ValueError(msg)
        return parsed
