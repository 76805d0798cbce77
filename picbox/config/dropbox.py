from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class DropboxConfig(BaseModel):
    """Dropbox OAuth application and save_url job settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    client_id: str = Field(default="", validation_alias="DROPBOX_CLIENT_ID")
    client_secret: str = Field(default="", validation_alias="DROPBOX_CLIENT_SECRET")
    redirect_uri: str = Field(default="", validation_alias="DROPBOX_REDIRECT_URI")
    api_url: str = Field(
        default="https://api.dropboxapi.com/1",
        validation_alias="DROPBOX_API_URL",
        description="Base URL for account and save_url endpoints",
    )
    oauth_url: str = Field(
        default="https://api.dropbox.com/1/oauth2",
        validation_alias="DROPBOX_OAUTH_URL",
        description="Base URL for the token exchange endpoint",
    )
    authorize_url: str = Field(
        default="https://www.dropbox.com/1/oauth2/authorize",
        validation_alias="DROPBOX_AUTHORIZE_URL",
    )
    timeout_sec: float = Field(default=30.0, validation_alias="DROPBOX_TIMEOUT_SEC")
    save_url_max_retries: int = Field(default=5, validation_alias="DROPBOX_SAVE_URL_MAX_RETRIES")
    save_url_retry_delay_sec: float = Field(
        default=0.3,
        validation_alias="DROPBOX_SAVE_URL_RETRY_DELAY_SEC",
        description="Linear backoff step; the n-th retry waits n times this value",
    )

    @field_validator("client_id", "client_secret", "redirect_uri", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("api_url", "oauth_url", "authorize_url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any, info: ValidationInfo) -> str:
        default = cls.model_fields[info.field_name].default
        url = str(value or default).strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            msg = f"{info.field_name.replace('_', ' ').capitalize()} must be an http(s) URL"
            raise ValueError(msg)
        return url

    @field_validator("timeout_sec", "save_url_retry_delay_sec", mode="before")
    @classmethod
    def _validate_seconds(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = float(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid number"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 300:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} must be between 0 and 300"
            raise ValueError(msg)
        return parsed

    @field_validator("save_url_max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 5))
        except ValueError as exc:
            msg = "Save URL max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 20:
            msg = "Save URL max retries must be between 1 and 20"
            raise ValueError(msg)
        return parsed
