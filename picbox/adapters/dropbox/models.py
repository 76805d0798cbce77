"""Pydantic models for Dropbox API responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class DropboxToken(BaseModel):
    """Token exchange response.

    Sample: ``{"access_token": "ABCDEFG", "token_type": "bearer", "uid": "12345"}``
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    access_token: str
    token_type: str = "bearer"
    uid: str


class DropboxAccount(BaseModel):
    """Subset of the account info response that picbox reads."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    uid: str
    display_name: str | None = None
    email: str | None = None
