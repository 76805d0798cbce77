"""Domain models shared by the sync core."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field


@dataclass
class SyncJob:
    """One save_url submission.

    ``retry_count`` is advanced only by the retry policy and carried across
    attempts for the same job.
    """

    access_token: str
    path: str
    source_url: str
    retry_count: int = 0


@dataclass(frozen=True)
class JobPending:
    """Provider accepted the job for asynchronous processing."""

    job_id: str
    status: str = "PENDING"


@dataclass(frozen=True)
class LikedMedia:
    """A liked item reported by the source photo service."""

    media_id: str
    url: str
    filename: str


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    instagram_id: str | None = None
    instagram_token: str | None = None
    dropbox_id: str | None = None
    dropbox_token: str | None = None
    last_sync: datetime | None = None


class SyncResult(BaseModel):
    """Outcome of syncing one user's liked media."""

    user_id: int
    correlation_id: str | None = None
    items_submitted: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    retries_used: int = 0
    job_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    retryable_errors: list[str] = Field(default_factory=list)
    permanent_errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    def record_error(self, message: str, retryable: bool) -> None:
        self.items_failed += 1
        if message not in self.errors:
            self.errors.append(message)
        if retryable:
            self.retryable_errors.append(message)
        else:
            self.permanent_errors.append(message)
