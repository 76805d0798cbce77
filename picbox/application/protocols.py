"""Protocol definitions (ports) for the sync service.

Keeping these as Protocols isolates the sync orchestration from the concrete
Dropbox client, the source photo service and the credential store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from picbox.domain.models import JobPending, LikedMedia, SyncJob, UserRecord


class SaveUrlSubmitter(Protocol):
    async def save_url(self, job: SyncJob) -> JobPending: ...


class LikedMediaSource(Protocol):
    """Client for the source photo service."""

    async def fetch_liked(self, user: UserRecord) -> list[LikedMedia]: ...


class UserStore(Protocol):
    async def list_users(self, limit: int = ...) -> list[UserRecord]: ...

    async def remove_instagram_info(self, email: str) -> None: ...

    async def set_last_sync(self, user_id: int, timestamp: datetime) -> None: ...
