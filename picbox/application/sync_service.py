"""Mirror a user's liked media into Dropbox.

For every liked item the service checks the saved-media cache, submits a
save_url job for new items, and only after Dropbox accepts the job records
the id as saved and bumps the counters.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import time
from typing import TYPE_CHECKING

from picbox.adapters.dropbox.retry import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    submit_with_retry,
)
from picbox.core.logging_utils import generate_correlation_id
from picbox.core.time_utils import utc_now
from picbox.domain.exceptions import (
    InvalidJobError,
    ProviderError,
    RetriesExhaustedError,
    TransientLockError,
)
from picbox.domain.models import SyncJob, SyncResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from picbox.application.protocols import LikedMediaSource, SaveUrlSubmitter, UserStore
    from picbox.core.backoff import Sleeper
    from picbox.domain.models import LikedMedia, UserRecord
    from picbox.infrastructure.cache import SavedCountStore, SavedMediaCache

logger = logging.getLogger(__name__)


class MediaSyncService:
    def __init__(
        self,
        saved_media: SavedMediaCache,
        counters: SavedCountStore,
        dropbox: SaveUrlSubmitter,
        users: UserStore,
        *,
        destination_dir: str = "/picbox",
        max_concurrent: int = 4,
        user_list_limit: int = 500,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._saved_media = saved_media
        self._counters = counters
        self._dropbox = dropbox
        self._users = users
        self.destination_dir = destination_dir
        self.max_concurrent = max_concurrent
        self.user_list_limit = user_list_limit
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def destination_path(self, item: LikedMedia) -> str:
        filename = item.filename.strip().lstrip("/") or item.media_id
        return posixpath.join(self.destination_dir, filename)

    async def sync_user(self, user: UserRecord, media: Iterable[LikedMedia]) -> SyncResult:
        """Submit every liked item not yet saved for ``user``.

        Provider failures are recorded per item in the result. Redis and
        credential store errors propagate once every item has settled.
        """
        correlation_id = generate_correlation_id()
        result = SyncResult(user_id=user.id, correlation_id=correlation_id)
        started = time.monotonic()

        if not user.dropbox_token:
            result.errors.append("Dropbox account is not connected")
            logger.info(
                "sync_skipped_no_dropbox",
                extra={"correlation_id": correlation_id, "user_id": user.id},
            )
            return result

        unique: dict[str, LikedMedia] = {}
        for item in media:
            unique.setdefault(item.media_id, item)

        token = user.dropbox_token
        sem = asyncio.Semaphore(self.max_concurrent)

        async def _process(item: LikedMedia) -> None:
            async with sem:
                await self._sync_item(user, token, item, result)

        outcomes = await asyncio.gather(
            *(_process(item) for item in unique.values()), return_exceptions=True
        )
        # every item has settled before a cache or counter failure surfaces
        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if failures:
            logger.error(
                "sync_user_aborted",
                extra={
                    "correlation_id": correlation_id,
                    "user_id": user.id,
                    "failures": len(failures),
                    "error": str(failures[0]),
                },
            )
            raise failures[0]
        await self._users.set_last_sync(user.id, utc_now())

        result.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            "sync_user_completed",
            extra={
                "correlation_id": correlation_id,
                "user_id": user.id,
                "submitted": result.items_submitted,
                "skipped": result.items_skipped,
                "failed": result.items_failed,
                "retries": result.retries_used,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    async def _sync_item(
        self, user: UserRecord, token: str, item: LikedMedia, result: SyncResult
    ) -> None:
        if await self._saved_media.contains(user.id, item.media_id):
            result.items_skipped += 1
            return

        job = SyncJob(
            access_token=token,
            path=self.destination_path(item),
            source_url=item.url,
        )
        try:
            pending = await submit_with_retry(
                self._dropbox,
                job,
                max_retries=self.max_retries,
                delay_step=self.retry_delay,
                sleep=self._sleep,
            )
        except (ProviderError, InvalidJobError) as exc:
            retryable = isinstance(exc, (TransientLockError, RetriesExhaustedError))
            result.record_error(f"{item.media_id}: {exc.message}", retryable=retryable)
            logger.warning(
                "sync_item_failed",
                extra={
                    "correlation_id": result.correlation_id,
                    "user_id": user.id,
                    "media_id": item.media_id,
                    "error_type": type(exc).__name__,
                    "error": exc.message,
                },
            )
            return
        finally:
            result.retries_used += job.retry_count

        await self._saved_media.insert(user.id, item.media_id)
        await self._counters.increment_user(user.id, 1)
        await self._counters.increment_total(1)
        result.items_submitted += 1
        result.job_ids.append(pending.job_id)

    async def sync_from_source(self, user: UserRecord, source: LikedMediaSource) -> SyncResult:
        media = await source.fetch_liked(user)
        return await self.sync_user(user, media)

    async def sync_all(
        self, source: LikedMediaSource, limit: int | None = None
    ) -> list[SyncResult]:
        """Sync every user that has both a source account and Dropbox connected."""
        results: list[SyncResult] = []
        for user in await self._users.list_users(limit or self.user_list_limit):
            if not user.instagram_token or not user.dropbox_token:
                continue
            results.append(await self.sync_from_source(user, source))
        return results

    async def seed_user(self, user_id: int, media_ids: Iterable[str]) -> None:
        """Mark the user's current likes as saved without submitting them.

        Replaces whatever the cache held, so only likes added afterwards are
        mirrored.
        """
        ids = list(media_ids)
        await self._saved_media.insert(user_id, ids, replace=True)
        logger.info("sync_baseline_seeded", extra={"user_id": user_id, "count": len(ids)})

    async def disconnect_source(self, user: UserRecord) -> None:
        """Forget the source account and its saved-media history."""
        await self._saved_media.clear(user.id)
        await self._users.remove_instagram_info(user.email)
        logger.info("source_disconnected", extra={"user_id": user.id})

    async def total_saved(self) -> int:
        return await self._counters.get_total()
