from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from picbox.adapters.dropbox.client import DropboxClient
from picbox.application.sync_service import MediaSyncService
from picbox.config import AppConfig, load_config
from picbox.core.logging_utils import setup_json_logging
from picbox.infrastructure.cache import SavedCountStore, SavedMediaCache
from picbox.infrastructure.persistence import DatabaseConnection, SqliteUserRepository
from picbox.infrastructure.redis import close_redis, get_redis

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from picbox.application.protocols import SaveUrlSubmitter, UserStore

logger = logging.getLogger(__name__)


def build_sync_service(
    cfg: AppConfig,
    *,
    redis_client: Any,
    dropbox: SaveUrlSubmitter,
    users: UserStore,
) -> MediaSyncService:
    """Wire a MediaSyncService from already-open collaborators."""
    return MediaSyncService(
        saved_media=SavedMediaCache(redis_client, cfg.redis),
        counters=SavedCountStore(redis_client, cfg.redis),
        dropbox=dropbox,
        users=users,
        destination_dir=cfg.runtime.destination_dir,
        max_concurrent=cfg.runtime.max_concurrent_submissions,
        user_list_limit=cfg.database.user_list_limit,
        max_retries=cfg.dropbox.save_url_max_retries,
        retry_delay=cfg.dropbox.save_url_retry_delay_sec,
    )


@asynccontextmanager
async def sync_service_context(cfg: AppConfig | None = None) -> AsyncIterator[MediaSyncService]:
    """Open Redis, Dropbox and the credential store; close them on exit.

    Args:
        cfg: Application configuration. If None, loads from environment.
    """
    cfg = cfg or load_config()
    setup_json_logging(cfg.runtime.log_level, log_file=cfg.runtime.log_file)
    connection = DatabaseConnection.from_config(cfg.database)
    try:
        redis_client = await get_redis(cfg.redis)
        await asyncio.to_thread(connection.connect)
        async with DropboxClient.from_config(cfg.dropbox) as dropbox:
            yield build_sync_service(
                cfg,
                redis_client=redis_client,
                dropbox=dropbox,
                users=SqliteUserRepository(connection),
            )
    finally:
        await asyncio.to_thread(connection.close)
        await close_redis()
        logger.info("sync_service_closed")
