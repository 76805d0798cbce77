"""Per-user record of liked media already saved to Dropbox.

Key pattern:
- Saved set: picbox:{user_id}:saved
  Sorted set of media ids, scored by the insert time in epoch milliseconds.

Unlike the provider client, this cache has no fail-open mode: Redis errors
propagate so a sync never re-submits items because the cache was unreachable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from picbox.core.time_utils import epoch_millis
from picbox.infrastructure.redis import redis_key

if TYPE_CHECKING:
    from collections.abc import Iterable

    import redis.asyncio as aioredis

    from picbox.config import RedisConfig

logger = logging.getLogger(__name__)


class SavedMediaCache:
    """Recency-ordered set of synced media ids, one set per user."""

    def __init__(
        self,
        client: aioredis.Redis,
        cfg: RedisConfig,
        *,
        max_entries: int | None = None,
    ) -> None:
        self._client = client
        self._prefix = cfg.prefix
        self._max_entries = max_entries if max_entries is not None else cfg.saved_media_max_entries

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    def saved_key(self, user_id: int | str) -> str:
        return redis_key(self._prefix, user_id, "saved")

    async def contains(self, user_id: int | str, media_id: str) -> bool:
        """Return whether ``media_id`` was already saved for the user."""
        score = await self._client.zscore(self.saved_key(user_id), media_id)
        return score is not None

    async def insert(
        self,
        user_id: int | str,
        media_ids: str | Iterable[str],
        *,
        replace: bool = False,
    ) -> None:
        """Record media ids as saved, all stamped with the current time.

        Args:
            user_id: Owner of the set.
            media_ids: A single id or an iterable of ids.
            replace: Discard the existing set and keep exactly ``media_ids``.
                The delete and the add run in one MULTI/EXEC transaction.
        """
        ids = [media_ids] if isinstance(media_ids, str) else list(media_ids)
        key = self.saved_key(user_id)
        score = epoch_millis()
        mapping = dict.fromkeys(ids, score)

        if replace:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if mapping:
                    pipe.zadd(key, mapping)
                await pipe.execute()
            logger.debug(
                "saved_media_replaced",
                extra={"user_id": user_id, "count": len(mapping)},
            )
            return

        if not mapping:
            return

        await self._client.zadd(key, mapping)
        if self._max_entries:
            await self._trim(key, self._max_entries)
        logger.debug("saved_media_inserted", extra={"user_id": user_id, "count": len(mapping)})

    async def _trim(self, key: str, max_entries: int) -> None:
        removed = await self._client.zremrangebyrank(key, 0, -(max_entries + 1))
        if removed:
            logger.debug(
                "saved_media_trimmed",
                extra={"key": key, "removed": removed, "max_entries": max_entries},
            )

    async def clear(self, user_id: int | str) -> None:
        """Drop the user's whole set (source association revoked)."""
        await self._client.delete(self.saved_key(user_id))
        logger.info("saved_media_cleared", extra={"user_id": user_id})

    async def recent(self, user_id: int | str, limit: int = 20) -> list[str]:
        """Most recently saved ids first."""
        if limit <= 0:
            return []
        return list(await self._client.zrevrange(self.saved_key(user_id), 0, limit - 1))

    async def size(self, user_id: int | str) -> int:
        return int(await self._client.zcard(self.saved_key(user_id)))
