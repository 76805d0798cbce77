"""Running totals of items saved, per user and system-wide.

Key patterns:
- picbox:{user_id}:saved:count
- picbox:total:saved:count
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from picbox.infrastructure.redis import redis_key

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from picbox.config import RedisConfig

logger = logging.getLogger(__name__)


class SavedCountStore:
    """Monotonic INCRBY counters; nothing here ever resets them."""

    def __init__(self, client: aioredis.Redis, cfg: RedisConfig) -> None:
        self._client = client
        self._prefix = cfg.prefix

    def user_key(self, user_id: int | str) -> str:
        return redis_key(self._prefix, user_id, "saved", "count")

    @property
    def total_key(self) -> str:
        return redis_key(self._prefix, "total", "saved", "count")

    async def increment_user(self, user_id: int | str, count: int = 1) -> int:
        """Add ``count`` to the user's counter and return the new total."""
        return await self._incr(self.user_key(user_id), count)

    async def increment_total(self, count: int = 1) -> int:
        """Add ``count`` to the system-wide counter and return the new total."""
        return await self._incr(self.total_key, count)

    async def get_user(self, user_id: int | str) -> int:
        return _as_int(await self._client.get(self.user_key(user_id)))

    async def get_total(self) -> int:
        return _as_int(await self._client.get(self.total_key))

    async def _incr(self, key: str, count: int) -> int:
        if count < 0:
            msg = f"Saved counters only grow; got count={count}"
            raise ValueError(msg)
        return int(await self._client.incrby(key, count))


def _as_int(raw: str | bytes | None) -> int:
    if raw in (None, b"", ""):
        return 0
    return int(raw)
