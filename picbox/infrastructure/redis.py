from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import redis.asyncio as aioredis

if TYPE_CHECKING:
    from picbox.config import RedisConfig

logger = logging.getLogger(__name__)

_client: aioredis.Redis | None = None
_lock = asyncio.Lock()


def _build_url(cfg: RedisConfig) -> str:
    if cfg.url:
        return cfg.url
    return f"redis://{cfg.host}:{cfg.port}/{cfg.db}"


def redis_key(prefix: str, *parts: str | int) -> str:
    """Compose a namespaced Redis key."""
    safe_parts = [str(part) for part in parts if part not in (None, "")]
    return ":".join([prefix, *safe_parts])


async def get_redis(cfg: RedisConfig) -> aioredis.Redis:
    """Get or create the shared Redis client.

    Connection errors propagate: the saved-media cache and counters have no
    fallback store.
    """
    global _client

    if _client:
        return _client

    async with _lock:
        if _client:
            return _client

        url = _build_url(cfg)
        client = aioredis.from_url(
            url,
            password=cfg.password,
            socket_timeout=cfg.socket_timeout,
            decode_responses=True,
        )
        try:
            await client.ping()
        except Exception:
            logger.warning(
                "redis_connection_failed",
                exc_info=True,
                extra={"url": url, "db": cfg.db},
            )
            await client.aclose()
            raise
        logger.info("redis_connected", extra={"url": url, "db": cfg.db, "prefix": cfg.prefix})
        _client = client
        return _client


async def close_redis() -> None:
    """Close shared Redis client if present."""
    global _client
    if _client:
        try:
            await _client.aclose()
            logger.info("redis_closed")
        finally:
            _client = None
