"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import fakeredis
import fakeredis.aioredis
import pytest

from picbox.config import RedisConfig


@pytest.fixture
def redis_cfg() -> RedisConfig:
    return RedisConfig(prefix="picbox")


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Isolated in-memory Redis; each test gets its own server."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
