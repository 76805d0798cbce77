"""Tests for the liked-media sync orchestration."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
import redis

from picbox.application.sync_service import MediaSyncService
from picbox.domain.exceptions import InvalidJobError, PermanentError, TransientLockError
from picbox.domain.models import JobPending, LikedMedia, SyncJob, UserRecord
from picbox.infrastructure.cache import SavedCountStore, SavedMediaCache


class FakeDropbox:
    """Answers save_url per source URL; unknown URLs are accepted."""

    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.failures = failures or {}
        self.jobs: list[SyncJob] = []

    async def save_url(self, job: SyncJob) -> JobPending:
        self.jobs.append(job)
        error = self.failures.get(job.source_url)
        if error is not None:
            raise error
        return JobPending(job_id=f"job-{len(self.jobs)}")


class StubUsers:
    def __init__(self, users: list[UserRecord] | None = None) -> None:
        self.users = users or []
        self.last_sync: dict[int, datetime] = {}
        self.removed_instagram: list[str] = []

    async def list_users(self, limit: int = 500) -> list[UserRecord]:
        return self.users[:limit]

    async def remove_instagram_info(self, email: str) -> None:
        self.removed_instagram.append(email)

    async def set_last_sync(self, user_id: int, timestamp: datetime) -> None:
        self.last_sync[user_id] = timestamp


class StaticSource:
    def __init__(self, media: list[LikedMedia]) -> None:
        self.media = media
        self.requested: list[int] = []

    async def fetch_liked(self, user: UserRecord) -> list[LikedMedia]:
        self.requested.append(user.id)
        return list(self.media)


async def _no_sleep(delay: float) -> None:
    return None


def _media(media_id: str) -> LikedMedia:
    return LikedMedia(
        media_id=media_id,
        url=f"https://cdn.example.com/{media_id}.jpg",
        filename=f"{media_id}.jpg",
    )


USER = UserRecord(
    id=1,
    email="ada@example.com",
    instagram_id="ig-1",
    instagram_token="ig-token",
    dropbox_id="db-1",
    dropbox_token="db-token",
)


@pytest.fixture
def cache(fake_redis, redis_cfg) -> SavedMediaCache:
    return SavedMediaCache(fake_redis, redis_cfg)


@pytest.fixture
def counters(fake_redis, redis_cfg) -> SavedCountStore:
    return SavedCountStore(fake_redis, redis_cfg)


def _service(cache, counters, dropbox, users, **kwargs) -> MediaSyncService:
    return MediaSyncService(cache, counters, dropbox, users, sleep=_no_sleep, **kwargs)


@pytest.mark.asyncio
async def test_new_items_are_submitted_then_recorded(cache, counters) -> None:
    dropbox = FakeDropbox()
    users = StubUsers()
    service = _service(cache, counters, dropbox, users)

    result = await service.sync_user(USER, [_media("m1"), _media("m2")])

    assert result.items_submitted == 2
    assert result.items_failed == 0
    assert sorted(result.job_ids) == ["job-1", "job-2"]
    assert await cache.contains(USER.id, "m1")
    assert await cache.contains(USER.id, "m2")
    assert await counters.get_user(USER.id) == 2
    assert await service.total_saved() == 2
    assert USER.id in users.last_sync
    assert {job.path for job in dropbox.jobs} == {"/picbox/m1.jpg", "/picbox/m2.jpg"}
    assert all(job.access_token == "db-token" for job in dropbox.jobs)


@pytest.mark.asyncio
async def test_already_saved_items_are_skipped(cache, counters) -> None:
    dropbox = FakeDropbox()
    service = _service(cache, counters, dropbox, StubUsers())
    await cache.insert(USER.id, "m1")

    result = await service.sync_user(USER, [_media("m1"), _media("m2"), _media("m2")])

    assert result.items_skipped == 1
    assert result.items_submitted == 1
    assert [job.source_url for job in dropbox.jobs] == ["https://cdn.example.com/m2.jpg"]
    assert await counters.get_total() == 1


@pytest.mark.asyncio
async def test_failed_submission_leaves_cache_and_counters_untouched(cache, counters) -> None:
    dropbox = FakeDropbox(
        failures={"https://cdn.example.com/bad.jpg": PermanentError("Invalid OAuth token")}
    )
    service = _service(cache, counters, dropbox, StubUsers())

    result = await service.sync_user(USER, [_media("bad"), _media("good")])

    assert result.items_submitted == 1
    assert result.items_failed == 1
    assert result.permanent_errors == ["bad: Invalid OAuth token"]
    assert await cache.contains(USER.id, "bad") is False
    assert await cache.contains(USER.id, "good") is True
    assert await counters.get_user(USER.id) == 1
    assert await counters.get_total() == 1


@pytest.mark.asyncio
async def test_exhausted_retries_are_reported_as_retryable(cache, counters) -> None:
    dropbox = FakeDropbox(
        failures={"https://cdn.example.com/m1.jpg": TransientLockError("Failed to grab locks")}
    )
    service = _service(cache, counters, dropbox, StubUsers(), max_retries=3)

    result = await service.sync_user(USER, [_media("m1")])

    assert len(dropbox.jobs) == 3
    assert result.items_failed == 1
    assert result.retries_used == 3
    assert result.retryable_errors == ["m1: Retries failed"]
    assert await cache.contains(USER.id, "m1") is False
    # a later sync picks the item up again
    dropbox.failures.clear()
    again = await service.sync_user(USER, [_media("m1")])
    assert again.items_submitted == 1


@pytest.mark.asyncio
async def test_invalid_media_url_is_recorded_not_raised(cache, counters) -> None:
    dropbox = FakeDropbox(failures={"not-a-url": InvalidJobError("Source URL must be absolute")})
    service = _service(cache, counters, dropbox, StubUsers())
    broken = LikedMedia(media_id="m9", url="not-a-url", filename="m9.jpg")

    result = await service.sync_user(USER, [broken, _media("m1")])

    assert result.items_failed == 1
    assert result.items_submitted == 1


@pytest.mark.asyncio
async def test_user_without_dropbox_is_not_synced(cache, counters) -> None:
    dropbox = FakeDropbox()
    users = StubUsers()
    service = _service(cache, counters, dropbox, users)
    user = UserRecord(id=2, email="bob@example.com", instagram_token="ig")

    result = await service.sync_user(user, [_media("m1")])

    assert result.items_submitted == 0
    assert result.errors == ["Dropbox account is not connected"]
    assert dropbox.jobs == []
    assert users.last_sync == {}


@pytest.mark.asyncio
async def test_seed_user_baselines_current_likes(cache, counters) -> None:
    dropbox = FakeDropbox()
    service = _service(cache, counters, dropbox, StubUsers())
    await cache.insert(USER.id, ["stale"])

    await service.seed_user(USER.id, ["m1", "m2"])
    result = await service.sync_user(USER, [_media("m1"), _media("m2"), _media("m3")])

    assert await cache.contains(USER.id, "stale") is False
    assert result.items_skipped == 2
    assert [job.source_url for job in dropbox.jobs] == ["https://cdn.example.com/m3.jpg"]


@pytest.mark.asyncio
async def test_disconnect_source_clears_history(cache, counters) -> None:
    users = StubUsers()
    service = _service(cache, counters, FakeDropbox(), users)
    await cache.insert(USER.id, ["m1"])

    await service.disconnect_source(USER)

    assert await cache.size(USER.id) == 0
    assert users.removed_instagram == ["ada@example.com"]


@pytest.mark.asyncio
async def test_sync_all_only_visits_fully_connected_users(cache, counters) -> None:
    no_source = UserRecord(id=2, email="b@example.com", dropbox_token="db")
    no_dropbox = UserRecord(id=3, email="c@example.com", instagram_token="ig")
    users = StubUsers([USER, no_source, no_dropbox])
    source = StaticSource([_media("m1")])
    service = _service(cache, counters, FakeDropbox(), users)

    results = await service.sync_all(source)

    assert [r.user_id for r in results] == [USER.id]
    assert source.requested == [USER.id]
    assert results[0].items_submitted == 1


def test_destination_path_joins_directory() -> None:
    service = MediaSyncService(None, None, FakeDropbox(), StubUsers(), destination_dir="/likes")

    assert service.destination_path(_media("m1")) == "/likes/m1.jpg"
    blank = LikedMedia(media_id="m2", url="https://cdn.example.com/m2", filename=" ")
    assert service.destination_path(blank) == "/likes/m2"


class UnreachableForCache(SavedMediaCache):
    """Raises a Redis connection error for one media id."""

    def __init__(self, *args, failing_id: str, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failing_id = failing_id

    async def contains(self, user_id, media_id: str) -> bool:
        if media_id == self.failing_id:
            raise redis.ConnectionError("Connection refused")
        return await super().contains(user_id, media_id)


class SlowDropbox(FakeDropbox):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay
        self.completed: list[str] = []

    async def save_url(self, job: SyncJob) -> JobPending:
        await asyncio.sleep(self.delay)
        pending = await super().save_url(job)
        self.completed.append(job.path)
        return pending


@pytest.mark.asyncio
async def test_cache_failure_surfaces_after_siblings_settle(
    fake_redis, redis_cfg, counters
) -> None:
    cache = UnreachableForCache(fake_redis, redis_cfg, failing_id="boom")
    dropbox = SlowDropbox(delay=0.05)
    users = StubUsers()
    service = _service(cache, counters, dropbox, users)

    with pytest.raises(redis.ConnectionError):
        await service.sync_user(USER, [_media("boom"), _media("m1")])

    completed_at_raise = list(dropbox.completed)
    saved_at_raise = await cache.contains(USER.id, "m1")
    await asyncio.sleep(0.15)

    assert completed_at_raise == ["/picbox/m1.jpg"]
    assert saved_at_raise is True
    assert dropbox.completed == completed_at_raise
    assert await counters.get_total() == 1
    assert users.last_sync == {}


@pytest.mark.asyncio
async def test_sync_all_defaults_to_configured_user_limit(cache, counters) -> None:
    other = UserRecord(id=2, email="b@example.com", instagram_token="ig", dropbox_token="db")
    users = StubUsers([USER, other])
    source = StaticSource([_media("m1")])
    service = _service(cache, counters, FakeDropbox(), users, user_list_limit=1)

    results = await service.sync_all(source)

    assert [r.user_id for r in results] == [USER.id]
    assert len(await service.sync_all(source, limit=5)) == 2
