"""Tests for the SQLite credential store and its connection lifecycle."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

import peewee
import pytest

from picbox.domain.exceptions import (
    DatabaseUnavailableError,
    EmailExistsError,
    IncorrectPasswordError,
    ResourceNotFoundError,
    ValidationError,
)
from picbox.infrastructure.persistence import (
    ConnectionState,
    DatabaseConnection,
    SqliteUserRepository,
)
from picbox.infrastructure.persistence import user_repository
from picbox.infrastructure.persistence.user_repository import hash_password, verify_password


@pytest.fixture
def connection(tmp_path):
    conn = DatabaseConnection(str(tmp_path / "picbox.db"), reconnect_delay=0.0)
    conn.connect()
    yield conn
    conn.close()


@pytest.fixture
def repo(connection) -> SqliteUserRepository:
    return SqliteUserRepository(connection)


def test_password_hash_is_salted() -> None:
    first = hash_password("secret", "salt-a", iterations=1_000)
    second = hash_password("secret", "salt-b", iterations=1_000)

    assert first != second
    assert verify_password("secret", "salt-a", hash_password("secret", "salt-a"))
    assert not verify_password("wrong", "salt-a", hash_password("secret", "salt-a"))


@pytest.mark.asyncio
async def test_create_and_login(repo: SqliteUserRepository) -> None:
    user_id = await repo.create_user("Ada@Example.com", "hunter2")

    user = await repo.get_user_by_credentials("ada@example.com", "hunter2")

    assert user.id == user_id
    assert user.email == "ada@example.com"
    assert user.dropbox_token is None
    assert user.last_sync is None


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(repo: SqliteUserRepository) -> None:
    await repo.create_user("ada@example.com", "hunter2")

    with pytest.raises(EmailExistsError):
        await repo.create_user("ADA@example.com", "other")


@pytest.mark.asyncio
async def test_empty_credentials_are_rejected(repo: SqliteUserRepository) -> None:
    with pytest.raises(ValidationError):
        await repo.create_user("   ", "hunter2")
    with pytest.raises(ValidationError):
        await repo.create_user("ada@example.com", "")


@pytest.mark.asyncio
async def test_login_failures_are_distinct(repo: SqliteUserRepository) -> None:
    await repo.create_user("ada@example.com", "hunter2")

    with pytest.raises(IncorrectPasswordError):
        await repo.get_user_by_credentials("ada@example.com", "wrong")
    with pytest.raises(ResourceNotFoundError):
        await repo.get_user_by_credentials("nobody@example.com", "hunter2")


@pytest.mark.asyncio
async def test_get_user_by_id(repo: SqliteUserRepository) -> None:
    user_id = await repo.create_user("ada@example.com", "hunter2")

    assert (await repo.get_user_by_id(user_id)).email == "ada@example.com"
    with pytest.raises(ResourceNotFoundError):
        await repo.get_user_by_id(user_id + 100)


@pytest.mark.asyncio
async def test_save_and_remove_provider_tokens(repo: SqliteUserRepository) -> None:
    user_id = await repo.create_user("ada@example.com", "hunter2")

    assert await repo.save_instagram_info("ada@example.com", "ig-1", "ig-token") == 1
    assert await repo.save_dropbox_info("ada@example.com", "db-1", "db-token") == 1
    assert await repo.save_dropbox_info("nobody@example.com", "db-2", "x") == 0

    user = await repo.get_user_by_id(user_id)
    assert (user.instagram_id, user.instagram_token) == ("ig-1", "ig-token")
    assert (user.dropbox_id, user.dropbox_token) == ("db-1", "db-token")

    await repo.remove_instagram_info("ada@example.com")
    await repo.remove_dropbox_info("ada@example.com")

    user = await repo.get_user_by_id(user_id)
    assert user.instagram_token is None
    assert user.dropbox_token is None


@pytest.mark.asyncio
async def test_list_users_and_last_sync(repo: SqliteUserRepository) -> None:
    first = await repo.create_user("a@example.com", "pw")
    await repo.create_user("b@example.com", "pw")
    await repo.create_user("c@example.com", "pw")

    stamp = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)
    await repo.set_last_sync(first, stamp)

    users = await repo.list_users()
    assert [u.email for u in users] == ["a@example.com", "b@example.com", "c@example.com"]
    assert [u.email for u in await repo.list_users(limit=2)] == ["a@example.com", "b@example.com"]

    synced = await repo.get_user_by_id(first)
    assert synced.last_sync is not None
    assert synced.last_sync.replace(tzinfo=UTC) == stamp


def test_connect_creates_tables(connection: DatabaseConnection) -> None:
    assert connection.state is ConnectionState.CONNECTED
    assert connection.database.table_exists("users")


def test_run_reconnects_after_close(connection: DatabaseConnection) -> None:
    connection.close()
    assert connection.state is ConnectionState.DISCONNECTED

    assert connection.run(lambda: connection.database.table_exists("users")) is True
    assert connection.state is ConnectionState.CONNECTED


def test_run_replays_operation_after_lost_connection(connection: DatabaseConnection) -> None:
    calls: list[int] = []

    def flaky() -> str:
        calls.append(1)
        if len(calls) == 1:
            raise peewee.InterfaceError("Cannot operate on a closed database.")
        return "ok"

    assert connection.run(flaky) == "ok"
    assert len(calls) == 2
    assert connection.state is ConnectionState.CONNECTED


def test_non_connection_errors_propagate(connection: DatabaseConnection) -> None:
    def broken() -> None:
        raise peewee.OperationalError("no such column: nope")

    with pytest.raises(peewee.OperationalError):
        connection.run(broken)
    assert connection.state is ConnectionState.CONNECTED


def test_reconnect_exhaustion_reports_unavailable(tmp_path) -> None:
    sleeps: list[float] = []
    # a directory cannot be opened as a database file
    conn = DatabaseConnection(
        str(tmp_path),
        max_reconnect_attempts=3,
        reconnect_delay=0.5,
        sleep=sleeps.append,
    )

    with pytest.raises(DatabaseUnavailableError) as exc_info:
        conn.run(lambda: None)

    assert conn.state is ConnectionState.DISCONNECTED
    assert exc_info.value.details["attempts"] == 3
    assert sleeps == [0.5, 0.5]


def test_invalid_transition_is_rejected(connection: DatabaseConnection) -> None:
    with pytest.raises(RuntimeError, match="Invalid connection transition"):
        connection._transition(ConnectionState.RECONNECTING)


@pytest.mark.asyncio
async def test_password_hashing_runs_off_the_event_loop(
    repo: SqliteUserRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    loop_thread = threading.get_ident()
    hashing_threads: list[int] = []
    real_hash = user_repository.hash_password

    def recording_hash(password: str, salt: str, iterations: int = 1_000) -> str:
        hashing_threads.append(threading.get_ident())
        return real_hash(password, salt, iterations)

    monkeypatch.setattr(user_repository, "hash_password", recording_hash)

    await repo.create_user("ada@example.com", "hunter2")
    await repo.get_user_by_credentials("ada@example.com", "hunter2")

    assert len(hashing_threads) == 2
    assert loop_thread not in hashing_threads
