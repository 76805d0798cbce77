"""Credential store connection with an explicit reconnect lifecycle.

States move CONNECTED -> DISCONNECTED -> RECONNECTING -> CONNECTED. A lost
connection is detected when an operation fails with a connection-level error;
the connection then reconnects a bounded number of times and replays the
operation once. When every attempt fails the state settles on DISCONNECTED
and :class:`DatabaseUnavailableError` is raised.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import peewee

from picbox.domain.exceptions import DatabaseUnavailableError
from picbox.infrastructure.persistence.models import ALL_MODELS, database_proxy

if TYPE_CHECKING:
    from collections.abc import Callable

    from picbox.config import DatabaseConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONNECTION_LOST_MARKERS = (
    "closed",
    "unable to open database",
    "disk i/o error",
    "not a database",
)


class ConnectionState(Enum):
    """Credential store connection states."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.RECONNECTING}
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.RECONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}
    ),
}


def is_connection_lost(exc: Exception) -> bool:
    if isinstance(exc, peewee.InterfaceError):
        return True
    if isinstance(exc, peewee.OperationalError):
        message = str(exc).lower()
        return any(marker in message for marker in _CONNECTION_LOST_MARKERS)
    return False


class DatabaseConnection:
    """One shared SQLite connection guarded by a lock.

    Operations are blocking; async callers run them through
    :func:`asyncio.to_thread`.
    """

    def __init__(
        self,
        path: str,
        *,
        max_reconnect_attempts: int = 3,
        reconnect_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._database = peewee.SqliteDatabase(
            path,
            pragmas={"journal_mode": "wal", "foreign_keys": 1},
            thread_safe=False,
            check_same_thread=False,
        )
        database_proxy.initialize(self._database)

    @classmethod
    def from_config(cls, cfg: DatabaseConfig) -> DatabaseConnection:
        return cls(
            cfg.path,
            max_reconnect_attempts=cfg.reconnect_max_attempts,
            reconnect_delay=cfg.reconnect_delay_sec,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def database(self) -> peewee.SqliteDatabase:
        return self._database

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            msg = f"Invalid connection transition {self._state.value} -> {new_state.value}"
            raise RuntimeError(msg)
        logger.debug(
            "db_connection_state_changed",
            extra={"from": self._state.value, "to": new_state.value, "path": self.path},
        )
        self._state = new_state

    def _open(self) -> None:
        if not self._database.is_closed():
            self._database.close()
        self._database.connect()
        self._database.create_tables(ALL_MODELS, safe=True)

    def connect(self) -> None:
        """Open the connection and create missing tables."""
        with self._lock:
            if self._state == ConnectionState.CONNECTED:
                return
            self._open()
            self._transition(ConnectionState.CONNECTED)
            logger.info("db_connected", extra={"path": self.path})

    def close(self) -> None:
        with self._lock:
            if not self._database.is_closed():
                self._database.close()
            if self._state == ConnectionState.CONNECTED:
                self._transition(ConnectionState.DISCONNECTED)

    def mark_disconnected(self, reason: str) -> None:
        with self._lock:
            if self._state == ConnectionState.CONNECTED:
                logger.warning("db_connection_lost", extra={"path": self.path, "reason": reason})
                self._transition(ConnectionState.DISCONNECTED)

    def reconnect(self) -> None:
        """Try to reopen the connection up to ``max_reconnect_attempts`` times.

        Raises:
            DatabaseUnavailableError: Every attempt failed.
        """
        with self._lock:
            if self._state == ConnectionState.CONNECTED:
                return
            self._transition(ConnectionState.RECONNECTING)
            last_error: Exception | None = None
            for attempt in range(1, self.max_reconnect_attempts + 1):
                try:
                    self._open()
                except peewee.DatabaseError as exc:
                    last_error = exc
                    logger.warning(
                        "db_reconnect_failed",
                        extra={
                            "path": self.path,
                            "attempt": attempt,
                            "max_attempts": self.max_reconnect_attempts,
                            "error": str(exc),
                        },
                    )
                    if attempt < self.max_reconnect_attempts:
                        self._sleep(self.reconnect_delay)
                    continue
                self._transition(ConnectionState.CONNECTED)
                logger.info("db_reconnected", extra={"path": self.path, "attempt": attempt})
                return

            self._transition(ConnectionState.DISCONNECTED)
            raise DatabaseUnavailableError(
                "Credential store is unavailable",
                details={"path": self.path, "attempts": self.max_reconnect_attempts},
            ) from last_error

    def run(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking operation, reconnecting once if the connection was lost."""
        with self._lock:
            if self._state != ConnectionState.CONNECTED:
                self.reconnect()
            try:
                return operation(*args, **kwargs)
            except (peewee.OperationalError, peewee.InterfaceError) as exc:
                if not is_connection_lost(exc):
                    raise
                self.mark_disconnected(str(exc))
            self.reconnect()
            return operation(*args, **kwargs)
