"""Durable credential store (users and provider tokens)."""

from picbox.infrastructure.persistence.connection import ConnectionState, DatabaseConnection
from picbox.infrastructure.persistence.user_repository import SqliteUserRepository

__all__ = ["ConnectionState", "DatabaseConnection", "SqliteUserRepository"]
