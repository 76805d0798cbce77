"""SQLite implementation of the credential store.

Lookups are two explicit operations: by email and password for login, and by
id for session restore. Provider tokens are written per email address.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets
from typing import TYPE_CHECKING, Any

import peewee

from picbox.domain.exceptions import (
    EmailExistsError,
    IncorrectPasswordError,
    ResourceNotFoundError,
    ValidationError,
)
from picbox.domain.models import UserRecord
from picbox.infrastructure.persistence.models import User, as_datetime

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from picbox.infrastructure.persistence.connection import DatabaseConnection

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 240_000
DEFAULT_USER_LIST_LIMIT = 500


def hash_password(password: str, salt: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Derive a PBKDF2-HMAC-SHA256 hash of ``password`` with ``salt``."""
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return digest.hex()


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    return hmac.compare_digest(hash_password(password, salt), expected_hash)


def _to_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        instagram_id=user.instagram_id,
        instagram_token=user.instagram_token,
        dropbox_id=user.dropbox_id,
        dropbox_token=user.dropbox_token,
        last_sync=as_datetime(user.last_sync),
    )


class SqliteUserRepository:
    """Async facade over :class:`User` rows."""

    def __init__(self, connection: DatabaseConnection) -> None:
        self._connection = connection

    async def _execute(self, operation: Callable[[], Any], operation_name: str) -> Any:
        logger.debug("user_repository_operation", extra={"operation": operation_name})
        return await asyncio.to_thread(self._connection.run, operation)

    async def create_user(self, email: str, password: str) -> int:
        """Register a user and return the new id.

        Raises:
            ValidationError: Empty email or password.
            EmailExistsError: The email address is already registered.
        """
        email = email.strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")
        salt = secrets.token_hex(16)
        password_hash = await asyncio.to_thread(hash_password, password, salt)

        def _insert() -> int:
            try:
                user = User.create(email=email, password_hash=password_hash, password_salt=salt)
            except peewee.IntegrityError as exc:
                raise EmailExistsError(
                    "Email address has already been registered", details={"email": email}
                ) from exc
            return user.id

        user_id = await self._execute(_insert, "create_user")
        logger.info("user_created", extra={"user_id": user_id})
        return user_id

    async def get_user_by_credentials(self, email: str, password: str) -> UserRecord:
        """Return the user whose email and password match.

        Raises:
            ResourceNotFoundError: No user with that email.
            IncorrectPasswordError: The password does not match.
        """
        email = email.strip().lower()

        def _get() -> User | None:
            return User.get_or_none(User.email == email)

        user = await self._execute(_get, "get_user_by_credentials")
        if user is None:
            raise ResourceNotFoundError("User does not exist", details={"email": email})
        matches = await asyncio.to_thread(
            verify_password, password, user.password_salt, user.password_hash
        )
        if not matches:
            raise IncorrectPasswordError("Incorrect password", details={"user_id": user.id})
        return _to_record(user)

    async def get_user_by_id(self, user_id: int) -> UserRecord:
        """Raises ResourceNotFoundError when no such user exists."""

        def _get() -> User | None:
            return User.get_or_none(User.id == user_id)

        user = await self._execute(_get, "get_user_by_id")
        if user is None:
            raise ResourceNotFoundError("User does not exist", details={"user_id": user_id})
        return _to_record(user)

    async def list_users(self, limit: int = DEFAULT_USER_LIST_LIMIT) -> list[UserRecord]:
        def _list() -> list[UserRecord]:
            query = User.select().order_by(User.id).limit(limit)
            return [_to_record(user) for user in query]

        return await self._execute(_list, "list_users")

    async def _update_by_email(self, email: str, fields: dict[str, Any], name: str) -> int:
        email = email.strip().lower()

        def _update() -> int:
            return User.update(**fields).where(User.email == email).execute()

        return await self._execute(_update, name)

    async def save_instagram_info(self, email: str, instagram_id: str, access_token: str) -> int:
        """Store the source service account; returns the number of rows changed."""
        return await self._update_by_email(
            email,
            {"instagram_id": instagram_id, "instagram_token": access_token},
            "save_instagram_info",
        )

    async def save_dropbox_info(self, email: str, dropbox_id: str, access_token: str) -> int:
        """Store the Dropbox account; returns the number of rows changed."""
        return await self._update_by_email(
            email,
            {"dropbox_id": dropbox_id, "dropbox_token": access_token},
            "save_dropbox_info",
        )

    async def remove_instagram_info(self, email: str) -> None:
        await self._update_by_email(
            email, {"instagram_id": None, "instagram_token": None}, "remove_instagram_info"
        )

    async def remove_dropbox_info(self, email: str) -> None:
        await self._update_by_email(
            email, {"dropbox_id": None, "dropbox_token": None}, "remove_dropbox_info"
        )

    async def set_last_sync(self, user_id: int, timestamp: datetime) -> None:
        def _update() -> int:
            return User.update(last_sync=timestamp).where(User.id == user_id).execute()

        await self._execute(_update, "set_last_sync")
