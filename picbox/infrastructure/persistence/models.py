"""Peewee ORM models for the credential store."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee

from picbox.core.time_utils import utc_now

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    def save(self, *args: Any, **kwargs: Any) -> int:
        if hasattr(self, "updated_at"):
            self.updated_at = utc_now()
        return super().save(*args, **kwargs)

    class Meta:
        database = database_proxy
        legacy_table_names = False


class User(BaseModel):
    id = peewee.AutoField()
    email = peewee.TextField(unique=True)
    password_hash = peewee.TextField()
    password_salt = peewee.TextField()
    instagram_id = peewee.TextField(null=True)
    instagram_token = peewee.TextField(null=True)
    dropbox_id = peewee.TextField(null=True)
    dropbox_token = peewee.TextField(null=True)
    last_sync = peewee.DateTimeField(null=True)
    updated_at = peewee.DateTimeField(default=utc_now)
    created_at = peewee.DateTimeField(default=utc_now)

    class Meta:
        table_name = "users"


ALL_MODELS = (User,)


def as_datetime(value: Any) -> _dt.datetime | None:
    """SQLite hands DateTimeField values back as strings when read through dicts."""
    if value is None or isinstance(value, _dt.datetime):
        return value
    return _dt.datetime.fromisoformat(str(value))
