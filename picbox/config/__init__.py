from __future__ import annotations

from .database import DatabaseConfig
from .dropbox import DropboxConfig
from .redis import RedisConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "DropboxConfig",
    "RedisConfig",
    "RuntimeConfig",
    "Settings",
    "load_config",
]
