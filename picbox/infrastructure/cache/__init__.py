"""Cache helpers backed by Redis."""

from picbox.infrastructure.cache.saved_count_store import SavedCountStore
from picbox.infrastructure.cache.saved_media_cache import SavedMediaCache

__all__ = ["SavedCountStore", "SavedMediaCache"]
