"""Dropbox integration adapter for save_url job submission."""

from picbox.adapters.dropbox.client import DropboxClient
from picbox.adapters.dropbox.retry import submit_with_retry

__all__ = ["DropboxClient", "submit_with_retry"]
