"""Record store adapter and the per-feed read cache."""

from livefeed.store.cache import FeedCache
from livefeed.store.db import EntryNotFoundError, EntryStore, StoreError

__all__ = [
    "EntryNotFoundError",
    "EntryStore",
    "FeedCache",
    "StoreError",
]
