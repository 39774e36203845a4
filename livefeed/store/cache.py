"""Per-feed cache of the full ascending entry log.

Rebuilding a feed's ascending view scans the whole feed, so it is kept
for the length of a read episode and dropped whenever the store reports
a write against that feed. Staleness is bounded by invalidation, not by
time, and no lock is taken.
"""

from __future__ import annotations

import logging
from typing import Callable

from livefeed.entry import Entry

log = logging.getLogger(__name__)


class FeedCache:
    """Maps feed id to its cached ascending entry list.

    Parameters
    ----------
    loader:
        Called with a feed id on a miss; returns the feed's entries in
        ascending chronological order.
    """

    def __init__(self, loader: Callable[[int], list[Entry]]) -> None:
        self._loader = loader
        self._entries: dict[int, list[Entry]] = {}

    def get(self, feed_id: int, force: bool = False) -> list[Entry]:
        """Return the cached list, loading it on a miss.

        ``force`` bypasses the cache without storing the fresh result.
        """
        if force:
            log.debug("Feed %d: cache bypassed", feed_id)
            return list(self._loader(feed_id))
        cached = self._entries.get(feed_id)
        if cached is not None:
            log.debug("Feed %d: cache hit", feed_id)
            return list(cached)
        log.debug("Feed %d: cache miss", feed_id)
        entries = list(self._loader(feed_id))
        self._entries[feed_id] = entries
        return list(entries)

    def invalidate(self, feed_id: int) -> None:
        if self._entries.pop(feed_id, None) is not None:
            log.debug("Feed %d: cache invalidated", feed_id)

    def __contains__(self, feed_id: object) -> bool:
        return feed_id in self._entries
