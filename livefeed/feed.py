"""Feed service: edit operations and reader responses over one store.

Every call takes the feed id explicitly; the service holds no per-feed
state beyond the ascending-log cache, which the store invalidates on
each write. Edits follow the two-write model: an update appends a
notification entry *and* rewrites the original in place, a delete
appends a tombstone, removes orphaned updates, then removes the original.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from livefeed.config import default_config, entries_per_page, initial_entries
from livefeed.entry import Author, Entry, EntryView, entry_view, has_key_marker, strip_key_marker
from livefeed.reconcile import (
    filter_key_events,
    find_between_timestamps,
    flatten_entries,
    lazyload_window,
    paginate,
    remove_replaced_entries,
)
from livefeed.store.cache import FeedCache
from livefeed.store.db import META_KEY_EVENT, EntryStore

log = logging.getLogger(__name__)


class FeedService:
    """Reader and editor operations for feeds in an :class:`EntryStore`.

    Parameters
    ----------
    store:
        Record store holding every feed.
    config:
        Livefeed config dict; defaults are used when omitted.
    render:
        Optional content renderer used for ``EntryView.render``.
    """

    def __init__(
        self,
        store: EntryStore,
        config: dict[str, Any] | None = None,
        render: Callable[[str], str] | None = None,
    ) -> None:
        self._store = store
        self._config = config or default_config()
        self._render = render
        self._cache = FeedCache(lambda feed_id: store.query(feed_id, order="ASC"))
        store.add_write_listener(self._cache.invalidate)

    @property
    def store(self) -> EntryStore:
        return self._store

    @property
    def cache(self) -> FeedCache:
        return self._cache

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _key_marker(self) -> tuple[str, str]:
        key_events = self._config["key_events"]
        return key_events["marker"], key_events["rendered_class"]

    def _view(self, entry: Entry) -> EntryView:
        marker, rendered_class = self._key_marker()
        return entry_view(entry, self._render, marker, rendered_class)

    def views(self, entries: Any) -> list[EntryView]:
        """Project entries (a list or an id-keyed dict) into views."""
        if isinstance(entries, dict):
            entries = entries.values()
        return [self._view(e) for e in entries]

    def is_key_event(self, entry: Entry) -> bool:
        """Whether the entry carries the configured key-event marker."""
        marker, rendered_class = self._key_marker()
        return has_key_marker(entry.content, marker, rendered_class)

    def _sync_key_event(self, entry_id: int, original_id: int | None = None) -> None:
        """Mirror the content's key-event marker into metadata."""
        entry = self._store.get(entry_id)
        if entry is None:
            return
        is_key = self.is_key_event(entry)
        for check_id in (entry_id, original_id):
            if check_id is None:
                continue
            if is_key:
                self._store.set_meta(check_id, META_KEY_EVENT, "1")
            else:
                self._store.delete_meta(check_id, META_KEY_EVENT)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_entry(
        self,
        feed_id: int,
        content: str,
        author: Author | None = None,
        contributors: list[int] | None = None,
        hide_authors: bool = False,
        created_at: int | None = None,
    ) -> Entry:
        """Append a brand-new entry to a feed."""
        _validate_feed_id(feed_id)
        if not content:
            raise ValueError("Entry content must not be empty")

        entry_id = self._store.insert(
            feed_id,
            content,
            author=author,
            created_at=created_at,
            contributors=contributors,
            hide_authors=hide_authors or author is None,
        )
        self._sync_key_event(entry_id)
        log.info("Feed %d: inserted entry %d", feed_id, entry_id)
        return self._store.require(entry_id)

    def update_entry(
        self,
        feed_id: int,
        entry_id: int,
        content: str,
        author: Author | None = None,
        created_at: int | None = None,
    ) -> Entry:
        """Edit an entry. Returns the appended notification entry.

        The original keeps its id and takes the new content, so readers
        that already rendered it see the change in place.
        """
        _validate_feed_id(feed_id)
        if not content:
            raise ValueError("Entry content must not be empty; use delete_entry")

        original = self._store.require(entry_id, feed_id)
        new_id = self._store.insert(
            feed_id,
            content,
            author=author or original.author,
            created_at=created_at,
            replaces=entry_id,
            hide_authors=original.hide_authors,
        )
        self._store.update(entry_id, content=content)
        self._sync_key_event(new_id, entry_id)
        log.info("Feed %d: entry %d updated by %d", feed_id, entry_id, new_id)
        return self._store.require(new_id)

    def delete_entry(
        self,
        feed_id: int,
        entry_id: int,
        author: Author | None = None,
        created_at: int | None = None,
    ) -> Entry:
        """Delete an entry. Returns the appended tombstone."""
        _validate_feed_id(feed_id)
        original = self._store.require(entry_id, feed_id)

        tombstone_id = self._store.insert(
            feed_id,
            "",
            author=author or original.author,
            created_at=created_at,
            replaces=entry_id,
        )
        orphans = self._store.find_referencing_entries(feed_id, entry_id, exclude_id=tombstone_id)
        for orphan_id in orphans:
            self._store.delete(orphan_id)
        if orphans:
            log.info("Feed %d: removed %d orphaned update(s) of entry %d",
                     feed_id, len(orphans), entry_id)
        self._store.delete(entry_id)
        log.info("Feed %d: entry %d deleted by %d", feed_id, entry_id, tombstone_id)
        return self._store.require(tombstone_id)

    def delete_key(self, feed_id: int, entry_id: int, content: str | None = None) -> Entry:
        """Drop the key-event marker from an entry by issuing an update.

        Both plain and rendered markers are removed. The update clears the
        key-event flag on the original and on the notification. Content
        that is nothing but the marker is rejected before anything is
        written.
        """
        original = self._store.require(entry_id, feed_id)
        marker, rendered_class = self._key_marker()
        source = content if content is not None else original.content
        stripped = strip_key_marker(source, marker, rendered_class)
        if not stripped.strip():
            raise ValueError(
                f"Entry {entry_id} holds only the key-event marker; use delete_entry"
            )
        return self.update_entry(feed_id, entry_id, stripped)

    def set_contributors(self, feed_id: int, entry_id: int, contributors: list[int]) -> None:
        self._store.require(entry_id, feed_id)
        self._store.set_contributors(entry_id, contributors)

    def update_author(self, feed_id: int, entry_id: int, author: Author | None) -> None:
        """Replace an entry's author; None hides authors on the entry."""
        self._store.require(entry_id, feed_id)
        if author is None:
            self._store.set_authors_hidden(entry_id, True)
            return
        self._store.update(
            entry_id,
            author_id=author.id,
            author_name=author.name,
            author_email=author.email,
            author_url=author.url,
        )
        self._store.set_authors_hidden(entry_id, False)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all_entries_asc(self, feed_id: int, force: bool = False) -> list[Entry]:
        """Every approved entry of a feed, oldest first (cached)."""
        return self._cache.get(feed_id, force=force)

    def get_all(self, feed_id: int, limit: int = 0) -> dict[int, Entry]:
        """Resolved full-state view, newest first."""
        entries = list(reversed(self.get_all_entries_asc(feed_id)))
        return remove_replaced_entries(entries, limit=limit)

    def get_latest_timestamp(self, feed_id: int) -> int | None:
        latest = self._store.latest(feed_id)
        return latest.created_at if latest else None

    def count(self, feed_id: int) -> int:
        return len(self.get_all(feed_id))

    def has_any(self, feed_id: int) -> bool:
        return self._store.latest(feed_id) is not None

    def get_entries_by_time(
        self,
        feed_id: int,
        start_timestamp: int,
        end_timestamp: int,
    ) -> dict[str, Any]:
        """Delta/poll response for entries created in ``[start, end]``.

        The window is cut from the raw log before resolution, so an edit
        notification whose original predates the window is delivered.
        """
        window = find_between_timestamps(
            self.get_all_entries_asc(feed_id), start_timestamp, end_timestamp,
        )
        entries = list(remove_replaced_entries(window).values())
        latest_timestamp = max((e.created_at for e in entries), default=None)
        return {
            "entries": self.views(entries),
            "latest_timestamp": latest_timestamp,
        }

    def get_single_entry(self, feed_id: int, entry_id: int) -> dict[str, Any]:
        """Single-entry response with timestamps of its resolved neighbours."""
        resolved = list(self.get_all(feed_id).values())
        for index, entry in enumerate(resolved):
            if entry.id != entry_id:
                continue
            # Newest first: the preceding item is the next one in time
            next_timestamp = resolved[index - 1].created_at if index > 0 else 0
            previous_timestamp = (
                resolved[index + 1].created_at if index + 1 < len(resolved) else 0
            )
            return {
                "entries": [self._view(entry)],
                "index": index,
                "nextTimestamp": next_timestamp,
                "previousTimestamp": previous_timestamp,
            }
        return {"entries": []}

    def get_lazyload_entries(
        self,
        feed_id: int,
        max_timestamp: int | None = None,
        min_timestamp: int | None = None,
        index: int = 0,
    ) -> dict[str, Any]:
        """Lazyload response: resolved entries strictly between two anchors.

        A timestamp of 0 is treated as an open bound.
        """
        entries = lazyload_window(
            self.get_all(feed_id).values(),
            max_timestamp=max_timestamp or None,
            min_timestamp=min_timestamp or None,
            limit=entries_per_page(self._config),
        )
        return {"entries": self.views(entries), "index": index}

    def get_initial_entries(self, feed_id: int) -> dict[str, Any]:
        """First-render response: the newest resolved entries.

        Capped at ``lazyload.initial_entries``; ``0`` renders the whole feed.
        Readers load the rest through :meth:`get_lazyload_entries`.
        """
        entries = self.get_all(feed_id, limit=initial_entries(self._config))
        return {"entries": self.views(entries), "index": 0}

    def get_entries_paged(
        self,
        feed_id: int,
        page: int = 0,
        last_known_entry: object = None,
        jump_to_id: int | None = None,
        all_entries: bool = False,
    ) -> dict[str, Any]:
        """Paged response over the compacted feed."""
        per_page = (
            self._config["paging"]["max_entries"] if all_entries
            else entries_per_page(self._config)
        )
        compacted = flatten_entries(self.get_all_entries_asc(feed_id))
        result = paginate(
            compacted,
            per_page,
            page=page,
            last_known_entry=last_known_entry,
            jump_to_id=jump_to_id,
        )
        return {
            "entries": self.views(result["entries"]),
            "page": result["page"],
            "pages": result["pages"],
            "total": result["total"],
        }

    def get_key_events(self, feed_id: int, limit: int | None = None) -> dict[int, Entry]:
        """Resolved key-event entries, newest first.

        ``limit`` defaults to the configured ``key_events.limit``.
        """
        if limit is None:
            limit = self._config["key_events"]["limit"]
        marker, rendered_class = self._key_marker()
        entries = list(reversed(self.get_all_entries_asc(feed_id)))
        return filter_key_events(entries, limit=limit, marker=marker, rendered_class=rendered_class)

    def stats(self) -> dict[str, int]:
        return self._store.stats()


def _validate_feed_id(feed_id: int) -> None:
    if not isinstance(feed_id, int) or feed_id <= 0:
        raise ValueError(f"Invalid feed id: {feed_id!r}")
