"""Key-event index: resolved entries carrying the headline marker."""

from __future__ import annotations

from typing import Iterable

from livefeed.entry import DEFAULT_KEY_CLASS, DEFAULT_KEY_MARKER, Entry, has_key_marker
from livefeed.reconcile.resolver import remove_replaced_entries


def filter_key_events(
    entries: Iterable[Entry],
    limit: int = 0,
    marker: str = DEFAULT_KEY_MARKER,
    rendered_class: str = DEFAULT_KEY_CLASS,
) -> dict[int, Entry]:
    """Resolve entries, keep those marked as key events, then apply ``limit``.

    Resolution runs over the whole batch before filtering, so an edit
    notification is still suppressed when its original carries the marker.
    Both the plain marker and its rendered span form count.
    """
    resolved = remove_replaced_entries(entries)
    key_entries = {
        entry_id: entry
        for entry_id, entry in resolved.items()
        if has_key_marker(entry.content, marker, rendered_class)
    }
    if limit > 0 and len(key_entries) > limit:
        key_entries = dict(list(key_entries.items())[:limit])
    return key_entries
