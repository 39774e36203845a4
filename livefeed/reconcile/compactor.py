"""Log compaction: replay new/update/delete operations into final state.

Unlike :mod:`livefeed.reconcile.resolver`, which only filters, this
replays the whole chronological log into a map keyed by display
identity, so deleted slots disappear entirely and every live slot
carries its latest entry. Output feeds the paginator.
"""

from __future__ import annotations

from typing import Iterable

from livefeed.entry import TYPE_DELETE, Entry


def flatten_entries(entries: Iterable[Entry]) -> dict[int, Entry]:
    """Reduce an ascending operation log to one entry per live slot.

    Parameters
    ----------
    entries:
        Entries of one feed in ascending chronological order.

    Returns
    -------
    dict[int, Entry]
        Latest entry per display identity, most recent slot first.
        Deleted slots are absent.
    """
    flattened: dict[int, Entry] = {}
    for entry in entries:
        key = entry.display_id
        if entry.type == TYPE_DELETE:
            flattened.pop(key, None)
        else:
            # Upsert keeps the slot's original position
            flattened[key] = entry

    return dict(reversed(list(flattened.items())))
