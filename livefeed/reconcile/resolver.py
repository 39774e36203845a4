"""Replace-chain resolution: drop entries superseded by a live original.

An edit appends a new entry pointing at the original *and* rewrites the
original's content in place, so whenever both are present the newer
entry is a redundant duplicate. When the original is gone (deleted),
the referencing entry is the only remaining evidence of the slot and is
kept so delta consumers can retract it.
"""

from __future__ import annotations

from typing import Iterable

from livefeed.entry import Entry


def index_by_id(entries: Iterable[Entry]) -> dict[int, Entry]:
    """Key entries by their own id, preserving input order."""
    return {entry.id: entry for entry in entries}


def remove_replaced_entries(
    entries: Iterable[Entry],
    limit: int = 0,
) -> dict[int, Entry]:
    """Resolve a batch of entries to one visible entry per slot.

    Parameters
    ----------
    entries:
        Entries of one feed, in any order.
    limit:
        Truncate the result to this many entries after dedup.
        ``0`` means unlimited.

    Returns
    -------
    dict[int, Entry]
        Surviving entries keyed by id, in input order.
    """
    by_id = index_by_id(entries)
    if not by_id:
        return {}

    # Pointers are checked against the full input, never chased further.
    resolved = {
        entry_id: entry
        for entry_id, entry in by_id.items()
        if entry.replaces is None or entry.replaces not in by_id
    }

    if limit > 0 and len(resolved) > limit:
        resolved = dict(list(resolved.items())[:limit])

    return resolved
