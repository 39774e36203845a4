"""Time-window filters over resolved entries.

Two windows are used by readers: the inclusive delta window for polling
(everything created between two timestamps) and the exclusive lazyload
window (entries strictly between two already-rendered anchors).
"""

from __future__ import annotations

from typing import Iterable

from livefeed.entry import Entry


def find_between_timestamps(
    entries: Iterable[Entry],
    start_timestamp: int,
    end_timestamp: int,
) -> list[Entry]:
    """Return entries with ``start <= created_at <= end``, order preserved."""
    return [
        entry for entry in entries
        if start_timestamp <= entry.created_at <= end_timestamp
    ]


def lazyload_window(
    entries: Iterable[Entry],
    max_timestamp: int | None = None,
    min_timestamp: int | None = None,
    limit: int = 0,
) -> list[Entry]:
    """Return entries created strictly between two anchors.

    Parameters
    ----------
    entries:
        Resolved entries, typically newest first.
    max_timestamp:
        Exclusive upper bound; None leaves the window open above.
    min_timestamp:
        Exclusive lower bound; None leaves the window open below.
    limit:
        Cap on the number of entries returned, ``0`` for no cap.
    """
    window = []
    for entry in entries:
        if max_timestamp is not None and entry.created_at >= max_timestamp:
            continue
        if min_timestamp is not None and entry.created_at <= min_timestamp:
            continue
        window.append(entry)

    if limit > 0:
        return window[:limit]
    return window
