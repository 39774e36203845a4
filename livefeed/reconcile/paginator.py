"""Fixed-size pages over compacted feed output.

Supports resuming from a last-seen display identity and jumping to the
page that holds a given display identity. Unmatched cursors are not
errors; they fall back to paging the full sequence.
"""

from __future__ import annotations

import math
from typing import Mapping, TypedDict

from livefeed.entry import Entry


class Page(TypedDict):
    """One page of compacted entries."""
    entries: list[Entry]
    page: int
    pages: int
    total: int


def parse_cursor(value: object) -> int | None:
    """Extract the display identity from a last-known-entry cursor.

    Accepts an int, a bare id string, or the ``"<id>-<timestamp>"`` form
    readers echo back. Returns None when nothing usable is found.
    """
    if value is None or value is False:
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    head = text.split("-", 1)[0]
    try:
        return int(head)
    except ValueError:
        return None


def paginate(
    compacted: Mapping[int, Entry],
    per_page: int,
    page: int = 0,
    last_known_entry: object = None,
    jump_to_id: int | None = None,
) -> Page:
    """Slice compacted entries into a page.

    Parameters
    ----------
    compacted:
        Output of :func:`livefeed.reconcile.compactor.flatten_entries`,
        keyed by display identity.
    per_page:
        Page size, must be positive.
    page:
        1-indexed page number; ``0`` means unspecified.
    last_known_entry:
        Cursor naming a previously-seen display identity. When found,
        paging starts at that position.
    jump_to_id:
        Display identity to land on when ``page`` is unspecified.
    """
    if per_page <= 0:
        raise ValueError(f"per_page must be positive, got {per_page}")

    keys = list(compacted.keys())
    values = list(compacted.values())

    cursor = parse_cursor(last_known_entry)
    if cursor is not None and cursor in compacted:
        start = keys.index(cursor)
        keys = keys[start:]
        values = values[start:]

    total = len(values)
    pages = math.ceil(total / per_page)

    if not page and jump_to_id is not None and jump_to_id in keys:
        page = math.ceil((keys.index(jump_to_id) + 1) / per_page)

    page = max(1, int(page or 0))

    offset = (page - 1) * per_page
    return Page(
        entries=values[offset:offset + per_page],
        page=page,
        pages=pages,
        total=total,
    )
