"""Reconciliation core: pure transforms from a raw entry log to reader views.

Resolution drops superseded entries (full state and delta views),
compaction replays the log into final slots (paginated archive), and the
window and key-event helpers narrow resolved output. Nothing here does
I/O.
"""

from livefeed.reconcile.compactor import flatten_entries
from livefeed.reconcile.key_events import filter_key_events
from livefeed.reconcile.lazyload import find_between_timestamps, lazyload_window
from livefeed.reconcile.paginator import Page, paginate, parse_cursor
from livefeed.reconcile.resolver import index_by_id, remove_replaced_entries

__all__ = [
    "Page",
    "filter_key_events",
    "find_between_timestamps",
    "flatten_entries",
    "index_by_id",
    "lazyload_window",
    "paginate",
    "parse_cursor",
    "remove_replaced_entries",
]
