"""Archive repair: restore replace pointers and edited content after drift.

Edits and deletes are several independent store writes, so a race can
leave a ``replaces`` pointer aimed at the wrong original, or an original
whose in-place content rewrite never landed. This batch pass re-derives
both from what is still in the store. It is idempotent: a second run
over a repaired feed reports zero corrections.

Every function takes ``dry_run``; in dry-run mode the same plan is
computed and counted but nothing is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from livefeed.store.db import EntryStore

log = logging.getLogger(__name__)


@dataclass
class RepairReport:
    """Correction counts for one feed, or summed over many."""

    entries_corrected: int = 0
    content_replaced: int = 0

    def __add__(self, other: RepairReport) -> RepairReport:
        return RepairReport(
            entries_corrected=self.entries_corrected + other.entries_corrected,
            content_replaced=self.content_replaced + other.content_replaced,
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "entries_corrected": self.entries_corrected,
            "content_replaced": self.content_replaced,
        }


def plan_pointer_repairs(
    edit_entries: list[tuple[int, int]],
    correct_ids: list[int],
    existing_ids: set[int],
) -> dict[int, int]:
    """Work out which ``replaces`` pointers to rewrite.

    Only pointers aimed at a live entry that is not a plausible original
    are rewritten. A pointer whose target is gone from the store is left
    alone: tombstones and orphaned updates outlive their original, and
    re-pointing them would hide an unrelated entry.

    Parameters
    ----------
    edit_entries:
        ``(id, replaces)`` for every entry carrying a pointer, by id.
    correct_ids:
        Ascending ids with no pointer of their own, the plausible originals.
    existing_ids:
        Every id currently in the store.

    Returns
    -------
    dict[int, int]
        Entry id to the corrected target: the largest plausible original
        that is older than the entry.
    """
    plausible = set(correct_ids)
    plan: dict[int, int] = {}
    for entry_id, replaces in edit_entries:
        if replaces in plausible or replaces not in existing_ids:
            continue
        earlier = [cid for cid in correct_ids if cid < entry_id]
        if not earlier:
            continue
        plan[entry_id] = earlier[-1]
    return plan


def repair_pointers(
    store: EntryStore,
    feed_id: int,
    dry_run: bool = False,
) -> dict[int, int]:
    """Rewrite misdirected ``replaces`` pointers of one feed.

    Returns the applied (or, in dry-run mode, planned) rewrites.
    """
    edit_entries = store.entries_with_replaces(feed_id)
    if not edit_entries:
        return {}

    correct_ids = store.ids_without_replaces(feed_id)
    existing_ids = {e.id for e in store.query(feed_id, order="ASC", status=None)}
    # Targets living in another feed are misdirected, not dangling
    existing_ids |= {target for _id, target in edit_entries if store.get(target) is not None}

    dangling = [entry_id for entry_id, target in edit_entries if target not in existing_ids]
    if dangling:
        log.debug("Feed %d: %d entries point at a deleted original; left as is",
                 feed_id, len(dangling))

    plan = plan_pointer_repairs(edit_entries, correct_ids, existing_ids)
    for entry_id, target in plan.items():
        log.info("Feed %d: entry %d replaces -> %d%s", feed_id, entry_id, target,
                 " (dry run)" if dry_run else "")
        if not dry_run:
            store.set_replaces(entry_id, target)
    return plan


def repair_content(
    store: EntryStore,
    feed_id: int,
    pointer_plan: dict[int, int] | None = None,
    dry_run: bool = False,
) -> int:
    """Copy duplicated edit content back onto originals that missed it.

    Duplicate clusters (content shared by exactly two entries) are paired
    with replaced originals in ascending id order. Pairing is positional
    only; nothing checks which cluster belongs to which original. When
    the two counts differ the feed is skipped and 0 is returned.
    """
    pointer_plan = pointer_plan or {}
    feed_ids = {e.id for e in store.query(feed_id, order="ASC", status=None)}
    targets = sorted({
        pointer_plan.get(entry_id, replaces)
        for entry_id, replaces in store.entries_with_replaces(feed_id)
    } & feed_ids)
    duplicates = [
        (dup_id, content)
        for dup_id, content in store.duplicate_content_entries(feed_id)
        if content
    ]

    if len(targets) != len(duplicates):
        if targets or duplicates:
            log.warning(
                "Feed %d: %d replaced originals vs %d duplicate contents; "
                "skipping content repair",
                feed_id, len(targets), len(duplicates),
            )
        return 0

    replaced = 0
    for target, (_dup_id, content) in zip(targets, duplicates):
        entry = store.get(target)
        if entry is None or entry.content == content:
            continue
        log.info("Feed %d: entry %d content restored%s", feed_id, target,
                 " (dry run)" if dry_run else "")
        if not dry_run:
            store.update(target, content=content)
        replaced += 1
    return replaced


def repair_feed(store: EntryStore, feed_id: int, dry_run: bool = False) -> RepairReport:
    """Repair one feed's pointers, then its content."""
    plan = repair_pointers(store, feed_id, dry_run=dry_run)
    replaced = repair_content(store, feed_id, pointer_plan=plan, dry_run=dry_run)
    report = RepairReport(entries_corrected=len(plan), content_replaced=replaced)
    log.info(
        "Feed %d: %d entries corrected, %d content items replaced",
        feed_id, report.entries_corrected, report.content_replaced,
    )
    return report


def repair_all(
    store: EntryStore,
    dry_run: bool = False,
    feed_ids: Iterable[int] | None = None,
    on_feed: Callable[[int, RepairReport], None] | None = None,
) -> RepairReport:
    """Repair every feed (or the given ones) and sum the reports.

    ``on_feed`` is called after each feed, e.g. to drive a progress bar.
    """
    total = RepairReport()
    for feed_id in (feed_ids if feed_ids is not None else store.list_feeds()):
        report = repair_feed(store, feed_id, dry_run=dry_run)
        total = total + report
        if on_feed:
            on_feed(feed_id, report)
    return total
