"""SQLite record store for feed entries.

Manages two tables in ``.livefeed/livefeed.db``:

- ``entries``: one row per append-only entry record
- ``entry_meta``: per-entry metadata rows (``replaces``, ``contributors``,
  ``hide_authors``, ``key_event``)

The ``replaces`` pointer is kept as metadata rather than a column, so an
entry that was never linked to an original has no ``replaces`` row at
all. Archive repair relies on that distinction.

Each public method is atomic on its own. Sequences of calls (the two
writes of an edit, the three of a delete) are not; see
:mod:`livefeed.repair`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable

from livefeed.entry import Author, Entry

log = logging.getLogger(__name__)

STATUS_APPROVED = "approved"
STATUS_DRAFT = "draft"
ENTRY_STATUSES = (STATUS_APPROVED, STATUS_DRAFT)

META_REPLACES = "replaces"
META_CONTRIBUTORS = "contributors"
META_HIDE_AUTHORS = "hide_authors"
META_KEY_EVENT = "key_event"

_UPDATABLE_FIELDS = {
    "content", "author_id", "author_name", "author_email", "author_url",
    "created_at", "status",
}


class StoreError(Exception):
    """Raised on record store failures."""


class EntryNotFoundError(StoreError):
    """Raised when a required entry is missing from the store."""

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Entry {entry_id} not found")
        self.entry_id = entry_id


class EntryStore:
    """SQLite append-only entry store.

    Opens or creates the database file and initialises the ``entries``
    and ``entry_meta`` tables. Write listeners registered with
    :meth:`add_write_listener` are called with the feed id after every
    successful write against that feed.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: list[Callable[[int], None]] = []
        self._init_tables()

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _init_tables(self) -> None:
        conn = self._connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS entries (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    feed_id      INTEGER NOT NULL,
                    content      TEXT NOT NULL DEFAULT '',
                    author_id    INTEGER,
                    author_name  TEXT,
                    author_email TEXT,
                    author_url   TEXT,
                    created_at   INTEGER NOT NULL,
                    status       TEXT NOT NULL DEFAULT 'approved'
                );

                CREATE INDEX IF NOT EXISTS idx_entries_feed_created
                    ON entries (feed_id, created_at, id);

                CREATE TABLE IF NOT EXISTS entry_meta (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    entry_id   INTEGER NOT NULL,
                    meta_key   TEXT NOT NULL,
                    meta_value TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_entry_meta_entry
                    ON entry_meta (entry_id, meta_key);
            """)
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Write listeners
    # ------------------------------------------------------------------

    def add_write_listener(self, callback: Callable[[int], None]) -> None:
        """Register ``callback(feed_id)`` to run after each write."""
        self._listeners.append(callback)

    def _notify(self, feed_id: int) -> None:
        for callback in self._listeners:
            callback(feed_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        feed_id: int,
        order: str = "DESC",
        start: int | None = None,
        end: int | None = None,
        status: str | None = STATUS_APPROVED,
        limit: int = 0,
        meta_key: str | None = None,
        meta_value: str | None = None,
    ) -> list[Entry]:
        """Return entries of a feed ordered by creation time.

        ``start`` and ``end`` are inclusive ``created_at`` bounds.
        ``status=None`` disables the approval filter. ``meta_key``
        (optionally with ``meta_value``) restricts to entries carrying
        that metadata.
        """
        order = order.upper()
        if order not in ("ASC", "DESC"):
            raise ValueError(f"Invalid order '{order}'. Must be ASC or DESC")

        clauses = ["e.feed_id = ?"]
        params: list[Any] = [feed_id]
        if start is not None:
            clauses.append("e.created_at >= ?")
            params.append(start)
        if end is not None:
            clauses.append("e.created_at <= ?")
            params.append(end)
        if status is not None:
            clauses.append("e.status = ?")
            params.append(status)
        if meta_key is not None:
            sub = "SELECT entry_id FROM entry_meta WHERE meta_key = ?"
            params.append(meta_key)
            if meta_value is not None:
                sub += " AND meta_value = ?"
                params.append(meta_value)
            clauses.append(f"e.id IN ({sub})")

        sql = (
            f"SELECT e.* FROM entries e WHERE {' AND '.join(clauses)} "
            f"ORDER BY e.created_at {order}, e.id {order}"
        )
        if limit > 0:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
            meta = self._load_meta(conn, [r["id"] for r in rows])
            return [_row_to_entry(r, meta.get(r["id"], {})) for r in rows]
        finally:
            conn.close()

    def get(self, entry_id: int) -> Entry | None:
        """Return a single entry, or None if it is not in the store."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM entries WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                return None
            meta = self._load_meta(conn, [entry_id])
            return _row_to_entry(row, meta.get(entry_id, {}))
        finally:
            conn.close()

    def require(self, entry_id: int, feed_id: int | None = None) -> Entry:
        """Return an entry or raise :class:`EntryNotFoundError`.

        When ``feed_id`` is given, an entry belonging to another feed is
        treated as missing.
        """
        entry = self.get(entry_id)
        if entry is None or (feed_id is not None and entry.feed_id != feed_id):
            raise EntryNotFoundError(entry_id)
        return entry

    def latest(self, feed_id: int) -> Entry | None:
        """Return the most recently created approved entry of a feed."""
        entries = self.query(feed_id, order="DESC", limit=1)
        return entries[0] if entries else None

    def list_feeds(self) -> list[int]:
        """Return all feed ids that have at least one entry, ascending."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT DISTINCT feed_id FROM entries ORDER BY feed_id"
            ).fetchall()
            return [r["feed_id"] for r in rows]
        finally:
            conn.close()

    def find_referencing_entries(
        self, feed_id: int, target_id: int, exclude_id: int | None = None,
    ) -> list[int]:
        """Ids of entries in a feed whose ``replaces`` points at ``target_id``."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT e.id FROM entries e
                   INNER JOIN entry_meta m ON m.entry_id = e.id
                   WHERE e.feed_id = ? AND m.meta_key = ? AND m.meta_value = ?
                   ORDER BY e.id""",
                (feed_id, META_REPLACES, str(target_id)),
            ).fetchall()
            return [r["id"] for r in rows if r["id"] != exclude_id]
        finally:
            conn.close()

    def get_meta(self, entry_id: int, meta_key: str) -> str | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT meta_value FROM entry_meta WHERE entry_id = ? AND meta_key = ? "
                "ORDER BY id LIMIT 1",
                (entry_id, meta_key),
            ).fetchone()
            return row["meta_value"] if row else None
        finally:
            conn.close()

    def get_replaces(self, entry_id: int) -> int | None:
        value = self.get_meta(entry_id, META_REPLACES)
        return int(value) if value is not None else None

    def _load_meta(
        self, conn: sqlite3.Connection, entry_ids: list[int],
    ) -> dict[int, dict[str, str]]:
        if not entry_ids:
            return {}
        meta: dict[int, dict[str, str]] = {}
        # Chunk to stay under SQLite's bound-parameter limit
        for i in range(0, len(entry_ids), 500):
            chunk = entry_ids[i:i + 500]
            placeholders = ",".join("?" for _ in chunk)
            rows = conn.execute(
                f"SELECT entry_id, meta_key, meta_value FROM entry_meta "
                f"WHERE entry_id IN ({placeholders}) ORDER BY id",
                chunk,
            ).fetchall()
            for r in rows:
                meta.setdefault(r["entry_id"], {}).setdefault(r["meta_key"], r["meta_value"])
        return meta

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(
        self,
        feed_id: int,
        content: str,
        author: Author | None = None,
        created_at: int | None = None,
        replaces: int | None = None,
        contributors: list[int] | None = None,
        hide_authors: bool = False,
        status: str = STATUS_APPROVED,
    ) -> int:
        """Append a new entry. Returns its id."""
        if status not in ENTRY_STATUSES:
            raise ValueError(f"Invalid status '{status}'. Must be one of {ENTRY_STATUSES}")
        ts = int(created_at) if created_at is not None else int(time.time())
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            cur = conn.execute(
                """INSERT INTO entries
                   (feed_id, content, author_id, author_name, author_email,
                    author_url, created_at, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    feed_id,
                    content,
                    author.id if author else None,
                    author.name if author else None,
                    author.email if author else None,
                    author.url if author else None,
                    ts,
                    status,
                ),
            )
            entry_id = cur.lastrowid
            if replaces is not None:
                _insert_meta(conn, entry_id, META_REPLACES, str(replaces))
            if contributors:
                _insert_meta(conn, entry_id, META_CONTRIBUTORS, json.dumps(list(contributors)))
            if hide_authors:
                _insert_meta(conn, entry_id, META_HIDE_AUTHORS, "1")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        log.debug("Inserted entry %d into feed %d", entry_id, feed_id)
        self._notify(feed_id)
        return entry_id  # type: ignore[return-value]

    def update(self, entry_id: int, **fields: Any) -> None:
        """Update columns on an existing entry in place.

        Valid keys: content, author_id, author_name, author_email,
        author_url, created_at, status.
        """
        invalid = set(fields) - _UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Invalid entry fields: {sorted(invalid)}")
        if not fields:
            return

        feed_id = self._feed_of(entry_id)
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        conn = self._connect()
        try:
            conn.execute(
                f"UPDATE entries SET {set_clause} WHERE id = ?",
                [*fields.values(), entry_id],
            )
            conn.commit()
        finally:
            conn.close()
        self._notify(feed_id)

    def delete(self, entry_id: int) -> None:
        """Remove an entry and its metadata from the store."""
        feed_id = self._feed_of(entry_id)
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM entry_meta WHERE entry_id = ?", (entry_id,))
            conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        log.debug("Deleted entry %d from feed %d", entry_id, feed_id)
        self._notify(feed_id)

    def set_meta(self, entry_id: int, meta_key: str, meta_value: str) -> None:
        """Set (replace) a metadata value on an entry."""
        feed_id = self._feed_of(entry_id)
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                "DELETE FROM entry_meta WHERE entry_id = ? AND meta_key = ?",
                (entry_id, meta_key),
            )
            _insert_meta(conn, entry_id, meta_key, meta_value)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        self._notify(feed_id)

    def delete_meta(self, entry_id: int, meta_key: str) -> bool:
        """Remove a metadata key from an entry. Returns True if a row was removed."""
        feed_id = self._feed_of(entry_id)
        conn = self._connect()
        try:
            cur = conn.execute(
                "DELETE FROM entry_meta WHERE entry_id = ? AND meta_key = ?",
                (entry_id, meta_key),
            )
            conn.commit()
            removed = cur.rowcount > 0
        finally:
            conn.close()
        if removed:
            self._notify(feed_id)
        return removed

    def set_replaces(self, entry_id: int, replaces: int) -> None:
        self.set_meta(entry_id, META_REPLACES, str(replaces))

    def set_contributors(self, entry_id: int, contributors: list[int]) -> None:
        """Store contributor ids; an empty list clears them."""
        if not contributors:
            self.delete_meta(entry_id, META_CONTRIBUTORS)
            return
        self.set_meta(entry_id, META_CONTRIBUTORS, json.dumps(list(contributors)))

    def set_authors_hidden(self, entry_id: int, hidden: bool) -> None:
        if hidden:
            self.set_meta(entry_id, META_HIDE_AUTHORS, "1")
        else:
            self.delete_meta(entry_id, META_HIDE_AUTHORS)

    def _feed_of(self, entry_id: int) -> int:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT feed_id FROM entries WHERE id = ?", (entry_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise EntryNotFoundError(entry_id)
        return row["feed_id"]

    # ------------------------------------------------------------------
    # Repair reads
    # ------------------------------------------------------------------

    def entries_with_replaces(self, feed_id: int) -> list[tuple[int, int]]:
        """(id, replaces) for every entry of a feed carrying a pointer, by id."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT e.id AS id, m.meta_value AS replaces FROM entries e
                   INNER JOIN entry_meta m ON m.entry_id = e.id
                   WHERE e.feed_id = ? AND m.meta_key = ?
                   ORDER BY e.id ASC""",
                (feed_id, META_REPLACES),
            ).fetchall()
            return [(r["id"], int(r["replaces"])) for r in rows]
        finally:
            conn.close()

    def ids_without_replaces(self, feed_id: int) -> list[int]:
        """Ids of entries in a feed that have no ``replaces`` metadata, ascending."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT id FROM entries
                   WHERE feed_id = ? AND id NOT IN (
                       SELECT entry_id FROM entry_meta WHERE meta_key = ?
                   )
                   ORDER BY id ASC""",
                (feed_id, META_REPLACES),
            ).fetchall()
            return [r["id"] for r in rows]
        finally:
            conn.close()

    def duplicate_content_entries(self, feed_id: int) -> list[tuple[int, str]]:
        """Content shared by exactly two entries of a feed.

        Returns one ``(lowest id, content)`` pair per duplicate cluster,
        ordered by that id.
        """
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT MIN(id) AS id, content FROM entries
                   WHERE feed_id = ?
                   GROUP BY content
                   HAVING COUNT(content) = 2
                   ORDER BY MIN(id) ASC""",
                (feed_id,),
            ).fetchall()
            return [(r["id"], r["content"]) for r in rows]
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        """Store-wide counts for status display."""
        conn = self._connect()
        try:
            feeds = conn.execute("SELECT COUNT(DISTINCT feed_id) FROM entries").fetchone()[0]
            total = conn.execute(
                "SELECT COUNT(*) FROM entries WHERE status = ?", (STATUS_APPROVED,)
            ).fetchone()[0]
            authors = conn.execute(
                "SELECT COUNT(DISTINCT author_id) FROM entries "
                "WHERE status = ? AND author_id > 0",
                (STATUS_APPROVED,),
            ).fetchone()[0]
            key_events = conn.execute(
                """SELECT COUNT(*) FROM entries e
                   INNER JOIN entry_meta m ON m.entry_id = e.id
                   WHERE e.status = ? AND m.meta_key = ? AND m.meta_value = '1'""",
                (STATUS_APPROVED, META_KEY_EVENT),
            ).fetchone()[0]
            return {
                "feeds": feeds,
                "entries": total,
                "key_events": key_events,
                "authors": authors,
            }
        finally:
            conn.close()


def _insert_meta(conn: sqlite3.Connection, entry_id: int, key: str, value: str) -> None:
    conn.execute(
        "INSERT INTO entry_meta (entry_id, meta_key, meta_value) VALUES (?, ?, ?)",
        (entry_id, key, value),
    )


def _row_to_entry(row: sqlite3.Row, meta: dict[str, str]) -> Entry:
    author = None
    if row["author_id"] is not None:
        author = Author(
            id=row["author_id"],
            name=row["author_name"] or "",
            email=row["author_email"] or "",
            url=row["author_url"] or "",
        )
    replaces = meta.get(META_REPLACES)
    contributors = meta.get(META_CONTRIBUTORS)
    return Entry(
        id=row["id"],
        feed_id=row["feed_id"],
        content=row["content"],
        created_at=row["created_at"],
        replaces=int(replaces) if replaces is not None else None,
        author=author,
        contributors=tuple(json.loads(contributors)) if contributors else (),
        hide_authors=meta.get(META_HIDE_AUTHORS) == "1",
    )
