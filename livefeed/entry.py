"""Entry records, derived entry types, and the EntryView projection.

Foundation module used by the store, the reconcile core and the feed
service. An :class:`Entry` is one append-only record; its type (new,
update, delete) is never stored, it is derived from ``replaces`` and
``content``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, NamedTuple, TypedDict

TYPE_NEW = "new"
TYPE_UPDATE = "update"
TYPE_DELETE = "delete"

DEFAULT_KEY_MARKER = "/key"
DEFAULT_KEY_CLASS = "type-key"


@dataclass(frozen=True)
class Author:
    """Identity of the editor who posted an entry."""

    id: int
    name: str = ""
    email: str = ""
    url: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "url": self.url}


@dataclass(frozen=True)
class Entry:
    """A single append-only record in a feed's log.

    Entries are snapshots of store rows and are shared between cache
    readers, so they are immutable; writes go through the store.
    """

    id: int
    feed_id: int
    content: str
    created_at: int
    replaces: int | None = None
    author: Author | None = None
    contributors: tuple[int, ...] = ()
    hide_authors: bool = False

    @property
    def type(self) -> str:
        if self.replaces is None:
            return TYPE_NEW
        if self.content:
            return TYPE_UPDATE
        return TYPE_DELETE

    @property
    def display_id(self) -> int:
        """The slot this entry renders into: the replaced id, else its own."""
        return self.replaces if self.replaces is not None else self.id


class EntryView(TypedDict):
    """Presentation projection of an Entry."""
    id: int
    display_id: int
    replaces: int | None
    type: str
    content: str
    render: str
    created_at: int
    key_event: bool
    authors: list[dict[str, Any]]
    share_anchor: str


class _MarkerPatterns(NamedTuple):
    plain: re.Pattern
    span: re.Pattern
    span_element: re.Pattern


_PATTERN_CACHE: dict[tuple[str, str], _MarkerPatterns] = {}


def _marker_patterns(marker: str, rendered_class: str) -> _MarkerPatterns:
    key = (marker, rendered_class)
    if key not in _PATTERN_CACHE:
        # Plain marker at start of content or after a non-word char
        plain = re.compile(r'(?<!\w)' + re.escape(marker) + r'(?!\w)')
        # Already-transformed span, class attribute may carry other classes
        span_open = r'<span[^>]*class="[^"]*' + re.escape(rendered_class) + r'[^"]*"[^>]*>'
        span = re.compile(span_open, re.IGNORECASE)
        span_element = re.compile(span_open + r'.*?</span>', re.IGNORECASE | re.DOTALL)
        _PATTERN_CACHE[key] = _MarkerPatterns(plain, span, span_element)
    return _PATTERN_CACHE[key]


def has_key_marker(
    content: str,
    marker: str = DEFAULT_KEY_MARKER,
    rendered_class: str = DEFAULT_KEY_CLASS,
) -> bool:
    """Check content for the key-event marker, plain or rendered."""
    if not content:
        return False
    patterns = _marker_patterns(marker, rendered_class)
    return bool(patterns.plain.search(content) or patterns.span.search(content))


def strip_key_marker(
    content: str,
    marker: str = DEFAULT_KEY_MARKER,
    rendered_class: str = DEFAULT_KEY_CLASS,
) -> str:
    """Remove every key-event marker, plain or rendered.

    A rendered marker is removed with its whole ``<span>`` element. A
    stray opening span with no closing tag is removed on its own.
    """
    patterns = _marker_patterns(marker, rendered_class)
    content = patterns.span_element.sub("", content)
    content = patterns.span.sub("", content)
    return patterns.plain.sub("", content)


def _authors_for_view(entry: Entry) -> list[dict[str, Any]]:
    if entry.hide_authors or entry.author is None:
        return []
    authors = [entry.author.as_dict()]
    authors.extend({"id": cid} for cid in entry.contributors)
    return authors


def entry_view(
    entry: Entry,
    render: Callable[[str], str] | None = None,
    marker: str = DEFAULT_KEY_MARKER,
    rendered_class: str = DEFAULT_KEY_CLASS,
) -> EntryView:
    """Project an Entry into the view shape delivered to readers.

    ``render`` transforms raw content into display markup; content
    transformation is owned by the presentation layer, so the default
    passes content through unchanged.
    """
    rendered = render(entry.content) if render else entry.content
    return EntryView(
        id=entry.id,
        display_id=entry.display_id,
        replaces=entry.replaces,
        type=entry.type,
        content=entry.content,
        render=rendered,
        created_at=entry.created_at,
        key_event=has_key_marker(entry.content, marker, rendered_class),
        authors=_authors_for_view(entry),
        share_anchor=f"#{entry.display_id}",
    )
