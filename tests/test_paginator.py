"""Tests for livefeed.reconcile.paginator."""

from __future__ import annotations

import math

import pytest

from livefeed.entry import Entry
from livefeed.reconcile.compactor import flatten_entries
from livefeed.reconcile.paginator import paginate, parse_cursor


def _compacted(count: int) -> dict[int, Entry]:
    """Compacted feed of ``count`` slots, ids 1..count, newest first."""
    log = [
        Entry(id=i, feed_id=1, content=f"entry {i}", created_at=1000 + i)
        for i in range(1, count + 1)
    ]
    return flatten_entries(log)


def _ids(page: dict) -> list[int]:
    return [e.display_id for e in page["entries"]]


class TestParseCursor:
    def test_id_timestamp_form(self) -> None:
        assert parse_cursor("42-1700000000") == 42

    def test_bare_id(self) -> None:
        assert parse_cursor("42") == 42

    def test_int(self) -> None:
        assert parse_cursor(42) == 42

    @pytest.mark.parametrize("value", [None, False, "", "abc-123", "  "])
    def test_unusable(self, value: object) -> None:
        assert parse_cursor(value) is None


class TestPaginate:
    def test_first_page_default(self) -> None:
        result = paginate(_compacted(7), per_page=3)
        assert result["page"] == 1
        assert result["pages"] == 3
        assert result["total"] == 7
        assert _ids(result) == [7, 6, 5]

    def test_last_partial_page(self) -> None:
        result = paginate(_compacted(7), per_page=3, page=3)
        assert _ids(result) == [1]

    def test_page_beyond_end_is_empty(self) -> None:
        result = paginate(_compacted(4), per_page=2, page=9)
        assert result["entries"] == []
        assert result["page"] == 9
        assert result["pages"] == 2

    def test_negative_page_clamped(self) -> None:
        assert paginate(_compacted(4), per_page=2, page=-3)["page"] == 1

    def test_empty_sequence(self) -> None:
        result = paginate({}, per_page=5)
        assert result == {"entries": [], "page": 1, "pages": 0, "total": 0}

    @pytest.mark.parametrize("total,per_page", [(0, 3), (1, 1), (9, 3), (10, 3), (11, 4)])
    def test_pages_cover_sequence_exactly_once(self, total: int, per_page: int) -> None:
        compacted = _compacted(total)
        first = paginate(compacted, per_page=per_page)
        assert first["pages"] == math.ceil(total / per_page)
        seen: list[int] = []
        for page in range(1, first["pages"] + 1):
            seen.extend(_ids(paginate(compacted, per_page=per_page, page=page)))
        assert seen == list(compacted)

    def test_jump_to_id(self) -> None:
        compacted = _compacted(10)
        for target in compacted:
            result = paginate(compacted, per_page=3, jump_to_id=target)
            assert target in _ids(result)

    def test_jump_to_id_computes_page(self) -> None:
        # Order is 10..1; id 4 sits at index 6 -> page ceil(7/3) = 3
        assert paginate(_compacted(10), per_page=3, jump_to_id=4)["page"] == 3

    def test_explicit_page_wins_over_jump(self) -> None:
        result = paginate(_compacted(10), per_page=3, page=1, jump_to_id=1)
        assert result["page"] == 1
        assert 1 not in _ids(result)

    def test_unknown_jump_falls_back_to_first_page(self) -> None:
        result = paginate(_compacted(10), per_page=3, jump_to_id=999)
        assert result["page"] == 1
        assert _ids(result) == [10, 9, 8]

    def test_last_known_entry_shifts_sequence(self) -> None:
        result = paginate(_compacted(10), per_page=3, last_known_entry="7-1007")
        assert _ids(result) == [7, 6, 5]
        assert result["total"] == 7
        assert result["pages"] == 3

    def test_last_known_stable_when_head_grows(self) -> None:
        before = paginate(_compacted(10), per_page=3, page=2, last_known_entry="7-1007")
        after = paginate(_compacted(15), per_page=3, page=2, last_known_entry="7-1007")
        assert _ids(before) == _ids(after) == [4, 3, 2]

    def test_unknown_last_known_uses_full_sequence(self) -> None:
        result = paginate(_compacted(5), per_page=2, last_known_entry="999-1")
        assert result["total"] == 5
        assert _ids(result) == [5, 4]

    def test_invalid_per_page(self) -> None:
        with pytest.raises(ValueError, match="per_page"):
            paginate(_compacted(3), per_page=0)
