"""Compiled statement and pagination value objects, plus placeholder numbering.

Fragments are built with the unnumbered placeholder token ``$``.  A complete
statement is numbered exactly once, just before dispatch, so subqueries
composed into a join never collide on placeholder indexes.  Numbering only
rewrites *bare* tokens (``$`` not followed by a digit), so running it twice
is a no-op.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

#: The unnumbered placeholder token used in intermediate fragments.
PLACEHOLDER = "$"

_BARE_PLACEHOLDER_RE = re.compile(r"\$(?!\d)")
_NUMBERED_PLACEHOLDER_RE = re.compile(r"\$(\d+)")

T = TypeVar("T")


def number_placeholders(text: str, start: int = 1) -> str:
    """Replace every bare ``$`` token with ``$start``, ``$start+1``, ...

    Args:
        text: SQL text containing unnumbered tokens.
        start: First positional index.

    Returns:
        The text with sequential positional markers.
    """
    counter = iter(range(start, start + text.count(PLACEHOLDER) + 1))
    return _BARE_PLACEHOLDER_RE.sub(lambda _: f"${next(counter)}", text)


def placeholder_indexes(text: str) -> list[int]:
    """Return the positional indexes of ``$n`` markers in order of appearance."""
    return [int(n) for n in _NUMBERED_PLACEHOLDER_RE.findall(text)]


@dataclass
class CompiledStatement:
    """A rendered SQL statement and its ordered parameters.

    Attributes:
        text: The SQL text.  Numbered (``$1..$n``) unless it was rendered
            for embedding in a join.
        params: Values for the placeholders, in order.
    """

    text: str
    params: list[Any] = field(default_factory=list)

    def count_statement(self) -> CompiledStatement:
        """Wrap this statement in ``SELECT COUNT(*)`` over the same params."""
        return CompiledStatement(
            text=f"SELECT COUNT(*) AS count FROM ({self.text}) AS count_table",
            params=list(self.params),
        )


@dataclass
class Page(Generic[T]):
    """One page of results plus the totals needed to page further.

    Attributes:
        rows: The rows on this page.
        current_page: 1-based page number (after clamping).
        page_size: Rows per page (after clamping).
        total_entries: Row count of the unpaginated query.
        total_pages: ``ceil(total_entries / page_size)``.
        has_more: ``current_page < total_pages``.
    """

    rows: list[T]
    current_page: int
    page_size: int
    total_entries: int
    total_pages: int
    has_more: bool

    @classmethod
    def build(cls, rows: list[T], page: int, page_size: int, total_entries: int) -> Page[T]:
        total_pages = math.ceil(total_entries / page_size)
        return cls(
            rows=rows,
            current_page=page,
            page_size=page_size,
            total_entries=total_entries,
            total_pages=total_pages,
            has_more=page < total_pages,
        )


def clamp_page(page: int, page_size: int) -> tuple[int, int, int]:
    """Clamp ``page`` and ``page_size`` to at least 1.

    Returns:
        ``(page, page_size, offset)``.
    """
    page = max(1, page)
    page_size = max(1, page_size)
    return page, page_size, (page - 1) * page_size
