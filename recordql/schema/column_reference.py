"""Typed column-reference class for join participants.

A join refers to its members' fields as ``table<N>.<field>`` where ``N`` is
the 1-based position of the member in the join.  :class:`ColumnReference`
owns both the parsing of that string and its resolution to the
table-scoped alias (``table<N>_<column>``) each subquery projects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from recordql.errors import ColumnResolutionError
from recordql.schema.record import Record

_QUALIFIED_RE = re.compile(r"^table(\d+)\.([A-Za-z_][A-Za-z0-9_]*)$")
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ALIAS_RE = re.compile(r"^table(\d+)_(.+)$")


def table_alias(position: int) -> str:
    """Return the column-alias prefix for join member ``position``."""
    return f"table{position}"


def split_alias(key: str) -> tuple[int, str] | None:
    """Split a result key ``table<N>_<column>`` into ``(N, column)``."""
    match = _ALIAS_RE.match(key)
    if match is None:
        return None
    return int(match.group(1)), match.group(2)


@dataclass(frozen=True)
class ColumnReference:
    """A parsed ``table<N>.field`` or bare ``field`` reference.

    Attributes:
        position: 1-based join position, or ``None`` for bare references.
        field: Record field name.
    """

    position: int | None
    field: str

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, ref: str) -> ColumnReference | None:
        """Parse ``ref``; return ``None`` if it is not a column reference.

        Args:
            ref: Raw reference string, e.g. ``"table2.user_id"``.
        """
        match = _QUALIFIED_RE.match(ref)
        if match:
            return cls(position=int(match.group(1)), field=match.group(2))
        if _FIELD_RE.match(ref):
            return cls(position=None, field=ref)
        return None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def try_resolve(self, members: Sequence[type[Record]]) -> str | None:
        """Return the table-scoped alias, or ``None`` if unresolvable.

        A bare field resolves against table 1, and only while table 1 is
        the sole registered member.
        """
        position = self.position
        if position is None:
            if len(members) != 1:
                return None
            position = 1
        if not 1 <= position <= len(members):
            return None
        spec = members[position - 1].table_spec().get(self.field)
        if spec is None:
            return None
        return f"{table_alias(position)}_{spec.column}"

    def resolve(self, members: Sequence[type[Record]]) -> str:
        """Return the table-scoped alias.

        Raises:
            ColumnResolutionError: If the position or field is unknown.
        """
        resolved = self.try_resolve(members)
        if resolved is None:
            known = [
                f"{table_alias(i)}.{name}"
                for i, member in enumerate(members, start=1)
                for name in member.table_spec().field_names
            ]
            raise ColumnResolutionError(str(self), known)
        return resolved

    def __str__(self) -> str:
        if self.position is None:
            return self.field
        return f"{table_alias(self.position)}.{self.field}"
