"""Shared WHERE / ORDER BY / LIMIT / OFFSET logic for both query builders.

``ClauseBuilder`` owns one builder's accumulated state and renders it to SQL
fragments carrying unnumbered ``$`` tokens.  Column resolution is the
caller's job: ``TableQuery`` passes physical columns (or computed
expressions), ``JoinQuery`` passes table-scoped aliases.

Misuse policy
-------------
A call that cannot produce a valid clause (``in`` without a list, a
comparison against ``None``, an unknown operator, ...) is *rejected*.  By
default a rejection logs a ``clause.rejected`` warning and leaves the state
untouched, so the fluent chain continues.  In strict mode the same
rejection raises :class:`~recordql.errors.InvalidClauseError`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from recordql.compile.base import PLACEHOLDER
from recordql.errors import InvalidClauseError
from recordql.utils.logging import get_logger

logger = get_logger(__name__)

#: Rendered in place of ``IN ()`` when the value list is empty.
TAUTOLOGY = "1 = 1"


class Operator(str, Enum):
    """Predicate operators accepted by ``where``."""

    EQ = "="
    NE = "!="
    LT_GT = "<>"
    LT = "<"
    GT = ">"
    LTE = "<="
    GTE = ">="
    LIKE = "like"
    IN = "in"
    NOT_IN = "not in"
    IS_NULL = "is null"
    IS_NOT_NULL = "is not null"

    @classmethod
    def parse(cls, value: str | Operator) -> Operator | None:
        if isinstance(value, Operator):
            return value
        normalized = " ".join(str(value).lower().split())
        try:
            return cls(normalized)
        except ValueError:
            return None

    @property
    def sql(self) -> str:
        return self.value.upper()


_MEMBERSHIP_OPS = frozenset({Operator.IN, Operator.NOT_IN})
_NULL_OPS = frozenset({Operator.IS_NULL, Operator.IS_NOT_NULL})


class Direction(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class Transform(str, Enum):
    """Case-folding functions that may wrap a column in ``where``."""

    UPPER = "UPPER"
    LOWER = "LOWER"


def _parse_enum(enum_cls: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        return None


@dataclass(frozen=True)
class Clause:
    """A condition fragment with its ordered params, or a bare connective."""

    condition: str
    params: tuple[Any, ...] = ()


@dataclass
class ClauseState:
    """Per-builder accumulated query state.  Reset after every execution."""

    clauses: list[Clause] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None

    def reset(self) -> None:
        self.clauses = []
        self.order_by = []
        self.limit = None
        self.offset = None

    @property
    def params(self) -> list[Any]:
        return [p for clause in self.clauses for p in clause.params]


class ClauseBuilder:
    """Accumulates clauses and renders WHERE / ORDER BY / LIMIT / OFFSET.

    Args:
        owner: Name used in log events (e.g. the table or ``"join"``).
        strict: Raise on misuse instead of logging and skipping.
    """

    def __init__(self, owner: str, strict: bool = False) -> None:
        self.owner = owner
        self.strict = strict
        self.state = ClauseState()

    # ------------------------------------------------------------------
    # Misuse handling
    # ------------------------------------------------------------------

    def reject(self, code: str, message: str, **details: Any) -> None:
        """Apply the misuse policy to a rejected call.

        Raises:
            InvalidClauseError: In strict mode.
        """
        if self.strict:
            raise InvalidClauseError(message, code=code, details=details)
        logger.warning("clause.rejected", owner=self.owner, code=code, reason=message, **details)

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def add_condition(
        self,
        column_sql: str,
        operator: str | Operator,
        value: Any = None,
        transform: str | Transform | None = None,
    ) -> None:
        op = Operator.parse(operator)
        if op is None:
            self.reject("INVALID_OPERATOR", f"Unknown operator '{operator}'", operator=str(operator))
            return

        if transform is not None:
            func = _parse_enum(Transform, transform)
            if func is None:
                self.reject("INVALID_TRANSFORM", f"Unknown transform '{transform}'", transform=str(transform))
                return
            column_sql = f"{func.value}({column_sql})"

        if op in _MEMBERSHIP_OPS:
            if not isinstance(value, (list, tuple)):
                self.reject(
                    "INVALID_VALUE",
                    f"Invalid value for '{op.value}' operator: expected a list",
                    operator=op.value,
                )
                return
            if len(value) == 0:
                self.state.clauses.append(Clause(TAUTOLOGY))
                return
            placeholders = ", ".join(PLACEHOLDER for _ in value)
            self.state.clauses.append(Clause(f"{column_sql} {op.sql} ({placeholders})", tuple(value)))
            return

        if op in _NULL_OPS:
            self.state.clauses.append(Clause(f"{column_sql} {op.sql}"))
            return

        if value is None:
            self.reject(
                "INVALID_VALUE",
                f"Invalid value for '{op.value}' operator: must be a non null value",
                operator=op.value,
            )
            return

        self.state.clauses.append(Clause(f"{column_sql} {op.sql} {PLACEHOLDER}", (value,)))

    def add_connective(self, keyword: str) -> None:
        self.state.clauses.append(Clause(keyword))

    def add_order(self, column_sql: str, direction: str | Direction = Direction.ASC) -> None:
        sort = _parse_enum(Direction, direction)
        if sort is None:
            self.reject("INVALID_DIRECTION", f"Unknown sort direction '{direction}'", direction=str(direction))
            return
        self.state.order_by.append(f"{column_sql} {sort.value}")

    def set_limit(self, value: int) -> None:
        if not _is_count(value):
            self.reject("INVALID_LIMIT", f"LIMIT must be a non-negative integer, got {value!r}")
            return
        self.state.limit = value

    def set_offset(self, value: int) -> None:
        if not _is_count(value):
            self.reject("INVALID_OFFSET", f"OFFSET must be a non-negative integer, got {value!r}")
            return
        self.state.offset = value

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_where(self, mandatory: Sequence[str] = ()) -> tuple[str, list[Any]]:
        """Render the WHERE clause and its params.

        User clauses are parenthesised whenever mandatory predicates follow,
        so an ``OR`` between user conditions can never widen past them.
        """
        parts: list[str] = []
        clauses = self.state.clauses
        if clauses:
            user_sql = " ".join(c.condition for c in clauses)
            parts.append(f"({user_sql})" if mandatory else user_sql)
        parts.extend(mandatory)
        if not parts:
            return "", []
        return f"WHERE {' AND '.join(parts)}", self.state.params

    def render_order(self) -> str:
        if not self.state.order_by:
            return ""
        return f"ORDER BY {', '.join(self.state.order_by)}"

    def resolve_window(
        self, default_limit: int | None, default_offset: int | None
    ) -> tuple[int | None, int | None]:
        """Return the effective ``(limit, offset)``: explicit, else default."""
        limit = self.state.limit if self.state.limit is not None else default_limit
        offset = self.state.offset if self.state.offset is not None else default_offset
        return limit, offset


def render_window(limit: int | None, offset: int | None) -> str:
    parts: list[str] = []
    if limit is not None:
        parts.append(f"LIMIT {limit}")
    if offset is not None:
        parts.append(f"OFFSET {offset}")
    return " ".join(parts)


def join_sql(*parts: str) -> str:
    """Join non-empty SQL fragments with single spaces."""
    return " ".join(p for p in parts if p)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
