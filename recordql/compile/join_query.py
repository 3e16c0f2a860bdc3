"""Join composition over independently built single-table subqueries.

Each participating :class:`~recordql.compile.table_query.TableQuery` is
rendered in join-subquery mode: its columns are projected as
``table<N>_<column>`` and its placeholders are left unnumbered.  The join
statement is numbered once, globally, after every member has been composed,
so subquery parameters can never collide::

    rows = (
        TableQuery(Order).where("total", ">", 100)
        .join()
        .inner_join(TableQuery(User), "table1.user_id", "table2.id")
        .add_computed_column("label", "table2.name", " || ' #' || ", "table1.id")
        .order_by("table1.create_date", "DESC")
        .execute()
    )
    for order, user, extra in rows:
        ...

Result rows are demultiplexed by alias prefix: keys ``table<N>_*`` rehydrate
member ``N``; every other key (computed columns) lands in the trailing dict.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from recordql.compile.base import CompiledStatement, Page, clamp_page, number_placeholders
from recordql.compile.clauses import (
    ClauseBuilder,
    Direction,
    Operator,
    Transform,
    join_sql,
    render_window,
)
from recordql.compile.table_query import Executor, TableQuery
from recordql.config import get_settings
from recordql.errors import ColumnResolutionError, InvalidClauseError
from recordql.schema.column_reference import ColumnReference, split_alias, table_alias
from recordql.schema.record import IDENTIFIER_RE, PLACEHOLDER_TOKEN, Record
from recordql.utils.logging import get_logger

logger = get_logger(__name__)


class JoinKind(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"


@dataclass(frozen=True)
class JoinMember:
    """One registered participant: its record type and rendered subquery."""

    position: int
    record_type: type[Record]
    statement: CompiledStatement

    @property
    def subquery_alias(self) -> str:
        return f"t{self.position}"


class JoinQuery:
    """Composes a multi-table SELECT from single-table builders.

    Args:
        table_query: The first member; registered as ``table1``.
        executor: Statement runner; defaults to the first member's executor.
        strict: Misuse policy; defaults to the first member's.
    """

    def __init__(
        self,
        table_query: TableQuery,
        executor: Executor | None = None,
        strict: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._executor = executor or table_query.executor
        self._default_limit = settings.default_limit
        self._default_page_size = settings.default_page_size
        self._members: list[JoinMember] = []
        self._from_parts: list[str] = []
        self._clauses = ClauseBuilder(
            owner="join",
            strict=table_query.strict if strict is None else strict,
        )
        self._distinct: list[str] = []
        self._computed: dict[str, str] = {}

        member = self._register(table_query)
        self._from_parts.append(f"({member.statement.text}) AS {member.subquery_alias}")

    # ------------------------------------------------------------------
    # Participant registry
    # ------------------------------------------------------------------

    @property
    def record_types(self) -> list[type[Record]]:
        return [m.record_type for m in self._members]

    def _register(self, table_query: TableQuery) -> JoinMember:
        position = len(self._members) + 1
        statement = table_query.build_statement(alias=table_alias(position), for_join=True)
        table_query.reset()
        member = JoinMember(position, table_query.record_type, statement)
        self._members.append(member)
        return member

    def _try_resolve(self, ref: str) -> str | None:
        parsed = ColumnReference.parse(ref)
        if parsed is None:
            return None
        return parsed.try_resolve(self.record_types)

    def _resolve(self, ref: str) -> str:
        """Resolve ``ref`` to its table-scoped alias.

        Raises:
            ColumnResolutionError: If ``ref`` names no registered field.
        """
        parsed = ColumnReference.parse(ref)
        if parsed is None:
            raise ColumnResolutionError(ref)
        return parsed.resolve(self.record_types)

    def _resolve_or_reject(self, ref: str) -> str | None:
        try:
            return self._resolve(ref)
        except ColumnResolutionError as exc:
            if self._clauses.strict:
                raise
            self._clauses.reject(exc.code, str(exc), reference=ref)
            return None

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def _resolve_on(self, ref: str, incoming: type[Record]) -> str:
        parsed = ColumnReference.parse(ref)
        if parsed is None:
            raise ColumnResolutionError(ref)
        # Qualified references may name the incoming member; bare ones only
        # see the members already joined.
        if parsed.position is None:
            return parsed.resolve(self.record_types)
        return parsed.resolve(self.record_types + [incoming])

    def _join(self, kind: JoinKind, table_query: TableQuery, ref_a: str, ref_b: str) -> JoinQuery:
        left = self._resolve_on(ref_a, table_query.record_type)
        right = self._resolve_on(ref_b, table_query.record_type)
        member = self._register(table_query)
        self._from_parts.append(
            f"{kind.value} JOIN ({member.statement.text}) AS {member.subquery_alias} "
            f"ON {left} = {right}"
        )
        return self

    def inner_join(self, table_query: TableQuery, ref_a: str, ref_b: str) -> JoinQuery:
        """Join ``table_query`` as the next ``table<N>`` on ``ref_a = ref_b``.

        Raises:
            ColumnResolutionError: If either reference cannot be resolved;
                the join is not added and ``table_query`` is left untouched.
        """
        return self._join(JoinKind.INNER, table_query, ref_a, ref_b)

    def left_join(self, table_query: TableQuery, ref_a: str, ref_b: str) -> JoinQuery:
        return self._join(JoinKind.LEFT, table_query, ref_a, ref_b)

    def right_join(self, table_query: TableQuery, ref_a: str, ref_b: str) -> JoinQuery:
        return self._join(JoinKind.RIGHT, table_query, ref_a, ref_b)

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def add_computed_column(self, name: str, *parts: str) -> JoinQuery:
        """Project ``<parts...> AS name``.

        Each part that resolves as a column reference is replaced by its
        table-scoped alias; every other part is literal SQL.  Parts are
        concatenated without separators.  Literal parts may not contain
        ``$``; values belong in ``where`` parameters.

        Raises:
            InvalidClauseError: On a bad ``name`` or a literal part holding ``$``.
        """
        if not IDENTIFIER_RE.match(name) or split_alias(name) is not None:
            raise InvalidClauseError(
                f"Invalid computed column name '{name}'",
                code="INVALID_COLUMN_NAME",
                details={"name": name},
            )
        rendered = []
        for part in parts:
            resolved = self._try_resolve(part)
            if resolved is None and PLACEHOLDER_TOKEN in part:
                raise InvalidClauseError(
                    f"Computed column '{name}' contains '$' in literal SQL",
                    code="INVALID_EXPRESSION",
                    details={"name": name, "part": part},
                )
            rendered.append(resolved or part)
        self._computed[name] = "".join(rendered)
        return self

    def distinct(self, columns: list[str]) -> JoinQuery:
        """Render ``DISTINCT ON (...)`` over the given references."""
        resolved = [self._resolve_or_reject(c) for c in columns]
        if None not in resolved:
            self._distinct = resolved
        return self

    # ------------------------------------------------------------------
    # Clause vocabulary
    # ------------------------------------------------------------------

    def where(
        self,
        column: str,
        operator: str | Operator,
        value: Any = None,
        transform: str | Transform | None = None,
    ) -> JoinQuery:
        resolved = self._resolve_or_reject(column)
        if resolved is not None:
            self._clauses.add_condition(resolved, operator, value, transform)
        return self

    def and_(self) -> JoinQuery:
        self._clauses.add_connective("AND")
        return self

    def or_(self) -> JoinQuery:
        self._clauses.add_connective("OR")
        return self

    def order_by(self, column: str, direction: str | Direction = Direction.ASC) -> JoinQuery:
        resolved = self._resolve_or_reject(column)
        if resolved is not None:
            self._clauses.add_order(resolved, direction)
        return self

    def limit(self, value: int) -> JoinQuery:
        self._clauses.set_limit(value)
        return self

    def offset(self, value: int) -> JoinQuery:
        self._clauses.set_offset(value)
        return self

    def reset(self) -> None:
        """Discard filters, ordering, paging, DISTINCT and computed columns.

        Registered members and their join conditions are kept.
        """
        self._clauses.state.reset()
        self._distinct = []
        self._computed = {}

    # ------------------------------------------------------------------
    # Statement rendering
    # ------------------------------------------------------------------

    def _compose(self, limit: int | None, offset: int | None) -> CompiledStatement:
        select = "SELECT"
        if self._distinct:
            select = f"SELECT DISTINCT ON ({', '.join(self._distinct)})"
        columns = ["*"] + [f"{expr} AS {name}" for name, expr in self._computed.items()]
        where_sql, where_params = self._clauses.render_where()
        text = join_sql(
            f"{select} {', '.join(columns)} FROM",
            " ".join(self._from_parts),
            where_sql,
            self._clauses.render_order(),
            render_window(limit, offset),
        )
        params = [p for m in self._members for p in m.statement.params] + where_params
        return CompiledStatement(text=number_placeholders(text), params=params)

    def build_statement(
        self,
        default_limit: int | None = None,
        default_offset: int | None = None,
    ) -> CompiledStatement:
        """Render the composed SELECT, numbering placeholders once globally."""
        limit, offset = self._clauses.resolve_window(default_limit, default_offset)
        return self._compose(limit, offset)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _demultiplex(self, row: dict[str, Any]) -> tuple[Any, ...]:
        members: list[dict[str, Any]] = [{} for _ in self._members]
        extra: dict[str, Any] = {}
        for key, value in row.items():
            split = split_alias(key)
            if split is None or not 1 <= split[0] <= len(members):
                extra[key] = value
                continue
            members[split[0] - 1][split[1]] = value
        entities = [
            member.record_type.from_row(values)
            for member, values in zip(self._members, members)
        ]
        return (*entities, extra)

    def _run(self, statement: CompiledStatement) -> list[dict[str, Any]] | None:
        try:
            return self._executor(statement.text, statement.params)
        except Exception as exc:
            logger.error(
                "join_query.execute_failed",
                tables=[m.record_type.table_name() for m in self._members],
                error=str(exc),
            )
            raise

    def execute(self) -> list[tuple[Any, ...]] | None:
        """Run the join and reset the accumulated state.

        Returns:
            One tuple per row: an entity per member, in join order, followed
            by a dict of computed values.  ``None`` if the executor returned
            no result set.
        """
        statement = self.build_statement(default_limit=self._default_limit, default_offset=0)
        try:
            rows = self._run(statement)
        finally:
            self.reset()
        if rows is None:
            return None
        return [self._demultiplex(row) for row in rows]

    def paginated_execute(
        self, page: int = 1, page_size: int | None = None
    ) -> Page[tuple[Any, ...]] | None:
        """Run a COUNT and one page of the join; see ``TableQuery.paginated_execute``."""
        page, page_size, offset = clamp_page(
            page, self._default_page_size if page_size is None else page_size
        )
        count_statement = self._compose(None, None).count_statement()
        page_statement = self._compose(page_size, offset)
        try:
            count_rows = self._run(count_statement)
            if not count_rows or count_rows[0].get("count") is None:
                return None
            rows = self._run(page_statement)
        finally:
            self.reset()
        if rows is None:
            return None
        return Page.build(
            [self._demultiplex(row) for row in rows],
            page,
            page_size,
            int(count_rows[0]["count"]),
        )
