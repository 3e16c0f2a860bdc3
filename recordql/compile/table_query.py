"""Single-table query and CRUD builder.

``TableQuery`` is bound to one :class:`~recordql.schema.record.Record` type.
Filters, ordering and paging accumulate through chained calls; ``execute``
renders one statement, hands it to the executor, resets the accumulated
state and rehydrates each row into a fresh entity::

    users = (
        TableQuery(User)
        .where("name", "like", "A%")
        .and_()
        .where("email", "is not null")
        .order_by("create_date", "DESC")
        .execute()
    )

Soft-deleted rows are invisible: every rendered SELECT ends with a
mandatory ``is_deleted = false`` predicate that no combination of builder
calls can remove.  ``delete`` only ever sets that flag.

Batch mutators follow two distinct failure policies:

* ``update([...])`` is best-effort: an entity whose statement fails is
  logged and left out of the returned list; the batch itself never fails.
* ``delete([...])`` aborts on the first failure and propagates it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Generic, Optional, Sequence, TypeVar, overload

from recordql.compile.base import (
    PLACEHOLDER,
    CompiledStatement,
    Page,
    clamp_page,
    number_placeholders,
)
from recordql.compile.clauses import (
    ClauseBuilder,
    Direction,
    Operator,
    Transform,
    join_sql,
    render_window,
)
from recordql.config import get_settings
from recordql.errors import ColumnResolutionError
from recordql.schema.record import Record
from recordql.utils.logging import get_logger

if TYPE_CHECKING:
    from recordql.compile.join_query import JoinQuery

logger = get_logger(__name__)

R = TypeVar("R", bound=Record)

#: ``(statement, params) -> rows | None``; ``None`` means no result set.
Executor = Callable[[str, Sequence[Any]], Optional[list[dict[str, Any]]]]


def _default_executor(statement: str, params: Sequence[Any]) -> list[dict[str, Any]] | None:
    from recordql.db.query import run_query

    return run_query(statement, params)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TableQuery(Generic[R]):
    """Builds and runs statements against the table of one Record type.

    Args:
        record_type: The Record subclass this builder reads and writes.
        executor: Statement runner; defaults to
            :func:`recordql.db.query.run_query`.
        strict: Raise ``InvalidClauseError`` on misuse instead of logging.
            Defaults to ``Settings.strict_clauses``.
    """

    def __init__(
        self,
        record_type: type[R],
        executor: Executor | None = None,
        strict: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._record_type = record_type
        self._spec = record_type.table_spec()
        self._table = record_type.table_name()
        self._executor = executor or _default_executor
        self._default_limit = settings.default_limit
        self._default_page_size = settings.default_page_size
        self._clauses = ClauseBuilder(
            owner=self._table,
            strict=settings.strict_clauses if strict is None else strict,
        )

    @property
    def record_type(self) -> type[R]:
        return self._record_type

    @property
    def executor(self) -> Executor:
        return self._executor

    @property
    def strict(self) -> bool:
        return self._clauses.strict

    def reset(self) -> None:
        """Discard all accumulated clauses, ordering and paging."""
        self._clauses.state.reset()

    # ------------------------------------------------------------------
    # Clause vocabulary
    # ------------------------------------------------------------------

    def _column_sql(self, field: str) -> str | None:
        spec = self._spec.get(field)
        if spec is None:
            return None
        if spec.computed is not None:
            return f"({spec.computed})"
        return spec.column

    def _unknown_field(self, field: str) -> None:
        if self._clauses.strict:
            raise ColumnResolutionError(field, self._spec.field_names)
        self._clauses.reject(
            "UNKNOWN_COLUMN",
            f"Unknown field '{field}' on {self._record_type.__name__}",
            field=field,
        )

    def where(
        self,
        field: str,
        operator: str | Operator,
        value: Any = None,
        transform: str | Transform | None = None,
    ) -> TableQuery[R]:
        """Append a condition on ``field``.

        Conditions are not combined automatically; call :meth:`and_` or
        :meth:`or_` between them.
        """
        column = self._column_sql(field)
        if column is None:
            self._unknown_field(field)
            return self
        self._clauses.add_condition(column, operator, value, transform)
        return self

    def and_(self) -> TableQuery[R]:
        self._clauses.add_connective("AND")
        return self

    def or_(self) -> TableQuery[R]:
        self._clauses.add_connective("OR")
        return self

    def order_by(self, field: str, direction: str | Direction = Direction.ASC) -> TableQuery[R]:
        column = self._column_sql(field)
        if column is None:
            self._unknown_field(field)
            return self
        self._clauses.add_order(column, direction)
        return self

    def limit(self, value: int) -> TableQuery[R]:
        self._clauses.set_limit(value)
        return self

    def offset(self, value: int) -> TableQuery[R]:
        self._clauses.set_offset(value)
        return self

    def join(self) -> JoinQuery:
        """Start a :class:`~recordql.compile.join_query.JoinQuery` from this builder."""
        from recordql.compile.join_query import JoinQuery

        return JoinQuery(self)

    # ------------------------------------------------------------------
    # Statement rendering
    # ------------------------------------------------------------------

    def _column_list(self, alias: str | None) -> str:
        if alias is not None:
            columns = [f"{f.column} AS {alias}_{f.column}" for f in self._spec.stored]
            columns += [f"({f.computed}) AS {alias}_{f.column}" for f in self._spec.computed]
            return ", ".join(columns)
        columns = ["*"] + [f"({f.computed}) AS {f.column}" for f in self._spec.computed]
        return ", ".join(columns)

    def _soft_delete_filter(self) -> str:
        return f"{self._spec.get('is_deleted').column} = false"

    def _compose(
        self,
        alias: str | None,
        limit: int | None,
        offset: int | None,
        for_join: bool,
    ) -> CompiledStatement:
        where_sql, params = self._clauses.render_where(mandatory=[self._soft_delete_filter()])
        text = join_sql(
            f"SELECT {self._column_list(alias)} FROM {self._table}",
            where_sql,
            self._clauses.render_order(),
            render_window(limit, offset),
        )
        if not for_join:
            text = number_placeholders(text)
        return CompiledStatement(text=text, params=params)

    def build_statement(
        self,
        alias: str | None = None,
        default_limit: int | None = None,
        default_offset: int | None = None,
        for_join: bool = False,
    ) -> CompiledStatement:
        """Render the SELECT for the accumulated state without consuming it.

        Args:
            alias: Join-subquery mode; every column is projected as
                ``<alias>_<column>``.
            default_limit: LIMIT used when none was set explicitly.
            default_offset: OFFSET used when none was set explicitly.
            for_join: Leave placeholders unnumbered for the enclosing join.
        """
        limit, offset = self._clauses.resolve_window(default_limit, default_offset)
        return self._compose(alias, limit, offset, for_join)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run(self, statement: CompiledStatement, operation: str) -> list[dict[str, Any]] | None:
        try:
            return self._executor(statement.text, statement.params)
        except Exception as exc:
            logger.error(
                "table_query.execute_failed",
                table=self._table,
                operation=operation,
                error=str(exc),
            )
            raise

    def _hydrate(self, rows: list[dict[str, Any]]) -> list[R]:
        return [self._record_type.from_row(row) for row in rows]

    def execute(self) -> list[R] | None:
        """Run the accumulated SELECT and reset the builder.

        Returns:
            The matching entities, or ``None`` if the executor returned no
            result set.
        """
        statement = self.build_statement(default_limit=self._default_limit, default_offset=0)
        self.reset()
        rows = self._run(statement, "select")
        if rows is None:
            return None
        return self._hydrate(rows)

    def paginated_execute(self, page: int = 1, page_size: int | None = None) -> Page[R] | None:
        """Run a COUNT and one page of the accumulated SELECT.

        Explicit ``limit``/``offset`` calls are superseded by the page window.

        Returns:
            A :class:`~recordql.compile.base.Page`, or ``None`` if either
            statement produced no result.
        """
        page, page_size, offset = clamp_page(
            page, self._default_page_size if page_size is None else page_size
        )
        count_statement = self._compose(None, None, None, for_join=False).count_statement()
        page_statement = self._compose(None, page_size, offset, for_join=False)
        self.reset()

        count_rows = self._run(count_statement, "count")
        if not count_rows or count_rows[0].get("count") is None:
            return None
        rows = self._run(page_statement, "select")
        if rows is None:
            return None
        return Page.build(self._hydrate(rows), page, page_size, int(count_rows[0]["count"]))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    @overload
    def read(self, id: str) -> R | None: ...

    @overload
    def read(self, id: Sequence[str]) -> list[R] | None: ...

    def read(self, id):
        """Fetch by primary key: one id returns one entity, a list returns a list."""
        if isinstance(id, (list, tuple)):
            return self.where("id", Operator.IN, list(id)).execute()
        records = self.where("id", Operator.EQ, id).execute()
        if not records:
            return None
        return records[0]

    @overload
    def create(self, entity: R) -> R | None: ...

    @overload
    def create(self, entity: Sequence[R]) -> list[R] | None: ...

    def create(self, entity):
        """Insert one entity or a batch in a single statement.

        Stamps ``create_date``, clears ``update_date`` and ``is_deleted`` and
        writes the generated ids back onto the entities in order.
        """
        if isinstance(entity, (list, tuple)):
            if not entity:
                return None
            return self._insert(list(entity))
        created = self._insert([entity])
        return created[0] if created else None

    def _insert(self, entities: list[R]) -> list[R] | None:
        now = _now()
        for entity in entities:
            entity.create_date = now
            entity.update_date = None
            entity.is_deleted = False

        specs = [f for f in self._spec.stored if f.name != "id"]
        columns = ", ".join(f.column for f in specs)
        groups: list[str] = []
        params: list[Any] = []
        for entity in entities:
            groups.append(f"({', '.join(PLACEHOLDER for _ in specs)})")
            params.extend(getattr(entity, f.name) for f in specs)
        text = number_placeholders(
            f"INSERT INTO {self._table} ({columns}) VALUES {', '.join(groups)} RETURNING id"
        )

        rows = self._run(CompiledStatement(text=text, params=params), "insert")
        if not rows:
            return None
        for entity, row in zip(entities, rows):
            if row.get("id") is not None:
                entity.id = str(row["id"])
        return entities

    @overload
    def update(self, entity: R) -> R | None: ...

    @overload
    def update(self, entity: Sequence[R]) -> list[R] | None: ...

    def update(self, entity):
        """Write every stored field of an entity back, keyed by id.

        An update always clears ``is_deleted``; updating a soft-deleted
        entity restores it.
        """
        if isinstance(entity, (list, tuple)):
            if not entity:
                return None
            updated: list[R] = []
            for item in entity:
                try:
                    result = self._update_one(item)
                except Exception as exc:
                    logger.warning(
                        "update.batch_item_failed",
                        table=self._table,
                        id=item.id,
                        error=str(exc),
                        exc_info=True,
                    )
                    continue
                if result is not None:
                    updated.append(result)
            return updated
        return self._update_one(entity)

    def _update_one(self, entity: R) -> R | None:
        entity.update_date = _now()
        entity.is_deleted = False

        specs = [f for f in self._spec.stored if f.name not in ("id", "create_date")]
        assignments = ", ".join(f"{f.column} = {PLACEHOLDER}" for f in specs)
        params: list[Any] = [getattr(entity, f.name) for f in specs]
        params.append(entity.id)
        text = number_placeholders(
            f"UPDATE {self._table} SET {assignments} WHERE id = {PLACEHOLDER} RETURNING id"
        )

        rows = self._run(CompiledStatement(text=text, params=params), "update")
        if not rows:
            return None
        return entity

    @overload
    def delete(self, entity: R) -> bool: ...

    @overload
    def delete(self, entity: Sequence[R]) -> list[bool] | bool: ...

    def delete(self, entity):
        """Soft-delete by id; rows are never physically removed.

        A batch runs sequentially and stops at the first failure, which
        propagates to the caller.
        """
        if isinstance(entity, (list, tuple)):
            if not entity:
                return False
            return [self._delete_one(item) for item in entity]
        return self._delete_one(entity)

    def _delete_one(self, entity: R) -> bool:
        column = self._spec.get("is_deleted").column
        statement = CompiledStatement(
            text=f"UPDATE {self._table} SET {column} = true WHERE id = $1 RETURNING id",
            params=[entity.id],
        )
        rows = self._run(statement, "delete")
        deleted = bool(rows) and rows[0].get("id") is not None
        if deleted:
            entity.is_deleted = True
        return deleted
