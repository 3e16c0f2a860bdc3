"""recordQL – typed records and fluent query builders for PostgreSQL.

Public API
----------
``Record``
    Base model for mapped entities.  Subclasses declare ``__tablename__``,
    ``__columns__`` and, optionally, ``__computed__``.

``TableQuery``
    Fluent single-table SELECT / INSERT / UPDATE / soft-DELETE builder.

``JoinQuery``
    Composes several ``TableQuery`` subqueries into one joined SELECT and
    splits each result row back into per-table entities.

Quick start::

    from recordql import Record, TableQuery

    class User(Record):
        __tablename__ = "users"
        __columns__ = {"name": "name", "email": "email"}

        name: str = ""
        email: Optional[str] = None

    users = TableQuery(User).where("name", "like", "A%").execute()

Statements run through :func:`recordql.db.query.run_query` unless a builder
is given its own ``executor``.  Connection settings come from
``RECORDQL_*`` environment variables (see :mod:`recordql.config`).
"""

from __future__ import annotations

from recordql.compile.base import CompiledStatement, Page
from recordql.compile.clauses import Direction, Operator, Transform
from recordql.compile.join_query import JoinQuery
from recordql.compile.table_query import Executor, TableQuery
from recordql.config import Settings, get_settings
from recordql.db.pool import close_pool, configure_db, get_pool
from recordql.db.query import run_query
from recordql.errors import (
    ColumnResolutionError,
    ConfigurationError,
    EntityDefinitionError,
    ExecutionError,
    InvalidClauseError,
    RecordQLError,
)
from recordql.schema.column_reference import ColumnReference
from recordql.schema.record import FieldSpec, Record, TableSpec
from recordql.utils.logging import configure_logging, get_logger

__all__ = [
    # Entities
    "Record",
    "FieldSpec",
    "TableSpec",
    "ColumnReference",
    # Builders
    "TableQuery",
    "JoinQuery",
    "Executor",
    "Operator",
    "Direction",
    "Transform",
    "CompiledStatement",
    "Page",
    # Execution
    "run_query",
    "configure_db",
    "get_pool",
    "close_pool",
    # Configuration & logging
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Errors
    "RecordQLError",
    "ConfigurationError",
    "EntityDefinitionError",
    "InvalidClauseError",
    "ColumnResolutionError",
    "ExecutionError",
]
