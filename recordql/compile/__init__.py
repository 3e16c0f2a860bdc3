"""recordQL statement builders: clauses, single-table and join queries."""
from recordql.compile.base import CompiledStatement, Page
from recordql.compile.clauses import ClauseBuilder, Direction, Operator, Transform
from recordql.compile.join_query import JoinQuery
from recordql.compile.table_query import TableQuery

__all__ = [
    "CompiledStatement",
    "Page",
    "ClauseBuilder",
    "Direction",
    "Operator",
    "Transform",
    "JoinQuery",
    "TableQuery",
]
