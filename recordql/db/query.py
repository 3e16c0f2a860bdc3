"""The execution collaborator used by the query builders by default."""
from __future__ import annotations

from typing import Any, Sequence

import psycopg

from recordql.db.pool import get_pool
from recordql.errors import ExecutionError
from recordql.utils.logging import get_logger

logger = get_logger(__name__)


def run_query(statement: str, params: Sequence[Any] = ()) -> list[dict[str, Any]] | None:
    """Run one statement on a pooled connection.

    The connection block commits when the statement succeeds and rolls back
    when it fails.

    Args:
        statement: SQL with ``$1..$n`` placeholders.
        params: Values for the placeholders, in order.

    Returns:
        The result rows as dicts, or ``None`` if the statement produced no
        result set.

    Raises:
        ExecutionError: On any driver error, chained to it.
    """
    try:
        with get_pool().connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(statement, list(params))
                if cursor.description is None:
                    return None
                return cursor.fetchall()
    except psycopg.Error as exc:
        logger.error(
            "query.failed",
            statement=statement,
            param_count=len(params),
            error=str(exc),
        )
        raise ExecutionError(f"Query failed: {exc}", statement=statement) from exc
