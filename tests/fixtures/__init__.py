"""Test fixtures: sample Record types, a recording executor and sample DDL."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

from recordql.schema.record import Record

_FIXTURES_DIR = Path(__file__).parent


class User(Record):
    __tablename__ = "users"
    __columns__ = {
        "name": "name",
        "email": "email_address",
        "display_name": "display_name",
    }
    __computed__ = {"display_name": "upper(name)"}

    name: str = ""
    email: Optional[str] = None
    display_name: Optional[str] = None


class Order(Record):
    __tablename__ = "orders"
    __columns__ = {"user_id": "user_id", "total": "total", "status": "status"}

    user_id: str = ""
    total: int = 0
    status: str = "open"


class FakeExecutor:
    """Records every ``(statement, params)`` call and replays canned results.

    Each call consumes the next queued result.  A queued exception is raised
    instead of returned.  Once the queue is empty every call returns ``[]``.
    """

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, list[Any]]] = []

    def __call__(self, statement: str, params: Sequence[Any]) -> Optional[list[dict[str, Any]]]:
        self.calls.append((statement, list(params)))
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def statements(self) -> list[str]:
        return [statement for statement, _ in self.calls]

    @property
    def last(self) -> tuple[str, list[Any]]:
        return self.calls[-1]


def load_ddl() -> str:
    """Return the PostgreSQL DDL for the sample ``users`` / ``orders`` tables."""
    return (_FIXTURES_DIR / "ddl_postgres.sql").read_text()
