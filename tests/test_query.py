"""Unit tests for run_query and the pool lifecycle, with psycopg faked out."""

from __future__ import annotations

from contextlib import contextmanager

import psycopg
import pytest
from structlog.testing import capture_logs

from recordql.config import Settings
from recordql.db import pool as pool_module
from recordql.db import query as query_module
from recordql.db.query import run_query
from recordql.errors import ConfigurationError, ExecutionError


class _FakeCursor:
    def __init__(self, rows=None, description=None, error=None):
        self.rows = rows or []
        self.description = description
        self.error = error
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params):
        self.executed.append((statement, params))
        if self.error is not None:
            raise self.error

    def fetchall(self):
        return self.rows


class _FakePool:
    def __init__(self, cursor):
        self._cursor = cursor

    @contextmanager
    def connection(self):
        yield self

    def cursor(self):
        return self._cursor


@pytest.fixture
def fake_pool(monkeypatch):
    def _install(cursor):
        pool = _FakePool(cursor)
        monkeypatch.setattr(query_module, "get_pool", lambda: pool)
        return pool

    return _install


@pytest.fixture
def pool_state(monkeypatch):
    """Start each pool-lifecycle test with no pool and no configured settings."""
    created = []

    class _RecordingPool:
        def __init__(self, conninfo, **kwargs):
            self.conninfo = conninfo
            self.kwargs = kwargs
            self.closed = False
            created.append(self)

        def close(self):
            self.closed = True

    monkeypatch.setattr(pool_module, "_pool", None)
    monkeypatch.setattr(pool_module, "_settings", None)
    monkeypatch.setattr(pool_module, "ConnectionPool", _RecordingPool)
    return created


# ---------------------------------------------------------------------------
# run_query
# ---------------------------------------------------------------------------


def test_run_query_returns_rows(fake_pool):
    cursor = _FakeCursor(rows=[{"id": "a"}], description=[("id",)])
    fake_pool(cursor)
    assert run_query("SELECT id FROM users WHERE name = $1", ("Ann",)) == [{"id": "a"}]
    assert cursor.executed == [("SELECT id FROM users WHERE name = $1", ["Ann"])]


def test_run_query_without_result_set(fake_pool):
    fake_pool(_FakeCursor(description=None))
    assert run_query("SET TIME ZONE 'UTC'") is None


def test_run_query_wraps_driver_errors(fake_pool):
    driver_error = psycopg.OperationalError("connection lost")
    fake_pool(_FakeCursor(error=driver_error))
    with capture_logs() as logs, pytest.raises(ExecutionError) as excinfo:
        run_query("SELECT 1", [])
    assert excinfo.value.__cause__ is driver_error
    assert excinfo.value.statement == "SELECT 1"
    assert logs[0]["event"] == "query.failed"
    assert logs[0]["log_level"] == "error"


def test_run_query_lets_other_errors_through(fake_pool):
    fake_pool(_FakeCursor(error=KeyError("boom")))
    with pytest.raises(KeyError):
        run_query("SELECT 1")


# ---------------------------------------------------------------------------
# Pool lifecycle
# ---------------------------------------------------------------------------


def test_get_pool_opens_once_with_configured_settings(pool_state):
    settings = Settings(_env_file=None, database_uri="postgresql://u@h/db", pool_max_size=4)
    pool_module.configure_db(settings)
    first = pool_module.get_pool()
    assert pool_module.get_pool() is first
    assert len(pool_state) == 1
    assert first.conninfo == "postgresql://u@h/db"
    assert first.kwargs["max_size"] == 4
    assert first.kwargs["kwargs"]["cursor_factory"] is psycopg.RawCursor


def test_configure_after_open_raises(pool_state):
    pool_module.configure_db(Settings(_env_file=None, database_uri="postgresql://u@h/db"))
    pool_module.get_pool()
    with pytest.raises(ConfigurationError) as excinfo:
        pool_module.configure_db(Settings(_env_file=None))
    assert excinfo.value.setting == "pool"


def test_close_pool_allows_reopen(pool_state):
    pool_module.configure_db(Settings(_env_file=None, database_uri="postgresql://u@h/db"))
    first = pool_module.get_pool()
    pool_module.close_pool()
    assert first.closed is True
    pool_module.configure_db(Settings(_env_file=None, database_uri="postgresql://u@h/other"))
    assert pool_module.get_pool().conninfo == "postgresql://u@h/other"


def test_close_pool_without_pool_is_noop(pool_state):
    pool_module.close_pool()
    assert pool_state == []
