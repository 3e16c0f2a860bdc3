"""Shared pytest fixtures for recordQL unit and integration tests."""
from __future__ import annotations

import pytest

from recordql.config import get_settings
from tests.fixtures import FakeExecutor


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch):
    """Give every test default settings, independent of the host environment."""
    for name in ("RECORDQL_STRICT_CLAUSES", "RECORDQL_DEFAULT_LIMIT", "RECORDQL_DEFAULT_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()
