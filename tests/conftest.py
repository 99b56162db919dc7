"""Pytest configuration: environment loading, markers and shared fakes.

.whi_env is loaded FIRST (when present) so settings and the opt-in MySQL
integration suite read their values from it rather than from the shell.
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

_WHI_ENV_FILE = Path(__file__).parent.parent / ".whi_env"
if _WHI_ENV_FILE.exists():
    load_dotenv(_WHI_ENV_FILE, override=True)

import os
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from warehouse_import.config import get_settings
from warehouse_import.infrastructure.sql import get_dialect
from warehouse_import.infrastructure.sql.dialects import StorageCredentials

INTEGRATION_MARK = "integration"
MYSQL_URL_ENV = "WHI_TEST_MYSQL_URL"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests without a database")
    config.addinivalue_line(
        "markers", f"{INTEGRATION_MARK}: tests against a live MySQL ({MYSQL_URL_ENV})"
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Skip the integration suite unless a test database URL is configured."""
    if os.getenv(MYSQL_URL_ENV):
        return
    skip_integration = pytest.mark.skip(
        reason=f"Set {MYSQL_URL_ENV} to run the MySQL integration suite."
    )
    for item in items:
        if INTEGRATION_MARK in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached process-wide; tests that patch env vars need a reset."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


CREDENTIALS = StorageCredentials(
    access_key_id="AKIATEST", secret_access_key="s3cr3t", region="us-east-1"
)


class FakeConnection:
    """
    Stand-in for ``ConnectionAdapter`` that records every statement.

    ``responses`` maps a SQL prefix to the rows ``fetch_all`` returns for it;
    ``failures`` maps a SQL prefix to the exception ``execute``/``fetch_all``
    raises. ``rowcount`` is what ``execute`` reports.
    """

    def __init__(self, dialect_name: str = "mysql", rowcount: int = 1):
        self.dialect = get_dialect(dialect_name, credentials=CREDENTIALS)
        self.statements: List[str] = []
        self.params: List[Optional[Dict[str, Any]]] = []
        self.responses: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[str, BaseException] = {}
        self.rowcount = rowcount
        self.transactions = 0
        self.in_transaction = False

    def _record(self, sql: str, params) -> None:
        self.statements.append(sql)
        self.params.append(dict(params) if params else None)
        for prefix, error in self.failures.items():
            if sql.lstrip().startswith(prefix):
                raise error

    def execute(self, sql: str, params=None) -> int:
        self._record(sql, params)
        return self.rowcount

    def fetch_all(self, sql: str, params=None) -> List[Dict[str, Any]]:
        self._record(sql, params)
        stripped = sql.strip()
        for prefix, rows in self.responses.items():
            if stripped.startswith(prefix) or prefix in stripped:
                return [dict(r) for r in rows]
        return []

    def transaction(self):
        outer = self

        class _Transaction:
            def __enter__(self):
                outer.transactions += 1
                outer.in_transaction = True
                outer.statements.append("BEGIN")

            def __exit__(self, exc_type, exc, tb):
                outer.in_transaction = False
                outer.statements.append("ROLLBACK" if exc_type else "COMMIT")
                return False

        return _Transaction()

    def matching(self, fragment: str) -> List[str]:
        return [s for s in self.statements if fragment in s]


@pytest.fixture
def fake_mysql() -> FakeConnection:
    return FakeConnection("mysql")


@pytest.fixture
def fake_redshift() -> FakeConnection:
    return FakeConnection("redshift")


@pytest.fixture
def fake_snowflake() -> FakeConnection:
    return FakeConnection("snowflake")


@pytest.fixture
def blob_fetcher() -> MagicMock:
    fetcher = MagicMock()
    fetcher.exists.return_value = True
    return fetcher


@pytest.fixture
def make_connection():
    """Factory for ``FakeConnection`` with a chosen dialect."""
    return FakeConnection
