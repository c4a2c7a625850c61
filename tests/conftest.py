"""
Shared pytest fixtures for the db-manager test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary SQLite database files wired into the config system
- DatabaseManager instances with and without error-table logging
- The sample product table used by the query helper scenarios

Every fixture is function-scoped so each test gets a fresh database file.
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from db_manager.config import ManagerConfig, use_test_database
from db_manager.db import DatabaseManager, create_error_table

from tests.constants import PRODUCT_ROWS

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Create a temporary database path for testing.

    Uses the config system's use_test_database context manager so code that
    falls back to the configured path also lands in the temporary directory.

    Yields:
        Path to temporary database file
    """
    with use_test_database(tmp_path / "test.db") as db_path:
        yield db_path


@pytest.fixture(scope="function")
def settings() -> ManagerConfig:
    """Built-in defaults, isolated from config files and DBM_* variables."""
    return ManagerConfig()


@pytest.fixture(scope="function")
def db(temp_db_path: Path, settings: ManagerConfig) -> Generator[DatabaseManager, None, None]:
    """
    Manager with error-table logging enabled and the error table created.

    Yields:
        Open DatabaseManager; closed after the test.
    """
    manager = DatabaseManager.connect(temp_db_path, settings=settings, error_logging=True)
    assert create_error_table(manager)
    yield manager
    manager.close()


@pytest.fixture(scope="function")
def db_no_logging(
    temp_db_path: Path, settings: ManagerConfig
) -> Generator[DatabaseManager, None, None]:
    """Manager with error-table logging disabled (error table still created)."""
    manager = DatabaseManager.connect(temp_db_path, settings=settings, error_logging=False)
    assert create_error_table(manager)
    yield manager
    manager.close()


def _create_products(manager: DatabaseManager) -> None:
    manager.execute(
        """
        CREATE TABLE t (
            id INTEGER PRIMARY KEY,
            label TEXT NOT NULL UNIQUE,
            price REAL NOT NULL,
            stock INTEGER NOT NULL
        )
        """
    )
    for row in PRODUCT_ROWS:
        manager.execute("INSERT INTO t (id, label, price, stock) VALUES (?, ?, ?, ?)", row)


@pytest.fixture(scope="function")
def products(db: DatabaseManager) -> DatabaseManager:
    """Logging manager with table ``t(id, label, price, stock)`` and three rows."""
    _create_products(db)
    return db


@pytest.fixture(scope="function")
def products_no_logging(db_no_logging: DatabaseManager) -> DatabaseManager:
    """Non-logging manager with the sample product table."""
    _create_products(db_no_logging)
    return db_no_logging


# ============================================================================
# HELPERS
# ============================================================================


def _logged_errors(manager: DatabaseManager) -> list[tuple]:
    """Read the error table directly through the sqlite3 connection."""
    cursor = manager.driver.connection.execute(
        f"SELECT * FROM {manager.errors_table} ORDER BY rowid"
    )
    try:
        return cursor.fetchall()
    finally:
        cursor.close()


@pytest.fixture(scope="function")
def read_errors():
    """
    Callable returning the raw error-table rows of a manager.

    Reads bypass the manager so they never produce error records themselves.
    """
    return _logged_errors
