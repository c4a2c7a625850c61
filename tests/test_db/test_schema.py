"""Tests for the error table DDL and read-back helpers."""

import pytest

from db_manager.db import (
    CallSite,
    DatabaseManager,
    SQLiteDriver,
    count_logged_errors,
    create_error_table,
    fetch_logged_errors,
    is_failure,
)
from db_manager.db.constants import ERROR_TABLE_COLUMNS
from db_manager.db.schema import error_table_ddl
from tests.constants import BAD_SYNTAX_SQL, MISSING_TABLE_SQL


@pytest.mark.unit
def test_error_table_ddl_names_table():
    ddl = error_table_ddl("failed_queries")

    assert "CREATE TABLE IF NOT EXISTS failed_queries" in ddl


@pytest.mark.db
def test_error_table_columns_match_record_order(db):
    cursor = db.driver.connection.execute("PRAGMA table_info(database_errors)")
    columns = [row[1] for row in cursor.fetchall()]

    assert tuple(columns) == ERROR_TABLE_COLUMNS


@pytest.mark.db
def test_create_error_table_is_idempotent(db):
    assert create_error_table(db) is True
    assert create_error_table(db) is True


@pytest.mark.db
def test_create_error_table_with_custom_name(temp_db_path):
    db = DatabaseManager(
        SQLiteDriver.open(temp_db_path), error_logging=True, errors_table="failed_queries"
    )
    with db:
        assert create_error_table(db) is True
        db.query_all(MISSING_TABLE_SQL)
        assert count_logged_errors(db) == 1


@pytest.mark.db
def test_fetch_logged_errors_oldest_first(db):
    db.query_all(MISSING_TABLE_SQL)
    db.query_all(BAD_SYNTAX_SQL)

    rows = fetch_logged_errors(db)

    assert [row["query"] for row in rows] == [MISSING_TABLE_SQL, BAD_SYNTAX_SQL]
    assert list(rows[0]) == list(ERROR_TABLE_COLUMNS)
    assert rows[0]["function"] == "test_fetch_logged_errors_oldest_first"


@pytest.mark.db
def test_fetch_logged_errors_limit(db):
    for _ in range(3):
        db.query_all(MISSING_TABLE_SQL)

    assert len(fetch_logged_errors(db, limit=2)) == 2
    assert count_logged_errors(db) == 3


@pytest.mark.db
def test_read_helpers_fail_cleanly_without_error_table(temp_db_path, read_errors):
    with DatabaseManager.connect(temp_db_path, error_logging=True) as db:
        assert is_failure(fetch_logged_errors(db))
        assert is_failure(count_logged_errors(db))
        create_error_table(db)
        assert read_errors(db) == []


@pytest.mark.db
def test_failed_read_is_attributed_to_the_caller(db, read_errors):
    result = fetch_logged_errors(db, limit="many")

    assert is_failure(result)
    _, code, _, file, _, function, _ = read_errors(db)[0]
    assert code == 20
    assert file == __file__
    assert function == "test_failed_read_is_attributed_to_the_caller"


@pytest.mark.db
def test_failed_read_uses_explicit_call_site(db, read_errors):
    site = CallSite(file="report.py", line=7, function="nightly", component="Report")

    assert is_failure(fetch_logged_errors(db, limit="many", call_site=site))

    assert read_errors(db)[0][3:] == ("report.py", 7, "nightly", "Report")
