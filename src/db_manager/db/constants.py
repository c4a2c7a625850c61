"""Shared database constants for the DB package.

This module centralizes constants that are consumed by multiple DB submodules
so the error table layout, driver error mapping and tests cannot drift apart.
"""

from __future__ import annotations

# Conventional name of the table that receives captured statement errors.
DEFAULT_ERRORS_TABLE = "database_errors"

# Column order of the error table. ErrorRecord.as_row() follows this order.
ERROR_TABLE_COLUMNS = (
    "query",
    "error_code",
    "error_message",
    "file",
    "line",
    "function",
    "class",
)

# SQLSTATE values reported by the sqlite3 adapter.
SQLSTATE_GENERAL_ERROR = "HY000"
SQLSTATE_INTEGRITY_VIOLATION = "23000"
SQLSTATE_OK = "00000"
