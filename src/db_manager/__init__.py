"""db-manager: result-shaping query helpers with database error logging.

Wraps a single database connection with helpers that return rows, a row, a
column, a value, key/value pairs or an indexed map, and optionally records
every failed statement in an error table. Errors raised inside a transaction
are held back and written once the transaction commits or rolls back.

``__version__`` is read from the installed package metadata; the single
source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("db-manager")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
