"""
Command-line interface for db-manager.

Provides CLI commands around the error table and a walkthrough of the query
helpers:
- init-error-table: Create the error table in a database
- errors: Print the statement errors logged so far
- config: Print the effective configuration
- demo: Build a small product table and exercise every helper

Usage:
    db-manager init-error-table [--db PATH] [--table NAME]
    db-manager errors [--db PATH] [--limit N] [--format table|yaml]
    db-manager config
    db-manager demo [--db PATH]

Environment Variables:
    DBM_DB_PATH: Database file (default: data/app.db)
    DBM_ERROR_TABLE: Error table name (default: database_errors)
    DBM_LOG_LEVEL: Log level for the CLI (default: INFO)
"""

import argparse
import sys
from dataclasses import replace
from typing import Any

import yaml

from db_manager import __version__


def _settings(args: argparse.Namespace):
    """Configuration with the command-line overrides applied."""
    from db_manager.config import config

    settings = config
    if getattr(args, "table", None):
        settings = replace(config, error_log=replace(config.error_log, table=args.table))
    return settings


def _format_table(rows: list[dict[str, Any]]) -> str:
    """Render rows as fixed-width text columns."""
    from db_manager.db.constants import ERROR_TABLE_COLUMNS

    widths = {
        column: max([len(column)] + [len(str(row[column])) for row in rows])
        for column in ERROR_TABLE_COLUMNS
    }
    lines = ["  ".join(column.ljust(widths[column]) for column in ERROR_TABLE_COLUMNS)]
    lines.append("  ".join("-" * widths[column] for column in ERROR_TABLE_COLUMNS))
    for row in rows:
        lines.append(
            "  ".join(str(row[column]).ljust(widths[column]) for column in ERROR_TABLE_COLUMNS)
        )
    return "\n".join(lines)


def cmd_init_error_table(args: argparse.Namespace) -> int:
    """
    Create the error table.

    Returns:
        0 on success, 1 on error
    """
    from db_manager.db import DatabaseManager, create_error_table
    from db_manager.db.errors import ConfigurationError

    try:
        with DatabaseManager.connect(args.db, settings=_settings(args)) as db:
            if not create_error_table(db):
                print(f"Error: could not create table '{db.errors_table}'.", file=sys.stderr)
                return 1
            print(f"Error table '{db.errors_table}' is ready.")
            return 0
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_errors(args: argparse.Namespace) -> int:
    """
    Print logged statement errors.

    Returns:
        0 on success, 1 on error
    """
    from db_manager.db import DatabaseManager, fetch_logged_errors, is_failure
    from db_manager.db.errors import ConfigurationError

    try:
        db = DatabaseManager.connect(args.db, settings=_settings(args), error_logging=False)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with db:
        rows = fetch_logged_errors(db, limit=args.limit)
        if is_failure(rows):
            print(f"Error reading '{db.errors_table}': {rows.error}", file=sys.stderr)
            return 1

    if not rows:
        print("No errors logged.")
    elif args.format == "yaml":
        print(yaml.safe_dump(rows, sort_keys=False, allow_unicode=True), end="")
    else:
        print(_format_table(rows))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """
    Print the effective configuration.

    Returns:
        0 always
    """
    from db_manager.config import print_config_summary

    print_config_summary()
    return 0


# ============================================================================
# DEMO
# ============================================================================

_DEMO_PRODUCTS = [
    ("Python for Beginners", 15.00, 100),
    ("The Lord of the Rings Trilogy", 46.74, 25),
    ("1984", 13.42, 0),
]


def _show(title: str, value: Any) -> None:
    print(f"{title}:")
    print(yaml.safe_dump(_plain(value), sort_keys=False, allow_unicode=True))


def _plain(value: Any) -> Any:
    """Convert rows (namespaces, tuples) into YAML-safe builtins."""
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if hasattr(value, "__dict__"):
        return _plain(vars(value))
    return value


def cmd_demo(args: argparse.Namespace) -> int:
    """
    Walk through every query helper on a throwaway product table.

    Returns:
        0 on success, 1 on error
    """
    from db_manager.db import (
        DatabaseManager,
        ReturnShape,
        count_logged_errors,
        create_error_table,
        is_failure,
    )
    from db_manager.db.errors import ConfigurationError

    try:
        db = DatabaseManager.connect(args.db or ":memory:", error_logging=True)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with db:
        create_error_table(db)
        db.execute("DROP TABLE IF EXISTS test_table")
        db.execute(
            """
            CREATE TABLE test_table (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                label TEXT NOT NULL,
                price REAL NOT NULL,
                stock INTEGER NOT NULL
            )
            """
        )
        for product in _DEMO_PRODUCTS:
            if is_failure(
                db.execute("INSERT INTO test_table (label, price, stock) VALUES (?, ?, ?)", product)
            ):
                print("Error: could not insert sample data.", file=sys.stderr)
                return 1

        product_id = db.query_value("SELECT id FROM test_table WHERE label = ?", "1984")
        db.execute("UPDATE test_table SET stock = ? WHERE id = ?", (50, product_id))

        _show(
            "Product labels",
            db.query_column("SELECT label FROM test_table ORDER BY label ASC"),
        )
        _show(
            "Specific row (assoc)",
            db.query_row(
                "SELECT * FROM test_table WHERE id = ?", product_id, shape=ReturnShape.ASSOC
            ),
        )
        _show(
            "Several rows (num)",
            db.query_all("SELECT * FROM test_table", shape=ReturnShape.NUM),
        )
        _show("Indexed rows (object)", db.query_indexed("SELECT * FROM test_table", "id"))
        _show(
            "Pairs of values",
            db.query_pairs("SELECT id, price FROM test_table ORDER BY price DESC"),
        )

        db.begin()
        db.execute("INSERT INTO missing_table VALUES (1)")
        print(f"Errors logged before rollback: {count_logged_errors(db)}")
        db.rollback()
        print(f"Errors logged after rollback: {count_logged_errors(db)}")
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    from db_manager.config import configure_logging

    parser = argparse.ArgumentParser(
        prog="db-manager",
        description="db-manager - query helpers with database error logging",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init-error-table command
    init_parser = subparsers.add_parser(
        "init-error-table",
        help="Create the error table",
        description="Create the table that receives failed statements, if it does not exist.",
    )
    init_parser.add_argument("--db", type=str, help="Database file (default: DBM_DB_PATH)")
    init_parser.add_argument("--table", type=str, help="Error table name")
    init_parser.set_defaults(func=cmd_init_error_table)

    # errors command
    errors_parser = subparsers.add_parser(
        "errors",
        help="Show logged statement errors",
        description="Print the rows of the error table, oldest first.",
    )
    errors_parser.add_argument("--db", type=str, help="Database file (default: DBM_DB_PATH)")
    errors_parser.add_argument("--table", type=str, help="Error table name")
    errors_parser.add_argument("--limit", "-n", type=int, help="Show at most N errors")
    errors_parser.add_argument(
        "--format",
        choices=["table", "yaml"],
        default="table",
        help="Output format (default: table)",
    )
    errors_parser.set_defaults(func=cmd_errors)

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show the effective configuration",
        description="Print where settings were loaded from and their current values.",
    )
    config_parser.set_defaults(func=cmd_config)

    # demo command
    demo_parser = subparsers.add_parser(
        "demo",
        help="Run the query helper walkthrough",
        description="Create a sample product table and print the result of every helper.",
    )
    demo_parser.add_argument("--db", type=str, help="Database file (default: in-memory)")
    demo_parser.set_defaults(func=cmd_demo)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
