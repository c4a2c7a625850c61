"""
Database manager configuration.

This module handles loading and accessing configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/manager.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The
ManagerConfig dataclass provides typed access to all settings.

Usage:
    from db_manager.config import config

    print(config.database.absolute_path)
    print(config.error_log.table)

Environment Variable Mapping:
    DBM_DB_PATH          -> database.path
    DBM_BUSY_TIMEOUT_MS  -> database.busy_timeout_ms
    DBM_ERROR_LOG        -> error_log.enabled
    DBM_ERROR_TABLE      -> error_log.table
    DBM_DEFAULT_SHAPE    -> query.default_shape
    DBM_LOG_LEVEL        -> logging.level
"""

import configparser
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "manager.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "manager.example.ini"

# Plain SQL identifier accepted for the error table name.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SHAPE_NAMES = ("object", "assoc", "num")


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/app.db"
    busy_timeout_ms: int = 5000

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file (``:memory:`` is passed through)."""
        if self.path == ":memory:":
            return Path(self.path)
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class ErrorLogSettings:
    """Error-table logging configuration."""

    enabled: bool = False
    table: str = "database_errors"


@dataclass
class QuerySettings:
    """Query helper defaults."""

    default_shape: Literal["object", "assoc", "num"] = "object"


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class ManagerConfig:
    """
    Complete manager configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    error_log: ErrorLogSettings = field(default_factory=ErrorLogSettings)
    query: QuerySettings = field(default_factory=QuerySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def is_valid_table_name(name: str) -> bool:
    """Return True when ``name`` is a plain, unquoted SQL identifier."""
    return bool(_IDENTIFIER_RE.match(name))


def _load_from_ini(parser: configparser.ConfigParser, cfg: ManagerConfig) -> None:
    """Load configuration from parsed INI file into ManagerConfig."""
    # Database section
    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")
        if parser.has_option("database", "busy_timeout_ms"):
            cfg.database.busy_timeout_ms = parser.getint("database", "busy_timeout_ms")

    # Error log section
    if parser.has_section("error_log"):
        if parser.has_option("error_log", "enabled"):
            cfg.error_log.enabled = _parse_bool(parser.get("error_log", "enabled"))
        if parser.has_option("error_log", "table"):
            cfg.error_log.table = parser.get("error_log", "table").strip()

    # Query section
    if parser.has_section("query"):
        if parser.has_option("query", "default_shape"):
            val = parser.get("query", "default_shape").lower()
            if val in _SHAPE_NAMES:
                cfg.query.default_shape = val  # type: ignore[assignment]

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: ManagerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Database settings
    if env_db := os.getenv("DBM_DB_PATH"):
        cfg.database.path = env_db
    if env_timeout := os.getenv("DBM_BUSY_TIMEOUT_MS"):
        cfg.database.busy_timeout_ms = int(env_timeout)

    # Error log settings
    if env_error_log := os.getenv("DBM_ERROR_LOG"):
        cfg.error_log.enabled = _parse_bool(env_error_log)
    if env_table := os.getenv("DBM_ERROR_TABLE"):
        cfg.error_log.table = env_table.strip()

    # Query settings
    if env_shape := os.getenv("DBM_DEFAULT_SHAPE"):
        if env_shape.lower() in _SHAPE_NAMES:
            cfg.query.default_shape = env_shape.lower()  # type: ignore[assignment]

    # Logging settings
    if env_log := os.getenv("DBM_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()


def load_config() -> ManagerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/manager.ini
        3. config/manager.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        ManagerConfig: Fully populated configuration object.
    """
    cfg = ManagerConfig()

    # Determine which config file to use
    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "ManagerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Managers that were
    already built keep the settings they were constructed with.

    Returns:
        ManagerConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# CONFIGURATION HELPERS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for debugging deployments.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "error_logging": config.error_log.enabled,
        "errors_table": config.error_log.table,
        "errors_table_valid": is_valid_table_name(config.error_log.table),
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("DB-MANAGER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to manager.ini to customise)")
    print("-" * 60)
    print(f"Database:     {config.database.absolute_path}")
    print(f"Busy timeout: {config.database.busy_timeout_ms} ms")
    print(f"Error log:    {'enabled' if status['error_logging'] else 'disabled'}")
    print(f"Error table:  {status['errors_table']}")
    if not status["errors_table_valid"]:
        print("WARNING: Error table name is not a plain SQL identifier")
    print(f"Row shape:    {config.query.default_shape}")
    print(f"Log level:    {config.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# LOGGING
# =============================================================================


class _JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


_LOG_FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
}


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Install a root handler that follows the ``[logging]`` settings."""
    settings = settings or config.logging
    handler = logging.StreamHandler()
    if settings.format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_LOG_FORMATS[settings.format]))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.level)


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from db_manager.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                db = DatabaseManager.connect()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
