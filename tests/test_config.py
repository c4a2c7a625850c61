"""Tests for db_manager.config loading, overrides and logging setup."""

import configparser
import json
import logging
from pathlib import Path

import pytest

from db_manager import config as config_module
from db_manager.config import (
    DatabaseSettings,
    LoggingSettings,
    ManagerConfig,
    _load_from_ini,
    configure_logging,
    is_valid_table_name,
    load_config,
    print_config_summary,
    reload_config,
    use_test_database,
)

_ENV_VARS = (
    "DBM_DB_PATH",
    "DBM_BUSY_TIMEOUT_MS",
    "DBM_ERROR_LOG",
    "DBM_ERROR_TABLE",
    "DBM_DEFAULT_SHAPE",
    "DBM_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
def test_defaults():
    cfg = ManagerConfig()

    assert cfg.database.path == "data/app.db"
    assert cfg.database.busy_timeout_ms == 5000
    assert cfg.error_log.enabled is False
    assert cfg.error_log.table == "database_errors"
    assert cfg.query.default_shape == "object"
    assert cfg.logging.level == "INFO"


@pytest.mark.unit
def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DBM_DB_PATH", "/tmp/shop.db")
    monkeypatch.setenv("DBM_BUSY_TIMEOUT_MS", "250")
    monkeypatch.setenv("DBM_ERROR_LOG", "yes")
    monkeypatch.setenv("DBM_ERROR_TABLE", " failed_queries ")
    monkeypatch.setenv("DBM_DEFAULT_SHAPE", "ASSOC")
    monkeypatch.setenv("DBM_LOG_LEVEL", "debug")

    cfg = load_config()

    assert cfg.database.path == "/tmp/shop.db"
    assert cfg.database.busy_timeout_ms == 250
    assert cfg.error_log.enabled is True
    assert cfg.error_log.table == "failed_queries"
    assert cfg.query.default_shape == "assoc"
    assert cfg.logging.level == "DEBUG"


@pytest.mark.unit
def test_unknown_shape_env_value_is_ignored(monkeypatch):
    monkeypatch.setenv("DBM_DEFAULT_SHAPE", "both")

    assert load_config().query.default_shape == "object"


@pytest.mark.unit
def test_ini_overrides():
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "database": {"path": "var/errors.db", "busy_timeout_ms": "1000"},
            "error_log": {"enabled": "on", "table": "sql_errors"},
            "query": {"default_shape": "num"},
            "logging": {"level": "warning", "format": "json"},
        }
    )

    cfg = ManagerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.database.path == "var/errors.db"
    assert cfg.database.busy_timeout_ms == 1000
    assert cfg.error_log.enabled is True
    assert cfg.error_log.table == "sql_errors"
    assert cfg.query.default_shape == "num"
    assert cfg.logging.level == "WARNING"
    assert cfg.logging.format == "json"


@pytest.mark.unit
def test_ini_invalid_choices_keep_defaults():
    parser = configparser.ConfigParser()
    parser.read_dict({"query": {"default_shape": "lazy"}, "logging": {"format": "xml"}})

    cfg = ManagerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.query.default_shape == "object"
    assert cfg.logging.format == "detailed"


@pytest.mark.unit
def test_absolute_path_resolution():
    assert DatabaseSettings(path=":memory:").absolute_path == Path(":memory:")
    assert DatabaseSettings(path="/var/app.db").absolute_path == Path("/var/app.db")
    assert DatabaseSettings(path="data/app.db").absolute_path == (
        config_module.PROJECT_ROOT / "data" / "app.db"
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "name, valid",
    [
        ("database_errors", True),
        ("_errors2", True),
        ("Errors", True),
        ("", False),
        ("2errors", False),
        ("errors table", False),
        ("main.errors", False),
        ('"errors"', False),
        ("errors;--", False),
    ],
)
def test_is_valid_table_name(name, valid):
    assert is_valid_table_name(name) is valid


@pytest.mark.unit
def test_reload_config_replaces_singleton(monkeypatch):
    monkeypatch.setattr(config_module, "config", config_module.config)
    monkeypatch.setenv("DBM_ERROR_TABLE", "reloaded_errors")

    cfg = reload_config()

    assert cfg is config_module.config
    assert config_module.config.error_log.table == "reloaded_errors"


@pytest.mark.unit
def test_use_test_database_restores_path(tmp_path):
    original = config_module.config.database.path

    with use_test_database(tmp_path / "x.db") as db_path:
        assert db_path == tmp_path / "x.db"
        assert config_module.config.database.path == str(tmp_path / "x.db")

    assert config_module.config.database.path == original


@pytest.mark.unit
def test_configure_logging_detailed(restore_root_logger):
    configure_logging(LoggingSettings(level="DEBUG", format="detailed"))

    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1
    assert "%(name)s" in restore_root_logger.handlers[0].formatter._fmt


@pytest.mark.unit
def test_configure_logging_json(restore_root_logger):
    configure_logging(LoggingSettings(level="WARNING", format="json"))

    handler = restore_root_logger.handlers[0]
    record = logging.LogRecord(
        "db_manager.test", logging.WARNING, __file__, 1, "hi %s", ("x",), None
    )
    payload = json.loads(handler.formatter.format(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "db_manager.test"
    assert payload["message"] == "hi x"


@pytest.mark.unit
def test_print_config_summary(capsys):
    print_config_summary()

    output = capsys.readouterr().out
    assert "DB-MANAGER CONFIGURATION" in output
    assert "Error table:" in output
    assert "Row shape:" in output
