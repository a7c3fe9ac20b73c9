"""Tests for pydantic settings loading."""

import pytest
from pydantic import ValidationError

from config import ConnectionSettings, ServerlessMySQLSettings, load_settings


def test_defaults():
    settings = ServerlessMySQLSettings()
    assert settings.backoff == "full"
    assert settings.base == 2
    assert settings.cap == 100
    assert settings.max_retries == 50
    assert settings.manage_conns is True
    assert settings.conn_utilization == 0.8
    assert settings.max_conns_freq == 15000
    assert settings.used_conns_freq == 0
    assert settings.zombie_min_timeout == 3
    assert settings.zombie_max_timeout == 900
    assert settings.return_final_sql_query is False
    assert settings.max_query_retries == 0
    assert settings.query_retry_backoff == "full"


def test_backoff_accepts_callables_and_normalizes_names():
    fn = lambda wait, retries: 10  # noqa: E731
    settings = ServerlessMySQLSettings(backoff=fn, query_retry_backoff=" Decorrelated ")
    assert settings.backoff is fn
    assert settings.query_retry_backoff == "decorrelated"


@pytest.mark.parametrize("field, value", [
    ("max_retries", -1),
    ("base", -5),
    ("conn_utilization", 0),
    ("conn_utilization", 1.5),
])
def test_invalid_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        ServerlessMySQLSettings(**{field: value})


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("SERVERLESS_MYSQL_MAX_RETRIES", "7")
    monkeypatch.setenv("SERVERLESS_MYSQL_BACKOFF", "decorrelated")
    monkeypatch.setenv("MYSQL_HOST", "env-host")
    monkeypatch.setenv("MYSQL_PORT", "3307")

    settings = ServerlessMySQLSettings()

    assert settings.max_retries == 7
    assert settings.backoff == "decorrelated"
    assert settings.connection.to_config() == {"host": "env-host", "port": 3307}


def test_connection_settings_merge_extra():
    connection = ConnectionSettings(host="h", user="u", extra={"ssl": True})
    assert connection.to_config() == {"host": "h", "user": "u", "ssl": True}


def test_load_settings_from_yaml(tmp_path):
    path = tmp_path / "serverless_mysql.yaml"
    path.write_text(
        "max_retries: 5\n"
        "zombie_max_timeout: 120\n"
        "connection:\n"
        "  host: yaml-host\n"
        "  database: shop\n"
    )

    settings = load_settings(str(path))

    assert settings.max_retries == 5
    assert settings.zombie_max_timeout == 120
    assert settings.connection.to_config() == {"host": "yaml-host", "database": "shop"}


def test_load_settings_without_file_uses_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yaml"))
    assert settings.max_retries == 50
