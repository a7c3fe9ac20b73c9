"""Tests for the ServerlessMySQL facade."""

import pytest

from client import ServerlessMySQL, serverless_mysql
from config import ServerlessMySQLSettings
from connection_management.connection_exceptions import InvalidConnectionStringError
from connection_management.driver import AiomysqlDriver
from serverless_mysql_exceptions import ConfigurationError

from conftest import FakeDriver, FakeMySQLError, InstantSleep


def test_connection_string_config():
    db = serverless_mysql(config="mysql://app:pw@db.example.com:3306/shop?connectTimeout=5")
    assert db.get_config() == {
        "host": "db.example.com",
        "user": "app",
        "password": "pw",
        "port": 3306,
        "database": "shop",
        "connectTimeout": "5",
    }
    assert isinstance(db.driver, AiomysqlDriver)


def test_connection_string_as_first_argument():
    db = serverless_mysql("mysql://app@localhost/shop", max_retries=4)
    assert db.get_config() == {"host": "localhost", "user": "app", "database": "shop"}
    assert db.settings.max_retries == 4


def test_options_mapping_as_first_argument():
    db = ServerlessMySQL({"config": {"host": "h"}, "backoff": "decorrelated", "cap": 500})
    assert db.get_config() == {"host": "h"}
    assert db.manager.strategy.name == "decorrelated"
    assert db.settings.cap == 500


def test_settings_object_with_overrides():
    settings = ServerlessMySQLSettings(max_retries=9, zombie_max_timeout=60)
    db = ServerlessMySQL(settings, config={"host": "h"}, max_retries=2)
    assert db.settings.max_retries == 2
    assert db.settings.zombie_max_timeout == 60

    same = ServerlessMySQL(settings, config={"host": "h"})
    assert same.settings is settings


def test_unknown_backoff_falls_back_to_full():
    db = serverless_mysql(config={}, backoff="full-jitter", query_retry_backoff="decorrelated-jitter")
    assert db.manager.strategy.name == "full"
    assert db.executor.strategy.name == "full"


def test_invalid_configuration():
    with pytest.raises(InvalidConnectionStringError):
        serverless_mysql(config="nonsense")
    with pytest.raises(ConfigurationError):
        serverless_mysql(config=42)
    with pytest.raises(ConfigurationError):
        serverless_mysql(max_retries=-1)
    with pytest.raises(ConfigurationError):
        ServerlessMySQL(3.14)


def test_config_merges_and_returns_live_dict():
    db = serverless_mysql(config={"host": "h", "user": "u"})

    merged = db.config({"database": "shop"})
    assert merged == {"host": "h", "user": "u", "database": "shop"}
    assert db.config() is db.get_config()

    db.config("mysql://other@db2:3307")
    assert db.get_config() == {"host": "db2", "user": "other", "port": 3307, "database": "shop"}

    with pytest.raises(ConfigurationError):
        db.config(["not", "a", "config"])


def test_escape_helpers_delegate_to_driver():
    db = serverless_mysql(config={})
    assert db.escape("it's") == "'it\\'s'"
    assert db.escape_id("shop.items") == "`shop`.`items`"
    assert db.format("SELECT * FROM ?? WHERE id = ?", ["items", 1]) == "SELECT * FROM `items` WHERE id = 1"


@pytest.mark.asyncio
async def test_callback_keywords_are_fired():
    driver = FakeDriver()
    driver.connect_errors = [FakeMySQLError("ER_CON_COUNT_ERROR")]
    connected, retried = [], []

    db = serverless_mysql(
        config={"host": "h", "user": "u"},
        library=driver,
        sleep=InstantSleep(),
        on_connect=connected.append,
        on_retry=lambda error, retries, delay, backoff: retried.append((retries, backoff)),
    )
    await db.connect()

    assert connected == [driver.handles[0]]
    assert retried == [(1, "full")]


@pytest.mark.asyncio
async def test_async_context_manager_calls_end(make_db, driver):
    driver.used_connections = 99
    async with make_db() as db:
        await db.query("SELECT 1")
        assert db.get_client() is not None

    assert db.get_client() is None


@pytest.mark.asyncio
async def test_counters(make_db, driver):
    db = make_db()
    assert db.get_counter() == 0
    assert db.get_client() is None

    await db.query("SELECT 1")
    await db.end()
    assert db.get_counter() == 1
    assert db.get_error_count() == 0
