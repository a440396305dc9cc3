"""Shared test fixtures and configuration for dbmigrate tests."""

from typing import Callable, List, Optional, Type
from unittest.mock import Mock

import pytest

from dbmigrate.core.config import DriverConfig
from dbmigrate.engines.base import Driver
from dbmigrate.engines.gateway import QueryResult
from dbmigrate.engines.mysql import MySQLDriver
from dbmigrate.engines.pg import PostgreSQLDriver
from dbmigrate.engines.sqlite import SQLiteDriver

DRIVER_TYPES = {
    PostgreSQLDriver: "pg",
    MySQLDriver: "mysql",
    SQLiteDriver: "sqlite",
}


@pytest.fixture
def mock_connection() -> Mock:
    """Connection double returning an empty result for every statement."""
    connection = Mock()
    connection.query.return_value = QueryResult()
    return connection


@pytest.fixture
def make_driver(mock_connection: Mock) -> Callable[..., Driver]:
    """Build a driver of the given class around the mock connection."""

    def factory(
        driver_class: Type[Driver], dry_run: bool = False, connection: Optional[Mock] = None
    ) -> Driver:
        config = DriverConfig(driver=DRIVER_TYPES[driver_class], dry_run=dry_run)
        return driver_class(connection or mock_connection, config)

    return factory


@pytest.fixture
def pg_driver(make_driver) -> PostgreSQLDriver:
    return make_driver(PostgreSQLDriver)


@pytest.fixture
def mysql_driver(make_driver) -> MySQLDriver:
    return make_driver(MySQLDriver)


@pytest.fixture
def sqlite_driver(make_driver) -> SQLiteDriver:
    return make_driver(SQLiteDriver)


@pytest.fixture
def executed_sql(mock_connection: Mock) -> Callable[[], List[str]]:
    """Return the SQL text of every statement sent to the mock connection."""

    def statements() -> List[str]:
        return [c.args[0] for c in mock_connection.query.call_args_list]

    return statements

