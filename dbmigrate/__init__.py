"""
dbmigrate - dialect layer of a database schema migration tool.

Translates database-agnostic schema changes (create a table, add a column,
add an index, ...) into PostgreSQL, MySQL or SQLite SQL, executes it over a
single connection and keeps the migrations bookkeeping table.
"""

__version__ = "1.0.0"
__author__ = "dbmigrate contributors"

from dbmigrate.core.config import DriverConfig
from dbmigrate.core.exceptions import (
    ConfigurationError,
    ConnectionError,
    EngineError,
    ExecutionError,
    MigrateError,
    ValidationError,
)
from dbmigrate.core.types import (
    ColumnDefOptions,
    ColumnSpec,
    DataType,
    ForeignKeyOptions,
    MigrationRecord,
    TableOptions,
)
from dbmigrate.engines import Driver, DriverRegistry, connect, register_driver

__all__ = [
    "__version__",
    "connect",
    "Driver",
    "DriverRegistry",
    "register_driver",
    "DriverConfig",
    "DataType",
    "ColumnSpec",
    "ColumnDefOptions",
    "TableOptions",
    "ForeignKeyOptions",
    "MigrationRecord",
    "MigrateError",
    "ConfigurationError",
    "ValidationError",
    "EngineError",
    "ConnectionError",
    "ExecutionError",
]
