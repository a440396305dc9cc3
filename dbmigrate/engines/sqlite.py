"""
SQLite driver implementation.

This module provides the SQLite dialect, a sqlite3 connection wrapper and
the driver. SQLite cannot alter column definitions or add foreign keys to
an existing table, so those operations raise EngineError.
"""

import logging
import sqlite3
from typing import Any, Optional, Sequence

from ..core.config import DriverConfig
from ..core.exceptions import ConnectionError, EngineError, ExecutionError
from ..core.types import (
    ColumnDefOptions,
    ColumnSpec,
    DriverType,
    sanitize_connection_string,
)
from .base import ColumnSpecLike, Driver, ForeignKeyOptionsLike, register_driver
from .dialect import Dialect, GenericDialect
from .gateway import Connection, QueryResult

logger = logging.getLogger(__name__)

MIN_SQLITE_VERSION = (3, 8, 6)


class SQLiteDialect:
    """SQLite dialect: double-quoted identifiers and ``?`` placeholders."""

    def __init__(self) -> None:
        self._generic = GenericDialect(
            name="sqlite",
            quote_char='"',
            bracket_quote='"',
            placeholder_style="qmark",
            auto_increment="AUTOINCREMENT",
        )
        self.name = self._generic.name
        self.bracket_quote = self._generic.bracket_quote
        self.placeholder_style = self._generic.placeholder_style

    def quote(self, identifier: str) -> str:
        return self._generic.quote(identifier)

    def placeholder(self, index: int) -> str:
        return self._generic.placeholder(index)

    def map_type(self, spec: ColumnSpec) -> str:
        return self._generic.map_type(spec)

    def create_column_def(
        self, name: str, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        return self._generic.create_column_def(name, spec, options)

    def create_column_constraint(
        self, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        return self._generic.create_column_constraint(spec, options)

    def format_default(self, value: Any) -> str:
        return self._generic.format_default(value)

    def format_literal(self, value: Any) -> str:
        return self._generic.format_literal(value)


class SQLiteConnection:
    """Wrapper for a sqlite3 connection exposing ``query``."""

    def __init__(self, connection: sqlite3.Connection):
        """
        Initialize SQLite connection wrapper.

        Args:
            connection: sqlite3 connection object
        """
        self._connection = connection
        self._connection.row_factory = sqlite3.Row  # Enable dict-like access
        self._cursor: Optional[sqlite3.Cursor] = None

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Execute one statement.

        Args:
            sql: SQL statement using ``?`` placeholders
            params: Values bound to the placeholders

        Returns:
            Fetched rows (if any) and the affected row count

        Raises:
            ExecutionError: If SQLite rejects the statement
        """
        try:
            cursor = self._get_cursor()
            if params:
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
            return QueryResult(rows=rows, rowcount=cursor.rowcount)
        except sqlite3.Error as e:
            raise ExecutionError(
                f"SQL execution failed: {e}",
                sql=sql,
                engine_name="sqlite",
                previous_exception=e,
            ) from e

    def close(self) -> None:
        """Close the connection."""
        if self._cursor:
            self._cursor.close()
            self._cursor = None
        self._connection.close()

    def _get_cursor(self) -> sqlite3.Cursor:
        """Get cursor for executing queries."""
        if not self._cursor:
            self._cursor = self._connection.cursor()
        return self._cursor


@register_driver("sqlite")
class SQLiteDriver(Driver):
    """SQLite driver implementation."""

    @property
    def driver_type(self) -> DriverType:
        """Get the driver type identifier."""
        return "sqlite"

    def create_dialect(self) -> Dialect:
        return SQLiteDialect()

    @classmethod
    def _create_connection(cls, config: DriverConfig) -> Connection:
        """
        Create a new SQLite database connection.

        Returns:
            SQLite connection wrapper in autocommit mode

        Raises:
            EngineError: If the SQLite library is too old
            ConnectionError: If connection cannot be established
        """
        db_path = config.database or ":memory:"
        try:
            connection = sqlite3.connect(
                db_path,
                timeout=float(config.options.get("timeout", 30.0)),
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise ConnectionError(
                f"Failed to connect to SQLite database: {e}",
                connection_string=sanitize_connection_string(db_path),
                engine_name="sqlite",
                previous_exception=e,
            ) from e

        if sqlite3.sqlite_version_info < MIN_SQLITE_VERSION:
            connection.close()
            raise EngineError(
                f"dbmigrate requires SQLite 3.8.6 or later; found {sqlite3.sqlite_version}",
                engine_name="sqlite",
            )

        logger.debug(f"Connected to SQLite database: {db_path}")
        return SQLiteConnection(connection)

    @classmethod
    def _wrap_connection(cls, db: Any) -> Connection:
        if isinstance(db, sqlite3.Connection):
            return SQLiteConnection(db)
        return db

    def change_column(
        self, table_name: str, column_name: str, spec: ColumnSpecLike
    ) -> Any:
        raise EngineError(
            f"SQLite cannot change column {table_name}.{column_name}",
            engine_name="sqlite",
        )

    def add_foreign_key(
        self,
        table_name: str,
        foreign_key_name: str,
        columns: Any,
        parent_table_name: str,
        parent_columns: Any,
        options: Optional[ForeignKeyOptionsLike] = None,
    ) -> Any:
        raise EngineError(
            f"SQLite cannot add foreign key {foreign_key_name} to an existing table",
            engine_name="sqlite",
        )

    def remove_foreign_key(self, table_name: str, foreign_key_name: str) -> Any:
        raise EngineError(
            f"SQLite cannot drop foreign key {foreign_key_name} from an existing table",
            engine_name="sqlite",
        )

    def _migrations_table_exists(self) -> bool:
        rows = self.all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            [self.MIGRATIONS_TABLE],
        )
        return len(rows) > 0
