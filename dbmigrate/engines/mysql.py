"""
MySQL driver implementation.

This module provides the MySQL dialect (bare identifiers, ``%s``
placeholders, size-tiered TEXT/BLOB types), a PyMySQL connection wrapper,
and the driver, whose rename, index, foreign key and column-change
statements use MySQL's own grammar.
"""

import logging
from typing import Any, Optional, Sequence, Union

from ..core.config import DriverConfig
from ..core.exceptions import (
    ConnectionError,
    EngineError,
    ExecutionError,
    ValidationError,
)
from ..core.types import (
    ColumnDefOptions,
    ColumnSpec,
    DataType,
    DriverType,
    sanitize_connection_string,
)
from .base import ColumnSpecLike, Driver, register_driver
from .dialect import Dialect, GenericDialect
from .gateway import Connection, QueryResult

# Try to import PyMySQL
try:
    import pymysql
    import pymysql.cursors
    from pymysql import Error as MySQLError
except ImportError:
    pymysql = None
    MySQLError = None


logger = logging.getLogger(__name__)

# Upper size bound (inclusive) and name prefix of each TEXT/BLOB tier
SIZE_TIERS = (
    (256, "TINY"),
    (65536, ""),
    (16777216, "MEDIUM"),
)
LARGEST_TIER = "LONG"
DEFAULT_SIZED_LENGTH = 1000

SIZED_TYPES = tuple(
    prefix + base
    for base in ("TEXT", "BLOB")
    for prefix in [tier[1] for tier in SIZE_TIERS] + [LARGEST_TIER]
)

MYSQL_TYPES = {
    DataType.DATE_TIME: "DATETIME",
    DataType.BOOLEAN: "TINYINT(1)",
}


def parse_length(length: Optional[Union[int, float, str]]) -> int:
    """
    Read a column length as an integer.

    Fractional lengths are truncated. Missing, zero or non-numeric lengths
    fall back to 1000.
    """
    try:
        size = int(float(str(length).strip()))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_SIZED_LENGTH
    return size or DEFAULT_SIZED_LENGTH


def size_tiered_type(base: str, length: Optional[Union[int, float, str]]) -> str:
    """
    Pick the TEXT or BLOB variant able to hold ``length``.

    Args:
        base: ``TEXT`` or ``BLOB``
        length: Requested size

    Returns:
        TINY/regular/MEDIUM/LONG variant of ``base``
    """
    size = parse_length(length)
    for limit, prefix in SIZE_TIERS:
        if size <= limit:
            return prefix + base
    return LARGEST_TIER + base


class MySQLDialect:
    """
    MySQL dialect.

    Identifiers are left bare, VARCHAR defaults to 255 characters, and
    UNSIGNED and explicit NULL markers are part of the grammar.
    """

    def __init__(self) -> None:
        self._generic = GenericDialect(
            name="mysql",
            quote_char="",
            bracket_quote="",
            placeholder_style="format",
            auto_increment="AUTO_INCREMENT",
            supports_unsigned=True,
            emits_null_marker=True,
            default_varchar_length=255,
            unsized_types=SIZED_TYPES,
        )
        self.name = self._generic.name
        self.bracket_quote = self._generic.bracket_quote
        self.placeholder_style = self._generic.placeholder_style

    def quote(self, identifier: str) -> str:
        return self._generic.quote(identifier)

    def placeholder(self, index: int) -> str:
        return self._generic.placeholder(index)

    def map_type(self, spec: ColumnSpec) -> str:
        if spec.type == DataType.TEXT:
            return size_tiered_type("TEXT", spec.length)
        if spec.type == DataType.BLOB:
            return size_tiered_type("BLOB", spec.length)
        if spec.type in MYSQL_TYPES:
            return MYSQL_TYPES[spec.type]
        return self._generic.map_type(spec)

    def create_column_def(
        self, name: str, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        return self._generic.render_column_def(name, self.map_type(spec), spec, options)

    def create_column_constraint(
        self, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        return self._generic.create_column_constraint(spec, options)

    def format_default(self, value: Any) -> str:
        return self._generic.format_default(value)

    def format_literal(self, value: Any) -> str:
        return self._generic.format_literal(value)


class MySQLConnection:
    """Wrapper for a PyMySQL connection exposing ``query``."""

    def __init__(self, connection: "pymysql.Connection"):
        """
        Initialize MySQL connection wrapper.

        Args:
            connection: PyMySQL connection object
        """
        self._connection = connection
        self._cursor: Optional["pymysql.cursors.Cursor"] = None

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Execute one statement.

        Args:
            sql: SQL statement using ``%s`` placeholders
            params: Values bound to the placeholders

        Returns:
            Fetched rows (if any) and the affected row count

        Raises:
            ExecutionError: If MySQL rejects the statement
        """
        try:
            cursor = self._get_cursor()
            if params:
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            rows = list(cursor.fetchall() or []) if cursor.description else []
            return QueryResult(rows=rows, rowcount=cursor.rowcount)
        except MySQLError as e:
            raise ExecutionError(
                f"SQL execution failed: {e}",
                sql=sql,
                engine_name="mysql",
                sql_state=e.args[0] if e.args else None,
                previous_exception=e,
            ) from e

    def close(self) -> None:
        """Close the connection."""
        if self._cursor:
            self._cursor.close()
            self._cursor = None
        self._connection.close()

    def _get_cursor(self) -> "pymysql.cursors.Cursor":
        """Get or create cursor with dict row factory."""
        if not self._cursor:
            self._cursor = self._connection.cursor(pymysql.cursors.DictCursor)
        return self._cursor


@register_driver("mysql")
class MySQLDriver(Driver):
    """
    MySQL driver implementation.

    Statements run in autocommit mode; MySQL commits DDL implicitly, so
    migrations are not wrapped in a transaction.
    """

    @property
    def driver_type(self) -> DriverType:
        """Get the driver type identifier."""
        return "mysql"

    def create_dialect(self) -> Dialect:
        return MySQLDialect()

    @classmethod
    def _connection_params(cls, config: DriverConfig) -> dict:
        params = {
            "charset": "utf8mb4",
            "autocommit": True,
            "cursorclass": pymysql.cursors.DictCursor,
        }
        params.update(config.connection_params())
        if "connect_timeout" in params:
            params["connect_timeout"] = int(params["connect_timeout"])
        return params

    @classmethod
    def _create_connection(cls, config: DriverConfig) -> Connection:
        """
        Create a new MySQL connection.

        Returns:
            MySQL connection wrapper

        Raises:
            EngineError: If PyMySQL is not available
            ConnectionError: If connection cannot be established
        """
        if pymysql is None:
            raise EngineError(
                "PyMySQL is required for MySQL support. "
                "Install with: pip install PyMySQL",
                engine_name="mysql",
            )

        try:
            logger.debug(f"Connecting to MySQL: {config.describe()}")
            conn = pymysql.connect(**cls._connection_params(config))
            return MySQLConnection(conn)
        except MySQLError as e:
            raise ConnectionError(
                f"Failed to connect to MySQL database: {e}",
                connection_string=sanitize_connection_string(config.describe()),
                engine_name="mysql",
                previous_exception=e,
            ) from e

    @classmethod
    def _wrap_connection(cls, db: Any) -> Connection:
        if pymysql is not None and isinstance(db, pymysql.connections.Connection):
            return MySQLConnection(db)
        return db

    def rename_table(self, table_name: str, new_table_name: str) -> Any:
        return self.run_sql(
            f"RENAME TABLE {self.quote(table_name)} TO {self.quote(new_table_name)}"
        )

    def rename_column(
        self, table_name: str, old_column_name: str, new_column_name: str
    ) -> Any:
        """
        Rename a column, keeping its current definition.

        MySQL's CHANGE clause needs the column type, which is read from
        INFORMATION_SCHEMA first.

        Raises:
            EngineError: If the column does not exist
        """
        rows = self.all(
            "SELECT COLUMN_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = ? AND COLUMN_NAME = ?",
            [table_name, old_column_name],
        )
        if not rows:
            if self.gateway.dry_run:
                self.logger.info(
                    f"dry run: skipping rename of {table_name}.{old_column_name}"
                )
                return None
            raise EngineError(
                f"Column {old_column_name} not found in table {table_name}",
                engine_name="mysql",
            )

        row = rows[0]
        column_type = row.get("COLUMN_TYPE", row.get("column_type"))
        return self.run_sql(
            f"ALTER TABLE {self.quote(table_name)} CHANGE {self.quote(old_column_name)} "
            f"{self.quote(new_column_name)} {column_type}"
        )

    def change_column(
        self, table_name: str, column_name: str, spec: ColumnSpecLike
    ) -> Any:
        """Redefine a column with a single CHANGE COLUMN statement."""
        column_def = self.dialect.create_column_def(
            column_name,
            self._column_spec(spec),
            ColumnDefOptions(emit_primary_key=False),
        )
        return self.run_sql(
            f"ALTER TABLE {self.quote(table_name)} CHANGE COLUMN "
            f"{self.quote(column_name)} {column_def}"
        )

    def remove_index(self, index_name: str, table_name: Optional[str] = None) -> Any:
        """
        Drop an index from a table.

        Raises:
            ValidationError: If the table or index name is missing
        """
        if not table_name or not index_name:
            raise ValidationError(
                'Illegal arguments, must provide "table_name" and "index_name"',
                field_name="table_name",
            )
        return self.run_sql(f"DROP INDEX {index_name} ON {self.quote(table_name)}")

    def remove_foreign_key(self, table_name: str, foreign_key_name: str) -> Any:
        return self.run_sql(
            f"ALTER TABLE {self.quote(table_name)} DROP FOREIGN KEY {foreign_key_name}"
        )

    def _migrations_table_exists(self) -> bool:
        rows = self.all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_name = ?",
            [self.MIGRATIONS_TABLE],
        )
        return len(rows) > 0
