"""
PostgreSQL driver implementation.

This module provides the PostgreSQL dialect, a psycopg2 connection wrapper
that binds ``$n`` parameters through server-side prepared statements, and
the driver itself, which runs migrations inside explicit transactions and
splits column changes into separate ALTER statements.
"""

import itertools
import logging
import re
from typing import Any, Optional, Sequence, Tuple

from ..core.config import DriverConfig
from ..core.exceptions import ConnectionError, EngineError, ExecutionError
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

try:
    import psycopg2
    import psycopg2.extensions
    import psycopg2.extras
except ImportError:
    psycopg2 = None


logger = logging.getLogger(__name__)

# Types whose PostgreSQL representation differs from the generic one
PG_TYPES = {
    DataType.STRING: "VARCHAR",
    DataType.DATE_TIME: "TIMESTAMP",
    DataType.BLOB: "BYTEA",
}

# First server version accepting CREATE TABLE IF NOT EXISTS
IF_NOT_EXISTS_MIN_VERSION = (9, 1, 0)

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def parse_server_version(version: str) -> Optional[Tuple[int, int, int]]:
    """
    Extract the first ``major.minor.patch`` triple from ``select version()``.

    Returns:
        Version tuple, or None when the string carries no triple
    """
    match = _VERSION_PATTERN.search(version or "")
    if not match:
        return None
    return tuple(int(part) for part in match.groups())


class PostgreSQLDialect:
    """
    PostgreSQL dialect.

    Double-quoted identifiers, ``$n`` placeholders and SERIAL columns. An
    auto-increment column gets no type token since SERIAL implies one.
    """

    def __init__(self) -> None:
        self._generic = GenericDialect(
            name="pg",
            quote_char='"',
            bracket_quote='"',
            placeholder_style="numeric",
            auto_increment="SERIAL",
            auto_increment_first=True,
            unsized_types=("BYTEA", "TEXT"),
        )
        self.name = self._generic.name
        self.bracket_quote = self._generic.bracket_quote
        self.placeholder_style = self._generic.placeholder_style

    def quote(self, identifier: str) -> str:
        return self._generic.quote(identifier)

    def placeholder(self, index: int) -> str:
        return self._generic.placeholder(index)

    def map_type(self, spec: ColumnSpec) -> str:
        if spec.type in PG_TYPES:
            return PG_TYPES[spec.type]
        return self._generic.map_type(spec)

    def create_column_def(
        self, name: str, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        sql_type = "" if spec.auto_increment else self.map_type(spec)
        return self._generic.render_column_def(name, sql_type, spec, options)

    def create_column_constraint(
        self, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        return self._generic.create_column_constraint(spec, options)

    def format_default(self, value: Any) -> str:
        return self._generic.format_default(value)

    def format_literal(self, value: Any) -> str:
        return self._generic.format_literal(value)


class PostgreSQLConnection:
    """Wrapper for a psycopg2 connection exposing ``query``."""

    _statement_ids = itertools.count(1)

    def __init__(self, connection: "psycopg2.extensions.connection"):
        """
        Initialize PostgreSQL connection wrapper.

        Args:
            connection: psycopg2 connection object
        """
        self._connection = connection
        self._cursor: Optional["psycopg2.extensions.cursor"] = None

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Execute one statement.

        Statements with ``$n`` parameters are run as
        ``PREPARE``/``EXECUTE``/``DEALLOCATE`` so the server does the binding.

        Args:
            sql: SQL statement
            params: Values for the ``$n`` placeholders

        Returns:
            Fetched rows (if any) and the affected row count

        Raises:
            ExecutionError: If PostgreSQL rejects the statement
        """
        try:
            cursor = self._get_cursor()
            if params:
                return self._execute_prepared(cursor, sql, params)
            cursor.execute(sql)
            return self._result(cursor)
        except psycopg2.Error as e:
            raise ExecutionError(
                f"SQL execution failed: {e}",
                sql=sql,
                engine_name="pg",
                sql_state=getattr(e, "pgcode", None),
                previous_exception=e,
            ) from e

    def _execute_prepared(
        self, cursor: "psycopg2.extensions.cursor", sql: str, params: Sequence[Any]
    ) -> QueryResult:
        name = f"dbmigrate_stmt_{next(self._statement_ids)}"
        markers = ", ".join(["%s"] * len(params))

        cursor.execute(f"PREPARE {name} AS {sql}")
        cursor.execute(f"EXECUTE {name} ({markers})", list(params))
        result = self._result(cursor)
        cursor.execute(f"DEALLOCATE {name}")
        return result

    def _result(self, cursor: "psycopg2.extensions.cursor") -> QueryResult:
        rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
        return QueryResult(rows=rows, rowcount=cursor.rowcount)

    def close(self) -> None:
        """Close the connection."""
        if self._cursor:
            self._cursor.close()
            self._cursor = None
        self._connection.close()

    def _get_cursor(self) -> "psycopg2.extensions.cursor":
        """Get or create cursor with dict row factory."""
        if not self._cursor or self._cursor.closed:
            self._cursor = self._connection.cursor(
                cursor_factory=psycopg2.extras.RealDictCursor
            )
        return self._cursor


@register_driver("pg")
class PostgreSQLDriver(Driver):
    """
    PostgreSQL driver implementation.

    Migrations run between ``BEGIN;`` and ``COMMIT;``. Column changes are
    issued as separate nullability, uniqueness and default statements.
    """

    @property
    def driver_type(self) -> DriverType:
        """Get the driver type identifier."""
        return "pg"

    def create_dialect(self) -> Dialect:
        return PostgreSQLDialect()

    @classmethod
    def _create_connection(cls, config: DriverConfig) -> Connection:
        """
        Create a new PostgreSQL connection.

        Returns:
            PostgreSQL connection wrapper in autocommit mode

        Raises:
            EngineError: If psycopg2 is not available
            ConnectionError: If connection cannot be established
        """
        if psycopg2 is None:
            raise EngineError(
                "psycopg2 is required for PostgreSQL support. "
                "Install with: pip install psycopg2-binary",
                engine_name="pg",
            )

        params = config.connection_params()
        if "database" in params:
            params["dbname"] = params.pop("database")
        if config.native:
            logger.debug("native bindings requested; using psycopg2")

        try:
            logger.debug(f"Connecting to PostgreSQL: {config.describe()}")
            conn = psycopg2.connect(**params)
            # Explicit BEGIN/COMMIT delimit migrations
            conn.autocommit = True
            return PostgreSQLConnection(conn)
        except psycopg2.Error as e:
            raise ConnectionError(
                f"Failed to connect to PostgreSQL database: {e}",
                connection_string=sanitize_connection_string(config.describe()),
                engine_name="pg",
                previous_exception=e,
            ) from e

    @classmethod
    def _wrap_connection(cls, db: Any) -> Connection:
        if psycopg2 is not None and isinstance(db, psycopg2.extensions.connection):
            return PostgreSQLConnection(db)
        return db

    def start_migration(self) -> Any:
        return self.run_sql("BEGIN;")

    def end_migration(self) -> Any:
        return self.run_sql("COMMIT;")

    def change_column(
        self, table_name: str, column_name: str, spec: ColumnSpecLike
    ) -> Any:
        """
        Change a column's nullability, uniqueness and default.

        Issues, in order: SET/DROP NOT NULL; ADD/DROP the ``<table>_<column>_unique``
        constraint (skipped when ``unique`` is unset); SET/DROP DEFAULT.
        The first failing statement stops the sequence.

        Returns:
            Native result of the last statement
        """
        spec = self._column_spec(spec)
        table = self.quote(table_name)
        column = self.quote(column_name)
        alter_column = f"ALTER TABLE {table} ALTER COLUMN {column}"

        nullability = "SET NOT NULL" if spec.not_null else "DROP NOT NULL"
        self.run_sql(f"{alter_column} {nullability}")

        constraint_name = f"{table_name}_{column_name}_unique"
        if spec.unique is True:
            self.run_sql(
                f"ALTER TABLE {table} ADD CONSTRAINT {constraint_name} UNIQUE ({column})"
            )
        elif spec.unique is False:
            self.run_sql(f"ALTER TABLE {table} DROP CONSTRAINT {constraint_name}")

        if spec.default_value is not None:
            default = self.dialect.format_default(spec.default_value)
            return self.run_sql(f"{alter_column} SET DEFAULT {default}")
        return self.run_sql(f"{alter_column} DROP DEFAULT")

    def _supports_if_not_exists(self) -> bool:
        rows = self.all("select version() as version")
        if not rows:
            return False
        version = parse_server_version(str(rows[0].get("version", "")))
        self.logger.debug(f"PostgreSQL server version: {version}")
        return version is not None and version >= IF_NOT_EXISTS_MIN_VERSION

    def _migrations_table_exists(self) -> bool:
        rows = self.all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = ?",
            [self.MIGRATIONS_TABLE],
        )
        return len(rows) > 0

    def create_migrations_table(self) -> Any:
        """
        Create the migrations table unless it already exists.

        ``IF NOT EXISTS`` is only emitted for servers from 9.1.0 on.
        """
        if_not_exists = self._supports_if_not_exists()
        if self._migrations_table_exists():
            self.logger.debug(f"{self.MIGRATIONS_TABLE} table already exists")
            return None
        return self.create_table(
            self.MIGRATIONS_TABLE, self._migrations_table_options(if_not_exists)
        )
