"""
Abstract base class for database drivers.

This module defines the Driver base class that every backend implements.
A driver turns database-agnostic schema changes into SQL through its
dialect and submits the statements through its execution gateway, the only
path to the one connection the driver owns. It also keeps the migrations
bookkeeping table.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

from ..core.config import DriverConfig
from ..core.exceptions import ConfigurationError, EngineError, ValidationError
from ..core.types import (
    ColumnDefOptions,
    ColumnSpec,
    DataType,
    DriverType,
    ForeignKeyOptions,
    MigrationRecord,
    TableOptions,
    as_list,
)
from .dialect import Dialect
from .gateway import Connection, ExecutionGateway

logger = logging.getLogger(__name__)

ColumnSpecLike = Union[ColumnSpec, str, Mapping[str, Any]]
TableOptionsLike = Union[TableOptions, Mapping[str, Any]]
ForeignKeyOptionsLike = Union[ForeignKeyOptions, Mapping[str, Any]]

RUN_ON_FORMAT = "%Y-%m-%d %H:%M:%S"


class Driver(ABC):
    """
    Abstract base class for database drivers.

    Provides the statement builder operations shared by every backend.
    Subclasses supply the dialect, the connection factory, and the
    operations whose statement sequence differs between grammars.
    """

    MIGRATIONS_TABLE = "migrations"

    def __init__(
        self,
        connection: Connection,
        config: Optional[DriverConfig] = None,
        sql_logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Initialize database driver.

        Args:
            connection: Connected client; the driver owns it until close()
            config: Driver configuration (supplies the dry-run setting)
            sql_logger: Logger receiving every submitted statement
        """
        self.config = config or DriverConfig(driver=self.driver_type)
        self.dialect = self.create_dialect()
        self.gateway = ExecutionGateway(
            connection, self.dialect, dry_run=self.config.dry_run, logger=sql_logger
        )
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def driver_type(self) -> DriverType:
        """Get the driver type identifier."""
        ...

    @abstractmethod
    def create_dialect(self) -> Dialect:
        """Create the dialect used to render SQL."""
        ...

    @classmethod
    @abstractmethod
    def _create_connection(cls, config: DriverConfig) -> Connection:
        """
        Open a new connection from raw connection parameters.

        Raises:
            ConnectionError: If connection cannot be established
        """
        ...

    @classmethod
    def _wrap_connection(cls, db: Any) -> Connection:
        """Adapt a pre-built client connection; already adapted ones pass through."""
        return db

    @classmethod
    def connect(
        cls, config: DriverConfig, sql_logger: Optional[logging.Logger] = None
    ) -> "Driver":
        """
        Create a connected driver.

        Uses ``config.db`` when it carries a pre-built connection, otherwise
        opens one from the connection parameters.

        Args:
            config: Driver configuration
            sql_logger: Logger receiving every submitted statement

        Returns:
            Driver owning the connection

        Raises:
            ConnectionError: If connection cannot be established
        """
        if config.db is not None:
            connection = cls._wrap_connection(config.db)
        else:
            connection = cls._create_connection(config)
        driver = cls(connection, config, sql_logger=sql_logger)
        driver.logger.debug(f"Connected to {config.describe()}")
        return driver

    # Execution

    def run_sql(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Submit a statement through the gateway."""
        return self.gateway.run_sql(sql, params)

    def all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Run a read query through the gateway and return its rows."""
        return self.gateway.all(sql, params)

    def close(self) -> None:
        """Release the connection."""
        self.gateway.close()

    def start_migration(self) -> Any:
        """Hook run before a migration's statements. No-op by default."""
        return None

    def end_migration(self) -> Any:
        """Hook run after a migration's statements. No-op by default."""
        return None

    # Statement builder

    def quote(self, identifier: str) -> str:
        return self.dialect.quote(identifier)

    def _column_list(self, columns: Sequence[str]) -> str:
        return ", ".join(self.quote(column) for column in columns)

    def _column_spec(self, spec: ColumnSpecLike) -> ColumnSpec:
        try:
            return ColumnSpec.normalize(spec)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid column specification: {e}", field_value=spec
            ) from e

    def create_table(self, table_name: str, options: TableOptionsLike) -> Any:
        """
        Create a table.

        When more than one column is a primary key, a table-level
        ``PRIMARY KEY (...)`` clause is emitted and no column inlines its
        own primary key marker.

        Args:
            table_name: Name of the table
            options: TableOptions, or a ``{column: spec}`` mapping

        Returns:
            Native result of the CREATE TABLE statement
        """
        self.logger.debug(f"creating table: {table_name}")
        try:
            table = TableOptions.normalize(options)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid table definition for {table_name}: {e}", field_name="options"
            ) from e

        primary_key_columns = table.primary_key_columns
        column_options = ColumnDefOptions(emit_primary_key=len(primary_key_columns) <= 1)

        column_defs = [
            self.dialect.create_column_def(name, spec, column_options)
            for name, spec in table.columns.items()
        ]

        pk_sql = ""
        if len(primary_key_columns) > 1:
            pk_sql = f", PRIMARY KEY ({self._column_list(primary_key_columns)})"

        if_not_exists = "IF NOT EXISTS " if table.if_not_exists else ""
        sql = (
            f"CREATE TABLE {if_not_exists}{self.quote(table_name)} "
            f"({', '.join(column_defs)}{pk_sql})"
        )
        return self.run_sql(sql)

    def drop_table(self, table_name: str, if_exists: bool = False) -> Any:
        if_exists_sql = "IF EXISTS " if if_exists else ""
        return self.run_sql(f"DROP TABLE {if_exists_sql}{self.quote(table_name)}")

    def rename_table(self, table_name: str, new_table_name: str) -> Any:
        sql = f"ALTER TABLE {self.quote(table_name)} RENAME TO {self.quote(new_table_name)}"
        return self.run_sql(sql)

    def add_column(self, table_name: str, column_name: str, spec: ColumnSpecLike) -> Any:
        self.logger.debug(f"adding column: {table_name}.{column_name}")
        column_def = self.dialect.create_column_def(
            column_name, self._column_spec(spec), ColumnDefOptions()
        )
        return self.run_sql(f"ALTER TABLE {self.quote(table_name)} ADD COLUMN {column_def}")

    def remove_column(self, table_name: str, column_name: str) -> Any:
        sql = f"ALTER TABLE {self.quote(table_name)} DROP COLUMN {self.quote(column_name)}"
        return self.run_sql(sql)

    def rename_column(
        self, table_name: str, old_column_name: str, new_column_name: str
    ) -> Any:
        sql = (
            f"ALTER TABLE {self.quote(table_name)} "
            f"RENAME COLUMN {self.quote(old_column_name)} TO {self.quote(new_column_name)}"
        )
        return self.run_sql(sql)

    @abstractmethod
    def change_column(
        self, table_name: str, column_name: str, spec: ColumnSpecLike
    ) -> Any:
        """
        Change nullability, uniqueness and default value of a column.

        Raises:
            ExecutionError: From the first statement that fails; later
                statements are not attempted
        """
        ...

    def add_index(
        self,
        table_name: str,
        index_name: str,
        columns: Union[str, Sequence[str]],
        unique: bool = False,
    ) -> Any:
        """
        Create a (possibly composite) index.

        Args:
            table_name: Indexed table
            index_name: Name of the index
            columns: Column name or list of column names
            unique: Create a UNIQUE index
        """
        unique_sql = "UNIQUE " if unique else ""
        sql = (
            f"CREATE {unique_sql}INDEX {index_name} ON {self.quote(table_name)} "
            f"({self._column_list(as_list(columns))})"
        )
        return self.run_sql(sql)

    def remove_index(self, index_name: str, table_name: Optional[str] = None) -> Any:
        """Drop an index. The table is not needed by this grammar."""
        return self.run_sql(f"DROP INDEX {index_name}")

    def add_foreign_key(
        self,
        table_name: str,
        foreign_key_name: str,
        columns: Union[str, Sequence[str]],
        parent_table_name: str,
        parent_columns: Union[str, Sequence[str]],
        options: Optional[ForeignKeyOptionsLike] = None,
    ) -> Any:
        """
        Add a foreign key constraint.

        Args:
            table_name: Referencing table
            foreign_key_name: Constraint name
            columns: Referencing column(s)
            parent_table_name: Referenced table
            parent_columns: Referenced column(s)
            options: ON UPDATE / ON DELETE actions
        """
        fk_options = ForeignKeyOptions.normalize(options)
        on_update = f" ON UPDATE {fk_options.on_update.upper()}" if fk_options.on_update else ""
        on_delete = f" ON DELETE {fk_options.on_delete.upper()}" if fk_options.on_delete else ""

        sql = (
            f"ALTER TABLE {self.quote(table_name)} ADD CONSTRAINT {foreign_key_name} "
            f"FOREIGN KEY({self._column_list(as_list(columns))}) "
            f"REFERENCES {self.quote(parent_table_name)}"
            f"({self._column_list(as_list(parent_columns))}){on_update}{on_delete}"
        )
        return self.run_sql(sql)

    def remove_foreign_key(self, table_name: str, foreign_key_name: str) -> Any:
        sql = f"ALTER TABLE {self.quote(table_name)} DROP CONSTRAINT {foreign_key_name}"
        return self.run_sql(sql)

    def insert(
        self, table_name: str, column_names: Sequence[str], values: Sequence[Any]
    ) -> Any:
        """
        Insert one row with values inlined into the statement.

        String values only have embedded single quotes doubled.

        Raises:
            ValidationError: If the column and value counts differ
        """
        if len(column_names) != len(values):
            raise ValidationError(
                "The number of columns does not match the number of values.",
                field_name="values",
            )

        columns_sql = ",".join(self.quote(name) for name in column_names)
        values_sql = ",".join(self.dialect.format_literal(value) for value in values)
        sql = f"INSERT INTO {self.quote(table_name)} ({columns_sql}) VALUES ({values_sql});"
        return self.run_sql(sql)

    # Migration bookkeeping

    def _migrations_table_options(self, if_not_exists: bool = True) -> TableOptions:
        return TableOptions(
            columns={
                "id": ColumnSpec(
                    type=DataType.INTEGER,
                    not_null=True,
                    primary_key=True,
                    auto_increment=True,
                ),
                "name": ColumnSpec(type=DataType.STRING, length=255, not_null=True),
                "run_on": ColumnSpec(type=DataType.DATE_TIME, not_null=True),
            },
            if_not_exists=if_not_exists,
        )

    @abstractmethod
    def _migrations_table_exists(self) -> bool:
        """Check the catalog for the migrations table."""
        ...

    def create_migrations_table(self) -> Any:
        """
        Create the migrations table unless it already exists.

        Returns:
            Native result of CREATE TABLE, or None when the table exists
        """
        if self._migrations_table_exists():
            self.logger.debug(f"{self.MIGRATIONS_TABLE} table already exists")
            return None
        return self.create_table(self.MIGRATIONS_TABLE, self._migrations_table_options())

    def add_migration_record(self, name: str) -> Any:
        """Record a migration as run now."""
        run_on = datetime.now().strftime(RUN_ON_FORMAT)
        return self.run_sql(
            f"INSERT INTO [{self.MIGRATIONS_TABLE}] (name, run_on) VALUES (?, ?)",
            [name, run_on],
        )

    def all_loaded_migrations(self) -> List[MigrationRecord]:
        """Return the recorded migrations, most recent first."""
        rows = self.all(
            f"SELECT * FROM [{self.MIGRATIONS_TABLE}] ORDER BY run_on DESC, name DESC"
        )
        return [MigrationRecord.from_row(row) for row in rows]


class DriverRegistry:
    """Registry for database driver classes."""

    _drivers: Dict[str, Type[Driver]] = {}

    @classmethod
    def register(cls, driver_type: DriverType, driver_class: Type[Driver]) -> None:
        """
        Register a driver class.

        Args:
            driver_type: Driver type identifier
            driver_class: Driver class to register
        """
        cls._drivers[driver_type] = driver_class

    @classmethod
    def get_driver_class(cls, driver_type: str) -> Type[Driver]:
        """
        Get driver class for type.

        Raises:
            EngineError: If driver type not supported
        """
        if driver_type not in cls._drivers:
            raise EngineError(f"Unsupported driver type: {driver_type}")
        return cls._drivers[driver_type]

    @classmethod
    def list_supported_drivers(cls) -> List[str]:
        return list(cls._drivers.keys())


def register_driver(driver_type: DriverType):
    """
    Decorator to register driver classes.

    Args:
        driver_type: Driver type identifier

    Returns:
        Decorator function
    """

    def decorator(driver_class: Type[Driver]) -> Type[Driver]:
        DriverRegistry.register(driver_type, driver_class)
        return driver_class

    return decorator


def connect(
    config: Union[DriverConfig, Mapping[str, Any], str],
    sql_logger: Optional[logging.Logger] = None,
) -> Driver:
    """
    Create a connected driver for a configuration.

    Args:
        config: DriverConfig, database.json style mapping, or connection URI
        sql_logger: Logger receiving every submitted statement

    Returns:
        Connected driver

    Raises:
        ConfigurationError: If the configuration is invalid
        EngineError: If the driver is not available
        ConnectionError: If connection cannot be established
    """
    if isinstance(config, str):
        config = DriverConfig.from_uri(config)
    elif not isinstance(config, DriverConfig):
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Invalid driver configuration: {config!r}")
        config = DriverConfig.from_mapping(config)

    driver_class = DriverRegistry.get_driver_class(config.driver)
    logger.debug(f"Using {driver_class.__name__} for {config.describe()}")
    return driver_class.connect(config, sql_logger=sql_logger)
