"""
Type system for dbmigrate.

This module defines the database-agnostic description of a schema change:
abstract column types, column specifications and the option structures the
drivers consume when rendering DDL.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Driver types
DriverType = Literal["pg", "mysql", "sqlite"]

DefaultValue = Union[str, int, float, bool]


class DataType(str, Enum):
    """Abstract column types understood by every dialect."""

    CHAR = "char"
    STRING = "string"
    TEXT = "text"
    SMALLINT = "smallint"
    BIGINT = "bigint"
    INTEGER = "int"
    SMALL_INTEGER = "smallinteger"
    BIG_INTEGER = "biginteger"
    REAL = "real"
    DATE = "date"
    DATE_TIME = "datetime"
    TIME = "time"
    BLOB = "blob"
    TIMESTAMP = "timestamp"
    BINARY = "binary"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"

    @classmethod
    def lookup(cls, value: Union["DataType", str]) -> Union["DataType", str]:
        """
        Resolve a type name to a DataType member.

        Accepts members, their values ("string") and their names ("STRING").
        Names that match nothing are returned unchanged so dialects can pass
        them through verbatim.
        """
        if isinstance(value, cls):
            return value
        text = str(value)
        for member in cls:
            if text.lower() == member.value or text.upper() == member.name:
                return member
        return text


# camelCase keys used by migration files, mapped to ColumnSpec fields
_COLUMN_SPEC_ALIASES = {
    "primaryKey": "primary_key",
    "autoIncrement": "auto_increment",
    "notNull": "not_null",
    "defaultValue": "default_value",
}


@dataclass
class ColumnSpec:
    """Database-agnostic description of one column."""

    type: Union[DataType, str]
    length: Optional[Union[int, str]] = None
    unsigned: bool = False
    primary_key: bool = False
    auto_increment: bool = False
    not_null: bool = False
    unique: Optional[bool] = None
    null: bool = False
    default_value: Optional[DefaultValue] = None

    def __post_init__(self) -> None:
        self.type = DataType.lookup(self.type)

    @classmethod
    def normalize(cls, value: Union["ColumnSpec", str, Mapping[str, Any]]) -> "ColumnSpec":
        """
        Build a ColumnSpec from any of the shapes a migration may use.

        Args:
            value: A ColumnSpec, a bare type name, or a mapping of spec
                fields (snake_case or camelCase keys)

        Returns:
            Normalized column specification

        Raises:
            ValueError: If the mapping has no type
        """
        if isinstance(value, ColumnSpec):
            return value
        if isinstance(value, (str, DataType)):
            return cls(type=value)

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, item in value.items():
            name = _COLUMN_SPEC_ALIASES.get(key, key)
            if name not in known:
                logger.debug(f"Ignoring column attribute: {key}")
                continue
            kwargs[name] = item

        if "type" not in kwargs:
            raise ValueError("Column specification requires a type")

        return cls(**kwargs)


@dataclass(frozen=True)
class ColumnDefOptions:
    """Options controlling how a column definition is emitted."""

    emit_primary_key: bool = True


@dataclass
class TableOptions:
    """Columns of a table plus table-level creation options."""

    columns: Dict[str, ColumnSpec] = field(default_factory=dict)
    if_not_exists: bool = False

    @classmethod
    def normalize(cls, value: Union["TableOptions", Mapping[str, Any]]) -> "TableOptions":
        """
        Build TableOptions from a mapping.

        A mapping with a ``columns`` key carries table options next to it
        (``ifNotExists`` or ``if_not_exists``); any other mapping is read as
        ``{column name: column spec}``.
        """
        if isinstance(value, TableOptions):
            columns = value.columns
            if_not_exists = value.if_not_exists
        elif "columns" in value:
            columns = value["columns"]
            if_not_exists = bool(
                value.get("if_not_exists", value.get("ifNotExists", False))
            )
        else:
            columns = value
            if_not_exists = False

        return cls(
            columns={
                name: ColumnSpec.normalize(spec) for name, spec in columns.items()
            },
            if_not_exists=if_not_exists,
        )

    @property
    def primary_key_columns(self) -> List[str]:
        """Names of the columns flagged as primary key, in declaration order."""
        return [name for name, spec in self.columns.items() if spec.primary_key]


@dataclass(frozen=True)
class ForeignKeyOptions:
    """Referential actions of a foreign key (CASCADE, SET NULL, ...)."""

    on_update: Optional[str] = None
    on_delete: Optional[str] = None

    @classmethod
    def normalize(
        cls, value: Optional[Union["ForeignKeyOptions", Mapping[str, Any]]]
    ) -> "ForeignKeyOptions":
        """Build ForeignKeyOptions from None, an instance or a mapping."""
        if value is None:
            return cls()
        if isinstance(value, ForeignKeyOptions):
            return value
        return cls(
            on_update=value.get("on_update", value.get("onUpdate")),
            on_delete=value.get("on_delete", value.get("onDelete")),
        )


@dataclass(frozen=True)
class MigrationRecord:
    """One row of the migrations bookkeeping table."""

    name: str
    run_on: Union[datetime, str]
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MigrationRecord":
        """Create a record from a fetched row."""
        return cls(name=row["name"], run_on=row["run_on"], id=row.get("id"))


def as_list(value: Union[str, Sequence[str]]) -> List[str]:
    """Coerce a single name or a sequence of names to a list."""
    if isinstance(value, str):
        return [value]
    return list(value)


def sanitize_connection_string(connection_string: str) -> str:
    """
    Sanitize connection string for logging (remove passwords).

    Args:
        connection_string: Database connection string

    Returns:
        Sanitized connection string
    """
    patterns = [
        r"password=[^;&]+",
        r"pwd=[^;&]+",
        r"://[^:/@]+:[^@]+@",
    ]

    sanitized = connection_string
    for pattern in patterns:
        sanitized = re.sub(
            pattern,
            lambda m: (
                m.group(0).split("=")[0] + "=***"
                if "=" in m.group(0)
                else "://***:***@"
            ),
            sanitized,
        )

    return sanitized
