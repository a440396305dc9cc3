"""
SQL dialect capabilities.

A dialect turns the abstract column description into SQL fragments: the
type token, the column definition and its constraint clause, identifier
quoting and the parameter placeholder syntax. Every backend provides the
Dialect interface; GenericDialect holds the shared rendering rules and the
backend dialects compose a configured instance of it, overriding only the
pieces whose representation differs.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from ..core.types import ColumnDefOptions, ColumnSpec, DataType, DefaultValue

logger = logging.getLogger(__name__)

# Direct 1:1 mapping shared by every dialect
GENERIC_TYPES: Dict[DataType, str] = {
    DataType.CHAR: "CHAR",
    DataType.STRING: "VARCHAR",
    DataType.TEXT: "TEXT",
    DataType.SMALLINT: "SMALLINT",
    DataType.BIGINT: "BIGINT",
    DataType.INTEGER: "INTEGER",
    DataType.SMALL_INTEGER: "SMALLINT",
    DataType.BIG_INTEGER: "BIGINT",
    DataType.REAL: "REAL",
    DataType.DATE: "DATE",
    DataType.DATE_TIME: "DATETIME",
    DataType.TIME: "TIME",
    DataType.BLOB: "BLOB",
    DataType.TIMESTAMP: "TIMESTAMP",
    DataType.BINARY: "BINARY",
    DataType.BOOLEAN: "BOOLEAN",
    DataType.DECIMAL: "DECIMAL",
}

PLACEHOLDER_STYLES = ("qmark", "numeric", "format")


class Dialect(Protocol):
    """Operations every SQL dialect must provide."""

    name: str
    bracket_quote: str
    placeholder_style: str

    def quote(self, identifier: str) -> str:
        """Quote an identifier the way the backend expects."""
        ...

    def placeholder(self, index: int) -> str:
        """Return the marker for the 1-based parameter ``index``."""
        ...

    def map_type(self, spec: ColumnSpec) -> str:
        """Map an abstract column type to the backend type token."""
        ...

    def create_column_def(
        self, name: str, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        """Render ``name type(len) constraints``."""
        ...

    def create_column_constraint(
        self, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        """Render the constraint clause of a column."""
        ...

    def format_default(self, value: DefaultValue) -> str:
        """Render a DEFAULT value."""
        ...

    def format_literal(self, value: Any) -> str:
        """Render a value inlined into an INSERT statement."""
        ...


class GenericDialect:
    """
    Shared implementation of the Dialect interface.

    The constructor flags describe how a backend renders the parts that vary
    between grammars; the defaults produce unquoted, ANSI-leaning SQL.
    """

    def __init__(
        self,
        name: str = "generic",
        quote_char: str = "",
        bracket_quote: str = "",
        placeholder_style: str = "qmark",
        auto_increment: str = "AUTO_INCREMENT",
        auto_increment_first: bool = False,
        supports_unsigned: bool = False,
        emits_null_marker: bool = False,
        default_varchar_length: Optional[int] = None,
        unsized_types: Iterable[str] = (),
    ) -> None:
        """
        Initialize dialect rules.

        Args:
            name: Dialect name used in log and error messages
            quote_char: Identifier quote character ("" leaves names bare)
            bracket_quote: Replacement for ``[``/``]`` markers in raw SQL
            placeholder_style: One of ``qmark`` (?), ``numeric`` ($1) or
                ``format`` (%s)
            auto_increment: Keyword rendered for auto-increment columns
            auto_increment_first: Render the keyword before PRIMARY KEY
            supports_unsigned: Whether UNSIGNED is part of the grammar
            emits_null_marker: Whether an explicit NULL may be emitted
            default_varchar_length: Length used for VARCHAR without one
            unsized_types: Type tokens that never take a length clause
        """
        if placeholder_style not in PLACEHOLDER_STYLES:
            raise ValueError(f"Unknown placeholder style: {placeholder_style}")

        self.name = name
        self.quote_char = quote_char
        self.bracket_quote = bracket_quote
        self.placeholder_style = placeholder_style
        self.auto_increment = auto_increment
        self.auto_increment_first = auto_increment_first
        self.supports_unsigned = supports_unsigned
        self.emits_null_marker = emits_null_marker
        self.default_varchar_length = default_varchar_length
        self.unsized_types = frozenset(unsized_types)

    def quote(self, identifier: str) -> str:
        if not self.quote_char:
            return identifier
        return f"{self.quote_char}{identifier}{self.quote_char}"

    def placeholder(self, index: int) -> str:
        if self.placeholder_style == "numeric":
            return f"${index}"
        if self.placeholder_style == "format":
            return "%s"
        return "?"

    def map_type(self, spec: ColumnSpec) -> str:
        if isinstance(spec.type, DataType):
            return GENERIC_TYPES[spec.type]

        unknown_type = str(spec.type).upper()
        logger.warning(f"Using unknown data type {unknown_type}")
        return unknown_type

    def length_clause(self, spec: ColumnSpec, sql_type: str) -> str:
        """Return ``(N)`` for the column, or an empty string."""
        if not sql_type or sql_type in self.unsized_types:
            return ""
        if spec.length:
            return f"({spec.length})"
        if sql_type == "VARCHAR" and self.default_varchar_length:
            return f"({self.default_varchar_length})"
        return ""

    def render_column_def(
        self,
        name: str,
        sql_type: str,
        spec: ColumnSpec,
        options: Optional[ColumnDefOptions] = None,
    ) -> str:
        """
        Join the column fragments for an already mapped type.

        Empty fragments are kept so the output spacing stays stable.
        """
        return " ".join(
            [
                self.quote(name),
                sql_type,
                self.length_clause(spec, sql_type),
                self.create_column_constraint(spec, options),
            ]
        )

    def create_column_def(
        self, name: str, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        return self.render_column_def(name, self.map_type(spec), spec, options)

    def create_column_constraint(
        self, spec: ColumnSpec, options: Optional[ColumnDefOptions] = None
    ) -> str:
        options = options or ColumnDefOptions()
        constraint = []

        if spec.unsigned and self.supports_unsigned:
            constraint.append("UNSIGNED")

        if spec.primary_key and options.emit_primary_key:
            if spec.auto_increment and self.auto_increment_first:
                constraint.append(self.auto_increment)
            constraint.append("PRIMARY KEY")
            if spec.auto_increment and not self.auto_increment_first:
                constraint.append(self.auto_increment)

        if spec.not_null:
            constraint.append("NOT NULL")

        if spec.unique:
            constraint.append("UNIQUE")

        if spec.null and self.emits_null_marker:
            constraint.append("NULL")

        if spec.default_value is not None:
            constraint.append("DEFAULT")
            constraint.append(self.format_default(spec.default_value))

        return " ".join(constraint)

    def format_default(self, value: DefaultValue) -> str:
        # String defaults are quoted as given, without escaping
        if isinstance(value, str):
            return f"'{value}'"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        return str(value)

    def format_literal(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, str):
            return "'" + value.replace("'", "''") + "'"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        return str(value)
