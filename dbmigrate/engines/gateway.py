"""
Execution gateway.

The gateway owns a driver's single connection and is the only code that
submits SQL to it. Before dispatch it rewrites bracket quoting markers and
``?`` placeholders into the dialect's syntax, logs the final statement, and
honors the dry-run setting it was constructed with.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from ..core.exceptions import ConnectionError
from ..utils.logging import SQL_LOGGER_NAME, log_sql_execution
from .dialect import Dialect

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Protocol for the connected client a driver consumes."""

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute one statement and return the client's native result."""
        ...

    def close(self) -> None:
        """Close the connection."""
        ...


@dataclass
class QueryResult:
    """Native result envelope returned by the bundled connection adapters."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = -1


def strip_brackets(sql: str, replacement: str = "") -> str:
    """Replace every ``[`` and ``]`` marker with ``replacement``."""
    return sql.replace("[", replacement).replace("]", replacement)


def rewrite_placeholders(sql: str, dialect: Dialect) -> str:
    """
    Rewrite ``?`` markers into the dialect's placeholder syntax.

    Markers are numbered left to right starting at 1, so for the numeric
    style ``a = ? AND b = ?`` becomes ``a = $1 AND b = $2``. For the format
    style, literal ``%`` characters are doubled first.

    Args:
        sql: Statement template
        dialect: Dialect providing the placeholder syntax

    Returns:
        Statement with rewritten placeholders
    """
    if dialect.placeholder_style == "qmark":
        return sql
    if dialect.placeholder_style == "format":
        sql = sql.replace("%", "%%")

    parts = sql.split("?")
    rewritten = [parts[0]]
    for index, part in enumerate(parts[1:], start=1):
        rewritten.append(dialect.placeholder(index))
        rewritten.append(part)
    return "".join(rewritten)


def normalize_rows(result: Any) -> List[Dict[str, Any]]:
    """
    Turn a native query result into a list of row dictionaries.

    Accepts envelopes exposing ``rows`` as an attribute or a mapping key,
    plain sequences of rows, and results without rows (``None`` or a row
    count).
    """
    if result is None:
        return []
    if isinstance(result, Mapping):
        rows = result.get("rows")
    else:
        rows = getattr(result, "rows", result)
    if isinstance(rows, (list, tuple)):
        return [dict(row) for row in rows]
    return []


class ExecutionGateway:
    """Sole path from a driver to its connection."""

    def __init__(
        self,
        connection: Connection,
        dialect: Dialect,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Initialize execution gateway.

        Args:
            connection: Connected client exposing ``query`` and ``close``
            dialect: Dialect supplying quoting and placeholder syntax
            dry_run: Log statements without submitting them
            logger: Logger receiving the final SQL (defaults to ``dbmigrate.sql``)
        """
        self.connection = connection
        self.dialect = dialect
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(SQL_LOGGER_NAME)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prepare(self, sql: str, params: Optional[Sequence[Any]] = None) -> str:
        """Apply bracket and placeholder rewrites to a statement template."""
        sql = strip_brackets(sql, self.dialect.bracket_quote)
        if params:
            sql = rewrite_placeholders(sql, self.dialect)
        return sql

    def run_sql(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """
        Submit a statement.

        Args:
            sql: Statement template using ``?`` placeholders
            params: Values bound to the placeholders

        Returns:
            The connection's native result, or None under dry run

        Raises:
            ConnectionError: If the gateway has been closed
            ExecutionError: If the database rejects the statement
        """
        sql = self.prepare(sql, params)
        log_sql_execution(sql, params, self.logger)
        if self.dry_run:
            return None

        self._ensure_open()
        return self.connection.query(sql, list(params) if params else None)

    def all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """
        Run a read query and return its rows.

        Args:
            sql: Query template using ``?`` placeholders
            params: Values bound to the placeholders

        Returns:
            Rows as dictionaries; empty under dry run
        """
        sql = self.prepare(sql, params)
        log_sql_execution(sql, params, self.logger)
        if self.dry_run:
            return []

        self._ensure_open()
        return normalize_rows(
            self.connection.query(sql, list(params) if params else None)
        )

    def close(self) -> None:
        """Release the connection. Only the first call has an effect."""
        if self._closed:
            logger.warning(f"{self.dialect.name} connection already closed")
            return
        self._closed = True
        self.connection.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionError(
                f"{self.dialect.name} connection is closed",
                engine_name=self.dialect.name,
            )
