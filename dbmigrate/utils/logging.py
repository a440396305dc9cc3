"""
SQL statement logging for dbmigrate.

Every statement the execution gateway submits is logged to the
``dbmigrate.sql`` logger: the SQL text at DEBUG and its bound parameters at
TRACE. Drivers log through ``logging.getLogger(__name__)``; configuring
handlers is left to the application.
"""

import logging
from typing import Any, Optional, Sequence

SQL_LOGGER_NAME = "dbmigrate.sql"

# Below DEBUG, for statement parameters
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def log_sql_execution(
    sql: str,
    params: Optional[Sequence[Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a statement about to be submitted to the database.

    Args:
        sql: Final SQL text, after placeholder and quoting rewrites
        params: Optional parameters bound to the statement
        logger: Logger to write to (defaults to ``dbmigrate.sql``)
    """
    logger = logger or logging.getLogger(SQL_LOGGER_NAME)
    logger.debug("%s", sql)
    if params:
        logger.log(TRACE, "SQL parameters: %s", list(params))
