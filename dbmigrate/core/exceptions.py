"""
Custom exception hierarchy for dbmigrate.

This module defines the exceptions raised by the dialect layer. Every
operation reports failure by raising one of these, whether the problem was
caught while validating arguments or reported by the database itself.
"""

from typing import Any, Optional


class MigrateError(Exception):
    """
    Base exception for all dbmigrate errors.

    Carries an identifier describing the error family and the exit value a
    command-line runner should use when the error terminates the process.
    """

    def __init__(
        self, message: str, ident: str = "dbmigrate", exitval: int = 2, **kwargs: Any
    ) -> None:
        """
        Initialize dbmigrate error.

        Args:
            message: Human-readable error message
            ident: Error identifier
            exitval: Exit value to use when this error causes program termination
            **kwargs: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.ident = ident
        self.exitval = exitval
        self.context = kwargs
        self.previous_exception = kwargs.get("previous_exception")

    def __str__(self) -> str:
        """Format error message for display."""
        return self.message

    def as_string(self) -> str:
        """
        Return the message followed by the wrapped driver error, if any.

        Returns:
            Complete error string
        """
        parts = [self.message]
        details = self.details_string()
        if details:
            parts.append(details)
        return "\n".join(parts)

    def details_string(self) -> str:
        """
        Return the wrapped driver error as text, or an empty string.

        Returns:
            Details without the main message
        """
        if self.previous_exception:
            return str(self.previous_exception)
        return ""


class ConfigurationError(MigrateError):
    """
    Configuration-related errors.

    Raised when a driver configuration is incomplete or names an
    unsupported driver.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize configuration error.

        Args:
            message: Error description
            config_key: Configuration key that caused the error
            **kwargs: Additional context
        """
        super().__init__(message, ident="config", exitval=2, **kwargs)
        self.config_key = config_key


class ValidationError(MigrateError):
    """
    Argument contract violations.

    Raised before any SQL is built when an operation is called with
    arguments it cannot work with, e.g. mismatched column and value counts.
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        field_value: Optional[Any] = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error description
            field_name: Name of the argument that failed validation
            field_value: The invalid value
            **kwargs: Additional context
        """
        super().__init__(message, ident="validation", exitval=2, **kwargs)
        self.field_name = field_name
        self.field_value = field_value


class EngineError(MigrateError):
    """
    Database engine errors.

    Base class for driver-related errors including connection problems,
    statement failures and operations a dialect cannot express.
    """

    def __init__(
        self,
        message: str,
        engine_name: Optional[str] = None,
        sql_state: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize engine error.

        Args:
            message: Error description
            engine_name: Name of the database driver
            sql_state: SQL state code if applicable
            **kwargs: Additional context
        """
        super().__init__(message, ident="engine", exitval=2, **kwargs)
        self.engine_name = engine_name
        self.sql_state = sql_state


class ConnectionError(EngineError):
    """
    Database connection errors.

    Raised when a connection cannot be established, or when a statement is
    submitted after the driver has been closed.
    """

    def __init__(
        self, message: str, connection_string: Optional[str] = None, **kwargs: Any
    ) -> None:
        """
        Initialize connection error.

        Args:
            message: Error description
            connection_string: Sanitized connection string (no passwords)
            **kwargs: Additional context
        """
        MigrateError.__init__(self, message, ident="connection", exitval=2, **kwargs)
        self.connection_string = connection_string
        self.engine_name = kwargs.get("engine_name")
        self.sql_state = None


class ExecutionError(EngineError):
    """
    Statement execution errors.

    Wraps whatever the database client raised. The original exception is
    kept as ``__cause__`` and ``previous_exception``.
    """

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize execution error.

        Args:
            message: Error description
            sql: Statement that failed
            **kwargs: Additional context
        """
        MigrateError.__init__(self, message, ident="execute", exitval=2, **kwargs)
        self.sql = sql
        self.engine_name = kwargs.get("engine_name")
        self.sql_state = kwargs.get("sql_state")

