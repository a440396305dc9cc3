"""
Core definitions for dbmigrate.

This module contains the schema-change data model, driver configuration and
the exception hierarchy shared by every driver.
"""

from dbmigrate.core.exceptions import (
    ConfigurationError,
    ConnectionError,
    EngineError,
    ExecutionError,
    MigrateError,
    ValidationError,
)

__all__ = [
    "MigrateError",
    "ConfigurationError",
    "ValidationError",
    "EngineError",
    "ConnectionError",
    "ExecutionError",
]
