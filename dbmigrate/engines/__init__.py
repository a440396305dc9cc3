"""
Database driver implementations for dbmigrate.

This module contains the dialect layer and the drivers for the supported
databases: PostgreSQL, MySQL and SQLite.
"""

from .base import Driver, DriverRegistry, connect, register_driver
from .dialect import Dialect, GenericDialect
from .gateway import ExecutionGateway, QueryResult

# Import drivers to register them
from . import mysql, pg, sqlite  # noqa: F401,E402

__all__ = [
    "Driver",
    "DriverRegistry",
    "register_driver",
    "connect",
    "Dialect",
    "GenericDialect",
    "ExecutionGateway",
    "QueryResult",
]
