"""Lazy PostgreSQL connections with transaction helpers and a rollback safety net."""

from __future__ import annotations

from .client import AsyncpgClient, DatabaseClient, DriverError, PreparedStatement
from .config import ClientOptions, ConnectionConfig, DEFAULT_OPTIONS, DEFAULT_OPTIONS_NO_CHARSET, load_configs
from .errors import (
    BindError,
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    ExecuteError,
    PrepareError,
    TransactionError,
)
from .manager import Connection, ConnectionManager, Database
from .models import BindType, ErrorInfo, ErrorMode, FetchMode, TaggedValue, TransactionState, ValueKind

__version__ = "0.1.0"

__all__ = [
    "AsyncpgClient",
    "BindError",
    "BindType",
    "ClientOptions",
    "ConfigurationError",
    "Connection",
    "ConnectionConfig",
    "ConnectionManager",
    "DEFAULT_OPTIONS",
    "DEFAULT_OPTIONS_NO_CHARSET",
    "Database",
    "DatabaseClient",
    "DatabaseConnectionError",
    "DatabaseError",
    "DriverError",
    "ErrorInfo",
    "ErrorMode",
    "ExecuteError",
    "FetchMode",
    "PrepareError",
    "PreparedStatement",
    "TaggedValue",
    "TransactionError",
    "TransactionState",
    "ValueKind",
    "load_configs",
]
