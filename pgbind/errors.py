"""Error taxonomy raised by the connection manager."""

from __future__ import annotations


class DatabaseError(RuntimeError):
    """Base class for every failure surfaced by pgbind."""


class ConfigurationError(DatabaseError):
    """Raised when a connection config is missing or invalid."""


class DatabaseConnectionError(DatabaseError):
    """Raised when the underlying client cannot be opened."""


class TransactionError(DatabaseError):
    """Raised when begin, commit or roll back fails."""


class PrepareError(DatabaseError):
    """Raised when a statement cannot be prepared."""

    def __init__(self, sqlstate: str | None, code: object, message: str | None) -> None:
        self.sqlstate = sqlstate
        self.code = code
        self.message = message
        super().__init__(f"SQLSTATE: {sqlstate}, error code: {code}, error string: {message}")


class BindError(DatabaseError):
    """Raised when a named value cannot be bound to a prepared statement."""

    def __init__(self, key: str, detail: str | None = None) -> None:
        self.key = key
        text = f"Cannot bind value for '{key}'."
        if detail:
            text = f"{text} {detail}"
        super().__init__(text)


class ExecuteError(DatabaseError):
    """Raised when a prepared statement fails to execute."""


__all__ = [
    "BindError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "ExecuteError",
    "PrepareError",
    "TransactionError",
]
