"""Database client seam and its asyncpg implementation."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Protocol, TypeVar, runtime_checkable

import asyncpg

from .config import ClientOptions
from .models import BindType, ErrorInfo, ErrorMode, FetchMode, coerce_value
from .placeholders import RewrittenQuery, rewrite_named

LOG = logging.getLogger(__name__)

T = TypeVar("T")

_UNBOUND = object()


class DriverError(RuntimeError):
    """Raised by the client itself when a call breaks the driver contract."""

    def __init__(self, sqlstate: str, message: str) -> None:
        self.info = ErrorInfo(sqlstate, type(self).__name__, message)
        super().__init__(message)


_DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    DriverError,
    ValueError,
    TypeError,
)


@runtime_checkable
class PreparedStatement(Protocol):
    """Statement handle returned by ``DatabaseClient.prepare``."""

    def bind_value(self, key: str, value: object, bind_type: BindType) -> bool:
        """Bind ``value`` to the named placeholder ``key``."""

    def execute(self) -> bool:
        """Run the statement with the bound values."""

    def error_info(self) -> ErrorInfo:
        """Details of the last failure on this statement."""


@runtime_checkable
class DatabaseClient(Protocol):
    """Protocol the connection manager needs from a database driver."""

    def begin_transaction(self) -> bool:
        """Open a transaction."""

    def commit(self) -> bool:
        """Commit the open transaction."""

    def roll_back(self) -> bool:
        """Roll back the open transaction."""

    def in_transaction(self) -> bool:
        """Whether a transaction is currently open."""

    def prepare(self, sql: str) -> PreparedStatement | None:
        """Prepare ``sql``; ``None`` signals failure in silent error mode."""

    def error_info(self) -> ErrorInfo:
        """Details of the last failure on this client."""

    def close(self) -> None:
        """Release the underlying connection."""


ClientFactory = Callable[..., DatabaseClient]


def error_info_from(exc: BaseException) -> ErrorInfo:
    """Extract SQLSTATE, driver code and message from a driver exception."""

    if isinstance(exc, DriverError):
        return exc.info
    message = getattr(exc, "message", None) or (str(exc.args[0]) if exc.args else type(exc).__name__)
    return ErrorInfo(getattr(exc, "sqlstate", None), type(exc).__name__, message)


class _ErrorTracking:
    """Records driver failures and applies the configured error mode."""

    def __init__(self, error_mode: ErrorMode) -> None:
        self._error_mode = error_mode
        self._last_error = ErrorInfo()

    def error_info(self) -> ErrorInfo:
        return self._last_error

    def _guard(self, func: Callable[..., T], *args: Any, failed: Any = False) -> T:
        try:
            return func(*args)
        except _DRIVER_ERRORS as exc:
            self._last_error = error_info_from(exc)
            if self._error_mode is ErrorMode.RAISE:
                raise
            LOG.debug("Driver call failed", extra={"sqlstate": self._last_error.sqlstate})
            return failed


class AsyncpgStatement(_ErrorTracking):
    """Prepared asyncpg statement driven through named placeholders."""

    def __init__(
        self,
        client: AsyncpgClient,
        statement: asyncpg.prepared_stmt.PreparedStatement,
        query: RewrittenQuery,
        options: ClientOptions,
    ) -> None:
        super().__init__(options.error_mode)
        self._client = client
        self._statement = statement
        self._query = query
        self._fetch_mode = options.fetch_mode
        self._values: list[object] = [_UNBOUND] * len(query.names)
        self._records: tuple[Any, ...] = ()
        self._status: str | None = None
        self._parameter_types: tuple[str, ...] | None = None

    @property
    def sql(self) -> str:
        return self._query.sql

    @property
    def status(self) -> str | None:
        """Command tag reported by the server, e.g. ``UPDATE 1``."""

        return self._status

    @property
    def rows(self) -> tuple[Any, ...]:
        if self._fetch_mode is FetchMode.NUM:
            return tuple(tuple(record.values()) for record in self._records)
        return tuple(dict(record.items()) for record in self._records)

    @property
    def row_count(self) -> int:
        """Rows affected (writes) or returned (reads)."""

        if self._status:
            tail = self._status.rsplit(" ", 1)[-1]
            if tail.isdigit():
                return int(tail)
        return len(self._records)

    def bind_value(self, key: str, value: object, bind_type: BindType) -> bool:
        return self._guard(self._bind, key, value, bind_type)

    def execute(self) -> bool:
        return self._guard(self._execute)

    def _bind(self, key: str, value: object, bind_type: BindType) -> bool:
        position = self._query.position(key)
        if position is None:
            raise DriverError("HY093", f"Invalid parameter number: parameter '{key}' was not defined")
        self._values[position] = coerce_value(value, BindType(bind_type), self._parameter_type(position))
        return True

    def _parameter_type(self, position: int) -> str | None:
        if self._parameter_types is None:
            self._parameter_types = tuple(parameter.name for parameter in self._statement.get_parameters())
        if position < len(self._parameter_types):
            return self._parameter_types[position]
        return None

    def _execute(self) -> bool:
        missing = [name for name, value in zip(self._query.names, self._values) if value is _UNBOUND]
        if missing:
            raise DriverError(
                "HY093",
                f"Invalid parameter number: no value bound for {', '.join(missing)}",
            )
        records = self._client.run(self._statement.fetch(*self._values))
        self._records = tuple(records)
        self._status = self._statement.get_statusmsg()
        return True


class AsyncpgClient(_ErrorTracking):
    """Blocking PostgreSQL client backed by asyncpg.

    The connection lives on a private event loop thread; every call blocks the
    caller until the coroutine it schedules has finished.
    """

    def __init__(
        self,
        connection: asyncpg.Connection,
        options: ClientOptions,
        loop: asyncio.AbstractEventLoop,
        loop_thread: threading.Thread,
    ) -> None:
        super().__init__(options.error_mode)
        self._connection = connection
        self._options = options
        self._loop = loop
        self._loop_thread = loop_thread
        self._closed = False

    @classmethod
    def open(
        cls,
        dsn: str,
        *,
        user: str | None = None,
        password: str | None = None,
        options: ClientOptions | None = None,
    ) -> AsyncpgClient:
        """Connect to ``dsn`` and return a ready client."""

        options = options or ClientOptions()
        loop = asyncio.new_event_loop()
        loop_thread = threading.Thread(target=loop.run_forever, name="pgbind-asyncpg-client", daemon=True)
        loop_thread.start()
        kwargs: dict[str, object] = {
            "dsn": dsn,
            "timeout": options.connect_timeout,
            "statement_cache_size": options.statement_cache_size,
            "server_settings": options.session_settings(),
        }
        if user:
            kwargs["user"] = user
        if password:
            kwargs["password"] = password
        if options.command_timeout is not None:
            kwargs["command_timeout"] = options.command_timeout
        try:
            connection = asyncio.run_coroutine_threadsafe(asyncpg.connect(**kwargs), loop).result()
        except BaseException:
            _stop_loop(loop, loop_thread)
            raise
        LOG.debug("Opened asyncpg connection", extra={"dsn": dsn})
        return cls(connection, options, loop, loop_thread)

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the client's loop and wait for its result."""

        if self._closed:
            coro.close()
            raise DriverError("08003", "Connection is closed")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def begin_transaction(self) -> bool:
        return self._guard(self._begin)

    def commit(self) -> bool:
        return self._guard(self._finish, "COMMIT")

    def roll_back(self) -> bool:
        return self._guard(self._finish, "ROLLBACK")

    def in_transaction(self) -> bool:
        if self._closed:
            return False
        return bool(self._connection.is_in_transaction())

    def prepare(self, sql: str) -> AsyncpgStatement | None:
        return self._guard(self._prepare, sql, failed=None)

    def close(self) -> None:
        if self._closed:
            return
        try:
            self.run(self._connection.close())
        finally:
            self._closed = True
            _stop_loop(self._loop, self._loop_thread)

    def _begin(self) -> bool:
        if self.in_transaction():
            raise DriverError("25001", "There is already an active transaction")
        self.run(self._connection.execute("BEGIN"))
        return True

    def _finish(self, command: str) -> bool:
        if not self.in_transaction():
            raise DriverError("25P01", "There is no active transaction")
        status = self.run(self._connection.execute(command))
        # The server answers COMMIT of an aborted transaction with a ROLLBACK tag.
        if command == "COMMIT" and status == "ROLLBACK":
            raise DriverError("25P02", "Transaction was aborted and has been rolled back")
        return True

    def _prepare(self, sql: str) -> AsyncpgStatement:
        query = rewrite_named(sql)
        statement = self.run(self._connection.prepare(query.sql))
        LOG.debug("Prepared statement", extra={"parameters": len(query.names)})
        return AsyncpgStatement(self, statement, query, self._options)


def _stop_loop(loop: asyncio.AbstractEventLoop, loop_thread: threading.Thread) -> None:
    if loop.is_running():
        loop.call_soon_threadsafe(loop.stop)
        loop_thread.join(timeout=1)
    if not loop_thread.is_alive():
        loop.close()


__all__ = [
    "AsyncpgClient",
    "AsyncpgStatement",
    "ClientFactory",
    "DatabaseClient",
    "DriverError",
    "PreparedStatement",
    "error_info_from",
]
