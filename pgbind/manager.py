"""Connection registry, connection handles and the rollback safety net."""

from __future__ import annotations

import atexit
import logging
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any, Callable, ContextManager, Iterator, Mapping

from .client import AsyncpgClient, ClientFactory, DatabaseClient, PreparedStatement, error_info_from
from .config import (
    DEFAULT_IDENTIFIER,
    DEFAULT_OPTIONS,
    ConnectionConfig,
    coerce_config,
    load_configs,
    resolve_options,
)
from .errors import (
    BindError,
    ConfigurationError,
    DatabaseConnectionError,
    ExecuteError,
    PrepareError,
    TransactionError,
)
from .models import BindType, TaggedValue, TransactionState, resolve_bind_type

LOG = logging.getLogger(__name__)


class Connection:
    """Live client handle bound to one registered identifier."""

    def __init__(self, name: str, client: DatabaseClient, *, register_atexit: bool = True) -> None:
        self.name = name
        self.client = client
        self._closed = False
        self._atexit_registered = register_atexit
        if register_atexit:
            atexit.register(self.shutdown)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_transaction(self) -> bool:
        if self._closed:
            return False
        return self.client.in_transaction()

    @property
    def state(self) -> TransactionState:
        return TransactionState.OPEN if self.in_transaction else TransactionState.IDLE

    def begin(self) -> None:
        self._delegate(self.client.begin_transaction, "Cannot begin transaction.")

    def commit(self) -> None:
        self._delegate(self.client.commit, "Cannot commit transaction.")

    def roll_back(self) -> None:
        self._delegate(self.client.roll_back, "Cannot roll back transaction.")

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Commit when the block finishes, roll back when it raises."""

        self.begin()
        try:
            yield self
        except BaseException:
            if self.in_transaction:
                self.roll_back()
            raise
        self.commit()

    def prepare_bind_execute(
        self,
        sql: str,
        data: Mapping[str, Any] | None = None,
        data_types: Mapping[str, BindType] | None = None,
    ) -> PreparedStatement:
        """Prepare ``sql``, bind every entry of ``data`` and execute it.

        Bind types come from ``data_types`` when given for a key, otherwise
        from the value: str, int, None and bool map to their own type and
        anything else is sent as a string. Returns the executed statement.
        """

        try:
            statement = self.client.prepare(sql)
        except Exception as exc:
            raise PrepareError(*error_info_from(exc)) from exc
        if statement is None:
            raise PrepareError(*self.client.error_info())

        for key, raw in (data or {}).items():
            value = TaggedValue.of(raw)
            bind_type = resolve_bind_type(key, value, data_types)
            try:
                bound = statement.bind_value(key, value.value, bind_type)
            except Exception as exc:
                raise BindError(key, str(exc)) from exc
            if not bound:
                raise BindError(key, statement.error_info().message)

        try:
            executed = statement.execute()
        except Exception as exc:
            raise ExecuteError(f"SQL statement cannot be executed: {exc}") from exc
        if not executed:
            info = statement.error_info()
            raise ExecuteError(f"SQL statement cannot be executed: SQLSTATE {info.sqlstate}: {info.message}")
        return statement

    def shutdown(self) -> None:
        """Roll back a transaction that is still open.

        Runs at interpreter exit and when the owning scope closes. Failures
        of the rollback itself propagate.
        """

        if self._closed or not self.client.in_transaction():
            return
        LOG.info("Rolling back transaction left open", extra={"connection": self.name})
        self.roll_back()

    def close(self) -> None:
        """Run the safety net, then release the client."""

        if self._closed:
            return
        try:
            self.shutdown()
        finally:
            self._closed = True
            if self._atexit_registered:
                atexit.unregister(self.shutdown)
                self._atexit_registered = False
            self.client.close()

    @staticmethod
    def _delegate(primitive: Callable[[], bool], message: str) -> None:
        try:
            succeeded = primitive()
        except Exception as exc:
            raise TransactionError(message) from exc
        if not succeeded:
            raise TransactionError(message)


class ConnectionManager:
    """Registry of named connections, each opened lazily on first use.

    Use it as a context manager so every handle gets its rollback check and
    is closed when the scope ends; otherwise the check runs at process exit.
    """

    def __init__(
        self,
        configs: Mapping[str, ConnectionConfig | Mapping[str, Any]] | None = None,
        *,
        client_factory: ClientFactory | None = None,
        default_options: Mapping[str, object] = DEFAULT_OPTIONS,
        register_atexit: bool = True,
    ) -> None:
        self._configs: dict[str, ConnectionConfig] = {}
        self._connections: dict[str, Connection] = {}
        self._client_factory = client_factory or AsyncpgClient.open
        self._default_options = dict(default_options)
        self._register_atexit = register_atexit
        for identifier, config in (configs or {}).items():
            self.set_config(identifier, config)

    @classmethod
    def from_config_file(cls, path: Path | None = None, **kwargs: Any) -> ConnectionManager:
        """Build a manager from the ``[connections.*]`` tables of a TOML file."""

        return cls(load_configs(path), **kwargs)

    @property
    def connections(self) -> Mapping[str, Connection]:
        """Handles opened so far, keyed by identifier."""

        return dict(self._connections)

    def set_config(self, identifier: str, config: ConnectionConfig | Mapping[str, Any]) -> None:
        """Register ``config`` under ``identifier``, replacing any previous one."""

        self._configs[identifier] = coerce_config(config)

    def config_for(self, identifier: str) -> ConnectionConfig:
        try:
            return self._configs[identifier]
        except KeyError:
            raise ConfigurationError(f"No connection config registered for '{identifier}'.") from None

    def get_instance(self, identifier: str = DEFAULT_IDENTIFIER) -> Connection:
        """Return the handle for ``identifier``, connecting on first request."""

        connection = self._connections.get(identifier)
        if connection is not None:
            return connection
        config = self.config_for(identifier)
        options = resolve_options(config.options, self._default_options)
        dsn = config.dsn()
        try:
            client = self._client_factory(
                dsn,
                user=config.user,
                password=config.password or None,
                options=options,
            )
        except Exception as exc:
            raise DatabaseConnectionError(f"Failed to connect '{identifier}': {exc}") from exc
        connection = Connection(identifier, client, register_atexit=self._register_atexit)
        self._connections[identifier] = connection
        LOG.debug("Connected", extra={"connection": identifier, "dsn": dsn})
        return connection

    def shutdown(self) -> None:
        """Run the rollback safety net on every open handle."""

        for connection in tuple(self._connections.values()):
            connection.shutdown()

    def close(self) -> None:
        """Close every handle; each one is attempted even if another fails."""

        connections = tuple(self._connections.values())
        self._connections.clear()
        with ExitStack() as stack:
            for connection in connections:
                stack.callback(connection.close)

    def __enter__(self) -> ConnectionManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Database:
    """Single-connection variant: one implicit config, connected lazily."""

    def __init__(
        self,
        config: ConnectionConfig | Mapping[str, Any],
        *,
        client_factory: ClientFactory | None = None,
        default_options: Mapping[str, object] = DEFAULT_OPTIONS,
        register_atexit: bool = True,
    ) -> None:
        self._manager = ConnectionManager(
            {DEFAULT_IDENTIFIER: config},
            client_factory=client_factory,
            default_options=default_options,
            register_atexit=register_atexit,
        )

    @property
    def connection(self) -> Connection | None:
        """The handle if already constructed; never connects."""

        return self._manager.connections.get(DEFAULT_IDENTIFIER)

    @property
    def in_transaction(self) -> bool:
        connection = self.connection
        return connection is not None and connection.in_transaction

    def construct(self) -> Connection:
        return self._manager.get_instance(DEFAULT_IDENTIFIER)

    def begin(self) -> None:
        self.construct().begin()

    def commit(self) -> None:
        self.construct().commit()

    def roll_back(self) -> None:
        self.construct().roll_back()

    def transaction(self) -> ContextManager[Connection]:
        return self.construct().transaction()

    def prepare_bind_execute(
        self,
        sql: str,
        data: Mapping[str, Any] | None = None,
        data_types: Mapping[str, BindType] | None = None,
    ) -> PreparedStatement:
        return self.construct().prepare_bind_execute(sql, data, data_types)

    def shutdown(self) -> None:
        self._manager.shutdown()

    def close(self) -> None:
        self._manager.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["Connection", "ConnectionManager", "Database"]
