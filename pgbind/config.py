"""Connection configuration models and loading helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .models import ErrorMode, FetchMode

CONFIG_FILE = Path.home() / ".config" / "pgbind" / "connections.toml"

DEFAULT_IDENTIFIER = "main"

STRICT_SESSION_SETTINGS: Mapping[str, str] = {
    "standard_conforming_strings": "on",
    "backslash_quote": "off",
    "DateStyle": "ISO, YMD",
    "IntervalStyle": "iso_8601",
}

DEFAULT_OPTIONS_NO_CHARSET: Mapping[str, object] = {
    "fetch_mode": FetchMode.ASSOC,
    "error_mode": ErrorMode.RAISE,
    "server_settings": dict(STRICT_SESSION_SETTINGS),
    "client_encoding": None,
}

DEFAULT_OPTIONS: Mapping[str, object] = {
    **DEFAULT_OPTIONS_NO_CHARSET,
    "client_encoding": "UTF8",
}


class ClientOptions(BaseModel):
    """Resolved options handed to the database client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    fetch_mode: FetchMode = FetchMode.ASSOC
    error_mode: ErrorMode = ErrorMode.RAISE
    server_settings: dict[str, str] = Field(default_factory=dict)
    client_encoding: str | None = None
    connect_timeout: float = 5.0
    command_timeout: float | None = None
    statement_cache_size: int = 100

    def session_settings(self) -> dict[str, str]:
        """Settings applied to the session when it starts."""

        settings = dict(self.server_settings)
        if self.client_encoding:
            settings["client_encoding"] = self.client_encoding
        return settings


class ConnectionConfig(BaseModel):
    """Where and how to connect for one registered identifier."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    database: str
    user: str
    password: str = ""
    host: str | None = None
    port: int | None = None
    unix_socket: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    def dsn(self) -> str:
        """Data-source string; host addressing wins over the local socket."""

        database = quote(self.database, safe="")
        if self.host:
            host = f"[{self.host}]" if ":" in self.host else self.host
            if self.port is not None:
                host = f"{host}:{self.port}"
            return f"postgresql://{host}/{database}"
        if self.unix_socket:
            query = f"host={quote(self.unix_socket, safe='')}"
            if self.port is not None:
                query = f"{query}&port={self.port}"
            return f"postgresql:///{database}?{query}"
        return f"postgresql:///{database}"


def resolve_options(
    overrides: Mapping[str, object] | None = None,
    defaults: Mapping[str, object] = DEFAULT_OPTIONS,
) -> ClientOptions:
    """Merge caller overrides on top of ``defaults`` and validate the result."""

    merged = dict(defaults)
    merged.update(overrides or {})
    try:
        return ClientOptions.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid client options: {exc}") from exc


def coerce_config(config: ConnectionConfig | Mapping[str, Any]) -> ConnectionConfig:
    if isinstance(config, ConnectionConfig):
        return config
    try:
        return ConnectionConfig.model_validate(dict(config))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid connection config: {exc}") from exc


def load_configs(path: Path | None = None) -> dict[str, ConnectionConfig]:
    """Load ``[connections.<identifier>]`` tables from a TOML file.

    A missing file yields no configs; a malformed one raises
    ``ConfigurationError``.
    """

    config_path = path or CONFIG_FILE
    try:
        with config_path.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Cannot parse {config_path}: {exc}") from exc

    sections = raw.get("connections", {})
    if not isinstance(sections, dict):
        raise ConfigurationError(f"'connections' in {config_path} must be a table.")
    configs: dict[str, ConnectionConfig] = {}
    for identifier, entry in sections.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Connection '{identifier}' in {config_path} must be a table.")
        configs[str(identifier)] = coerce_config(entry)
    return configs


__all__ = [
    "CONFIG_FILE",
    "ClientOptions",
    "ConnectionConfig",
    "DEFAULT_IDENTIFIER",
    "DEFAULT_OPTIONS",
    "DEFAULT_OPTIONS_NO_CHARSET",
    "STRICT_SESSION_SETTINGS",
    "coerce_config",
    "load_configs",
    "resolve_options",
]
