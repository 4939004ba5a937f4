"""Shared value types used across the client and manager modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Mapping, NamedTuple
from uuid import UUID


class BindType(str, Enum):
    """How a value is sent to the server when bound to a placeholder."""

    STRING = "string"
    INTEGER = "integer"
    NULL = "null"
    BOOLEAN = "boolean"


class ValueKind(str, Enum):
    """Runtime shape of a caller-supplied value."""

    STRING = "string"
    INTEGER = "integer"
    NULL = "null"
    BOOLEAN = "boolean"
    OTHER = "other"


class TransactionState(str, Enum):
    """Transaction status of a connection handle."""

    IDLE = "idle"
    OPEN = "open"


class FetchMode(str, Enum):
    """Row shape produced by an executed statement."""

    ASSOC = "assoc"
    NUM = "num"


class ErrorMode(str, Enum):
    """Whether the client raises driver errors or only records them."""

    RAISE = "raise"
    SILENT = "silent"


class ErrorInfo(NamedTuple):
    """Last error reported by the driver."""

    sqlstate: str | None = None
    code: object = None
    message: str | None = None


_BIND_TYPES: Mapping[ValueKind, BindType] = {
    ValueKind.STRING: BindType.STRING,
    ValueKind.INTEGER: BindType.INTEGER,
    ValueKind.NULL: BindType.NULL,
    ValueKind.BOOLEAN: BindType.BOOLEAN,
    ValueKind.OTHER: BindType.STRING,
}

_TRUE_STRINGS = frozenset({"1", "t", "true", "y", "yes", "on"})
_FALSE_STRINGS = frozenset({"", "0", "f", "false", "n", "no", "off"})

TEXT_TYPES = frozenset({"text", "varchar", "bpchar", "char", "name", "unknown", "citext"})
_INTEGER_TYPES = frozenset({"int2", "int4", "int8", "oid"})
_FLOAT_TYPES = frozenset({"float4", "float8"})


@dataclass(frozen=True, slots=True)
class TaggedValue:
    """A value paired with its kind, decided once at the API boundary."""

    kind: ValueKind
    value: object = None

    @classmethod
    def of(cls, value: object) -> TaggedValue:
        """Tag a raw value; already tagged values pass through unchanged."""

        if isinstance(value, TaggedValue):
            return value
        if value is None:
            return cls(ValueKind.NULL, None)
        # bool before int: bool is an int subclass.
        if isinstance(value, bool):
            return cls(ValueKind.BOOLEAN, value)
        if isinstance(value, int):
            return cls(ValueKind.INTEGER, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        return cls(ValueKind.OTHER, value)

    @property
    def bind_type(self) -> BindType:
        return _BIND_TYPES[self.kind]


def resolve_bind_type(key: str, value: TaggedValue, data_types: Mapping[str, BindType] | None) -> BindType:
    """Return the explicit override for ``key`` or the type inferred from the value."""

    if data_types:
        name = key[1:] if key.startswith(":") else key
        for candidate in (key, name, f":{name}"):
            override = data_types.get(candidate)
            if override is not None:
                return BindType(override)
    return value.bind_type


def coerce_value(value: object, bind_type: BindType, parameter_type: str | None = None) -> object:
    """Convert ``value`` into the Python object sent for ``bind_type``.

    ``parameter_type`` is the server's type name for the placeholder when it
    is known. String binds are only turned into ``str`` for text-like
    parameters; for typed parameters the value is passed through, and a
    ``str`` is parsed into the type the parameter needs. ``None`` binds as
    SQL NULL whatever the type. Raises ``ValueError`` or ``TypeError`` when
    the value cannot be represented.
    """

    if value is None or bind_type is BindType.NULL:
        return None
    text_target = parameter_type is None or parameter_type in TEXT_TYPES
    if bind_type is BindType.STRING:
        if text_target:
            return _as_text(value)
        if isinstance(value, bytes) and parameter_type != "bytea":
            value = value.decode("utf-8")
        if isinstance(value, str):
            return _parse_text(value, parameter_type)  # type: ignore[arg-type]
        return value
    if bind_type is BindType.INTEGER:
        if isinstance(value, str):
            number = int(value.strip())
        elif isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{value!r} is not an integer")
        else:
            number = int(value)  # type: ignore[call-overload]
        return str(number) if parameter_type in TEXT_TYPES else number
    flag = _as_bool(value)
    return _as_text(flag) if parameter_type in TEXT_TYPES else flag


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8")
    # Booleans go out as "1"/"0" so they read back as valid boolean input.
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"{value!r} is not a boolean")
    return bool(value)


def _parse_text(value: str, parameter_type: str) -> object:
    """Parse ``value`` into the Python type asyncpg encodes for ``parameter_type``."""

    text = value.strip()
    if parameter_type in _INTEGER_TYPES:
        return int(text)
    if parameter_type in _FLOAT_TYPES:
        return float(text)
    if parameter_type == "numeric":
        try:
            return Decimal(text)
        except InvalidOperation:
            raise ValueError(f"{value!r} is not a number") from None
    if parameter_type == "bool":
        return _as_bool(text)
    if parameter_type == "date":
        return date.fromisoformat(text)
    if parameter_type in {"time", "timetz"}:
        return time.fromisoformat(text)
    if parameter_type in {"timestamp", "timestamptz"}:
        return datetime.fromisoformat(text)
    if parameter_type == "uuid":
        return UUID(text)
    if parameter_type == "bytea":
        return value.encode("utf-8")
    return value


__all__ = [
    "BindType",
    "TEXT_TYPES",
    "ErrorInfo",
    "ErrorMode",
    "FetchMode",
    "TaggedValue",
    "TransactionState",
    "ValueKind",
    "coerce_value",
    "resolve_bind_type",
]
