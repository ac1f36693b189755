"""Classification and explicit coercion of dynamic API values.

Values arrive from JSON responses and may be ``None``, booleans, numbers,
strings, lists or string keyed mappings.  :func:`value_kind` is the single
place where a value is classified; every consumer dispatches on the
returned :class:`ValueKind` instead of relying on truthiness.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any


class ValueKind(Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def value_kind(value: Any) -> ValueKind:
    """Return the :class:`ValueKind` of *value*.

    ``bool`` is checked before numbers because ``bool`` subclasses ``int``.
    """

    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int | float):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, list | tuple):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    raise TypeError(f"unsupported value type: {type(value).__name__}")


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_bool(raw: Any) -> bool:
    """Coerce *raw* into a boolean.

    Accepts real booleans, the integers ``0``/``1`` and the textual tokens
    understood by the backend (``1``/``0``, ``true``/``false``, ``yes``/``no``,
    ``on``/``off``).  Anything else raises :class:`ValueError`.
    """

    kind = value_kind(raw)
    if kind is ValueKind.BOOL:
        return raw
    if kind is ValueKind.NUMBER:
        if raw in (0, 1):
            return bool(raw)
        raise ValueError(f"invalid boolean: {raw!r}")
    if kind is ValueKind.STRING:
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ValueError(f"invalid boolean: {raw!r}")


def as_int(raw: Any) -> int:
    """Coerce *raw* into an integer, rejecting booleans and fractions."""

    kind = value_kind(raw)
    if kind is ValueKind.NUMBER:
        if isinstance(raw, float) and not raw.is_integer():
            raise ValueError(f"expected integer, got {raw!r}")
        return int(raw)
    if kind is ValueKind.STRING:
        return int(raw.strip())
    raise ValueError(f"expected integer, got {raw!r}")


def render_boolean(value: bool) -> str:
    return "Yes" if value else "No"


_BINARY_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


def format_size(num_bytes: int | float) -> str:
    """Return *num_bytes* in binary units, e.g. ``"1.5 GiB"``."""

    size = float(num_bytes)
    unit = _BINARY_UNITS[0]
    for unit in _BINARY_UNITS:
        if abs(size) < 1024 or unit == _BINARY_UNITS[-1]:
            break
        size /= 1024
    text = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{text} {unit}"


def is_empty(value: Any) -> bool:
    """Return ``True`` for ``None`` and the empty string."""

    kind = value_kind(value)
    if kind is ValueKind.NULL:
        return True
    if kind is ValueKind.STRING:
        return value == ""
    return False


def render_value(value: Any) -> str:
    """Return display text for a scalar record value."""

    kind = value_kind(value)
    if kind is ValueKind.NULL:
        return "-"
    if kind is ValueKind.BOOL:
        return render_boolean(value)
    if kind is ValueKind.NUMBER:
        return str(value)
    if kind is ValueKind.STRING:
        return value
    if kind is ValueKind.ARRAY:
        return ", ".join(render_value(v) for v in value)
    return ", ".join(f"{k}={render_value(v)}" for k, v in value.items())


__all__ = [
    "ValueKind",
    "value_kind",
    "parse_bool",
    "as_int",
    "render_boolean",
    "render_value",
    "format_size",
    "is_empty",
]
