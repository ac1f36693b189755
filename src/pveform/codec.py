"""Property-string codec.

Property strings pack several sub-properties into one comma separated
value, e.g. ``"2048,balloon=1024"`` or ``"order=scsi0;net0"``.  A token
without ``=`` is a positional value for the schema's default key.

Values are not unescaped: a sub-property value containing the delimiter
is outside the grammar and the caller is expected to keep such values as
opaque strings.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .errors import DecodeError, ValidationError
from .schema import PropertyDescriptor, PropertySchema
from .values import ValueKind, is_empty, value_kind

logger = logging.getLogger(__name__)

DELIMITER = ","


def decode(schema: PropertySchema, value: Any) -> Any:
    """Decode *value* according to *schema*.

    Non-string values are returned unchanged since some endpoints already
    deliver structured data.  Sub-properties unknown to *schema* are kept
    verbatim under their original name so that :func:`encode` reproduces
    them.  Empty values and omit-if-default values equal to their default
    are left out, exactly as :func:`encode` leaves them out, so decoding
    an encoded object gives the object back.
    """

    if not isinstance(value, str):
        return value

    result: dict[str, Any] = {}
    seen: set[str] = set()
    for token in value.split(DELIMITER):
        token = token.strip()
        if not token:
            continue
        if "=" not in token:
            desc = schema.default_key
            if desc is None:
                raise DecodeError(
                    f"{schema.name}: value '{token}' without key and no default key"
                )
            name, raw = desc.name, token
        else:
            name, raw = token.split("=", 1)
            name = name.strip()
            if not name:
                raise DecodeError(f"{schema.name}: empty key in token '{token}'")
            desc = schema.get(name)
        if name in seen:
            raise DecodeError(f"{schema.name}: duplicate key '{name}'")
        seen.add(name)
        if is_empty(raw):
            continue
        if desc is None:
            result[name] = raw
            continue
        try:
            parsed = desc.coerce(raw)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"{schema.name}: invalid value for '{name}': {exc}") from exc
        if not desc.is_empty(parsed):
            result[name] = parsed
    return result


def decode_or_default(
    schema: PropertySchema, value: Any, default: Mapping[str, Any] | None = None
) -> Any:
    """Decode *value*, falling back to *default* (or ``{}``) on failure."""

    try:
        return decode(schema, value)
    except DecodeError as exc:
        logger.error("unable to parse %s property string %r: %s", schema.name, value, exc)
        return dict(default or {})


def _serialize_unknown(name: str, value: Any) -> str:
    kind = value_kind(value)
    if kind is ValueKind.STRING:
        return value
    if kind is ValueKind.BOOL:
        return "1" if value else "0"
    if kind is ValueKind.NUMBER:
        return str(value)
    raise ValidationError(name, f"cannot encode {kind.value} value")


def encode(schema: PropertySchema, obj: Any) -> Any:
    """Encode *obj* into a property string.

    The default key leads as a positional token, the remaining
    sub-properties follow in schema declaration order and unknown
    sub-properties are appended in their original order.  Empty values are
    dropped.  Non-mapping values are returned unchanged, mirroring
    :func:`decode`.
    """

    if not isinstance(obj, Mapping):
        return obj

    tokens: list[str] = []
    default = schema.default_key
    names = sorted(obj, key=schema.order_of)

    if default is not None and default.name in obj:
        value = obj[default.name]
        if not default.is_empty(value):
            text = _serialize(default, value)
            tokens.append(text if "=" not in text else f"{default.name}={text}")

    for name in names:
        if default is not None and name == default.name:
            continue
        value = obj[name]
        desc = schema.get(name)
        if desc is None:
            if is_empty(value):
                continue
            tokens.append(f"{name}={_serialize_unknown(name, value)}")
            continue
        if desc.is_empty(value):
            continue
        tokens.append(f"{name}={_serialize(desc, value)}")

    return DELIMITER.join(tokens)


def _serialize(desc: PropertyDescriptor, value: Any) -> str:
    try:
        return desc.serialize(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(desc.name, str(exc)) from exc


__all__ = ["DELIMITER", "decode", "decode_or_default", "encode"]
