"""Declarative property-string schemas.

A :class:`PropertySchema` is an ordered, immutable table of
:class:`PropertyDescriptor` entries describing the sub-properties packed
into a single encoded configuration value.  Each descriptor names a
``kind`` which maps to a :class:`TypeAdapter` in :data:`TYPE_REGISTRY`;
adapters coerce raw tokens into Python values, serialise them back to
text and validate them against the descriptor.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Protocol

from .errors import SchemaError, ValidationError
from .values import ValueKind, as_int, is_empty, parse_bool, value_kind

####################
##### ADAPTERS #####
####################


class TypeAdapter(Protocol):
    """Adapter for a primitive sub-property kind."""

    def parse(self, raw: Any) -> Any:
        """Coerce *raw* into a Python value, raising :class:`ValueError`."""

    def serialize(self, value: Any) -> str:
        """Serialise *value* into a property-string token."""

    def validate(self, value: Any, desc: PropertyDescriptor) -> None:
        """Raise :class:`TypeError` or :class:`ValueError` if invalid."""


class StringAdapter:
    """Adapter for plain string values."""

    def parse(self, raw: Any) -> str:
        kind = value_kind(raw)
        if kind is ValueKind.STRING:
            return raw
        if kind is ValueKind.NUMBER:
            return str(raw)
        raise ValueError(f"expected string, got {raw!r}")

    def serialize(self, value: Any) -> str:
        return self.parse(value)

    def validate(self, value: Any, desc: PropertyDescriptor) -> None:
        if value is not None and not isinstance(value, str):
            raise TypeError("expected str")


class IntegerAdapter:
    """Adapter for integer values."""

    def parse(self, raw: Any) -> int:
        return as_int(raw)

    def serialize(self, value: Any) -> str:
        return str(self.parse(value))

    def validate(self, value: Any, desc: PropertyDescriptor) -> None:
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError("expected int")
        if desc.minimum is not None and value < desc.minimum:
            raise ValueError(f"value {value} < minimum {desc.minimum}")
        if desc.maximum is not None and value > desc.maximum:
            raise ValueError(f"value {value} > maximum {desc.maximum}")


class BooleanAdapter:
    """Adapter for boolean values.

    The backend writes booleans as ``1``/``0``; textual tokens such as
    ``true``/``false`` are accepted when decoding.
    """

    def parse(self, raw: Any) -> bool:
        return parse_bool(raw)

    def serialize(self, value: Any) -> str:
        return "1" if self.parse(value) else "0"

    def validate(self, value: Any, desc: PropertyDescriptor) -> None:
        if value is not None and not isinstance(value, bool):
            raise TypeError("expected bool")


class EnumAdapter:
    """Adapter for string values restricted to ``desc.choices``."""

    def parse(self, raw: Any) -> str:
        if not isinstance(raw, str):
            raise ValueError(f"expected string, got {raw!r}")
        return raw

    def serialize(self, value: Any) -> str:
        return self.parse(value)

    def validate(self, value: Any, desc: PropertyDescriptor) -> None:
        if value is None:
            return
        if not isinstance(value, str):
            raise TypeError("expected str")
        if value not in desc.choices:
            allowed = ", ".join(desc.choices)
            raise ValueError(f"value {value!r} not in ({allowed})")


TYPE_REGISTRY: dict[str, TypeAdapter] = {
    "string": StringAdapter(),
    "integer": IntegerAdapter(),
    "boolean": BooleanAdapter(),
    "enum": EnumAdapter(),
}

######################
##### DESCRIPTOR #####
######################


@dataclass(frozen=True)
class PropertyDescriptor:
    """Description of a single sub-property of a property string."""

    name: str
    kind: str = "string"
    optional: bool = True
    is_default_key: bool = False
    default: Any = None
    omit_if_default: bool = False
    choices: tuple[str, ...] = ()
    minimum: int | None = None
    maximum: int | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in TYPE_REGISTRY:
            raise SchemaError(f"unknown kind: {self.kind!r}")
        if not self.name or "," in self.name or "=" in self.name:
            raise SchemaError(f"invalid sub-property name: {self.name!r}")
        object.__setattr__(self, "choices", tuple(self.choices))
        if self.kind == "enum" and not self.choices:
            raise SchemaError(f"enum sub-property {self.name!r} needs choices")

    @property
    def adapter(self) -> TypeAdapter:
        return TYPE_REGISTRY[self.kind]

    def coerce(self, raw: Any) -> Any:
        """Coerce *raw* to this descriptor's kind.

        Raises :class:`ValueError` when the value cannot be represented,
        including enum values outside ``choices``.
        """

        value = self.adapter.parse(raw)
        if self.kind == "enum" and value not in self.choices:
            raise ValueError(f"value {value!r} not in {self.choices}")
        return value

    def is_empty(self, value: Any) -> bool:
        """Return ``True`` if *value* should be left out of an encoding."""

        if is_empty(value):
            return True
        if self.omit_if_default and self.default is not None:
            try:
                return self.coerce(value) == self.default
            except (TypeError, ValueError):
                return False
        return False

    def serialize(self, value: Any) -> str:
        return self.adapter.serialize(value)


##################
##### SCHEMA #####
##################


@dataclass(frozen=True)
class PropertySchema:
    """Ordered, immutable table of sub-property descriptors."""

    name: str
    properties: Iterable[PropertyDescriptor] = dataclass_field(default_factory=tuple)
    description: str | None = None

    def __post_init__(self) -> None:
        props = tuple(self.properties)
        object.__setattr__(self, "properties", props)
        seen: set[str] = set()
        defaults = 0
        for desc in props:
            if desc.name in seen:
                raise SchemaError(f"{self.name}: duplicate sub-property {desc.name!r}")
            seen.add(desc.name)
            if desc.is_default_key:
                defaults += 1
        if defaults > 1:
            raise SchemaError(f"{self.name}: more than one default key")

    @property
    def default_key(self) -> PropertyDescriptor | None:
        for desc in self.properties:
            if desc.is_default_key:
                return desc
        return None

    def names(self) -> list[str]:
        return [desc.name for desc in self.properties]

    def get(self, name: str) -> PropertyDescriptor | None:
        for desc in self.properties:
            if desc.name == name:
                return desc
        return None

    def __contains__(self, name: object) -> bool:
        return any(desc.name == name for desc in self.properties)

    def order_of(self, name: str) -> int:
        """Return the declaration index of *name*, unknown names sort last."""

        for index, desc in enumerate(self.properties):
            if desc.name == name:
                return index
        return len(self.properties)

    def validate(self, obj: Mapping[str, Any]) -> None:
        """Validate a decoded object against this schema.

        Raises :class:`ValidationError` naming the offending sub-property.
        Unknown sub-properties are not checked.
        """

        for desc in self.properties:
            value = obj.get(desc.name)
            if is_empty(value):
                if not desc.optional:
                    raise ValidationError(desc.name, "value is required")
                continue
            try:
                desc.adapter.validate(value, desc)
            except (TypeError, ValueError) as exc:
                raise ValidationError(desc.name, str(exc)) from exc


__all__ = [
    "TypeAdapter",
    "TYPE_REGISTRY",
    "PropertyDescriptor",
    "PropertySchema",
]
