"""Reading and writing schema tables as TOML.

Layout::

    [memory]
    description = "Memory size"

    [[memory.properties]]
    name = "current"
    kind = "integer"
    default_key = true
    default = 512
    minimum = 16

Files are read with :mod:`tomllib` and written with :mod:`tomlkit`.
"""

from __future__ import annotations

import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import tomlkit

from .errors import SchemaError
from .schema import PropertyDescriptor, PropertySchema

# TOML key -> descriptor attribute
_KEYS = {
    "name": "name",
    "kind": "kind",
    "optional": "optional",
    "default_key": "is_default_key",
    "default": "default",
    "omit_if_default": "omit_if_default",
    "choices": "choices",
    "minimum": "minimum",
    "maximum": "maximum",
    "description": "description",
}


def _descriptor(schema_name: str, data: Any) -> PropertyDescriptor:
    if not isinstance(data, Mapping):
        raise SchemaError(f"{schema_name}: property entries must be tables")
    unknown = sorted(set(data) - set(_KEYS))
    if unknown:
        raise SchemaError(f"{schema_name}: unknown property keys {unknown}")
    if "name" not in data:
        raise SchemaError(f"{schema_name}: property without name")
    kwargs = {_KEYS[key]: value for key, value in data.items()}
    if "choices" in kwargs:
        kwargs["choices"] = tuple(kwargs["choices"])
    try:
        return PropertyDescriptor(**kwargs)
    except TypeError as exc:
        raise SchemaError(f"{schema_name}: {exc}") from exc


def schemas_from_dict(data: Mapping[str, Any]) -> dict[str, PropertySchema]:
    schemas: dict[str, PropertySchema] = {}
    for name, table in data.items():
        if not isinstance(table, Mapping):
            raise SchemaError(f"{name}: schema must be a table")
        props = table.get("properties", [])
        if not isinstance(props, list):
            raise SchemaError(f"{name}: properties must be an array of tables")
        schemas[name] = PropertySchema(
            name,
            [_descriptor(name, entry) for entry in props],
            table.get("description"),
        )
    return schemas


def load_schemas(path: str | Path) -> dict[str, PropertySchema]:
    """Read schema tables from the TOML file at *path*."""

    path = Path(path)
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise SchemaError(f"{path}: {exc}") from exc
    return schemas_from_dict(data)


def _property_table(desc: PropertyDescriptor) -> tomlkit.items.Table:
    table = tomlkit.table()
    table["name"] = desc.name
    table["kind"] = desc.kind
    if not desc.optional:
        table["optional"] = False
    if desc.is_default_key:
        table["default_key"] = True
    if desc.default is not None:
        table["default"] = desc.default
    if desc.omit_if_default:
        table["omit_if_default"] = True
    if desc.choices:
        choices = tomlkit.array()
        choices.extend(desc.choices)
        table["choices"] = choices
    if desc.minimum is not None:
        table["minimum"] = desc.minimum
    if desc.maximum is not None:
        table["maximum"] = desc.maximum
    if desc.description:
        table["description"] = desc.description
    return table


def dump_schemas(schemas: Iterable[PropertySchema], path: str | Path | None = None) -> str:
    """Return *schemas* as TOML text, also writing it to *path* if given."""

    doc = tomlkit.document()
    for schema in schemas:
        table = tomlkit.table()
        if schema.description:
            table["description"] = schema.description
        props = tomlkit.aot()
        for desc in schema.properties:
            props.append(_property_table(desc))
        table["properties"] = props
        doc[schema.name] = table
    text = tomlkit.dumps(doc)
    if path is not None:
        Path(path).write_text(text, encoding="utf-8")
    return text


__all__ = ["load_schemas", "dump_schemas", "schemas_from_dict"]
