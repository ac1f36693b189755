"""Projection of encoded record fields into editable working records.

:func:`flatten` decodes one property-string field of a configuration
record and exposes every sub-property as its own transient field named
``_<field>_<sub>``.  :func:`reassemble` collects those transient fields
again and encodes them back into the persisted field.

Persisted and transient names live in separate maps on
:class:`WorkingRecord`, so a transient field can never end up in a
submission payload.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .codec import decode_or_default, encode
from .errors import ReassembleError, ValidationError
from .schema import PropertySchema
from .values import ValueKind, is_empty, value_kind

logger = logging.getLogger(__name__)

TRANSIENT_PREFIX = "_"


def is_transient(name: str) -> bool:
    return name.startswith(TRANSIENT_PREFIX)


def transient_name(field_name: str, sub: str) -> str:
    """Return the working-record name of sub-property *sub* of *field_name*."""

    return f"{TRANSIENT_PREFIX}{field_name}_{sub}"


# ---------------------------------------------------------------------------
# Working record
# ---------------------------------------------------------------------------


@dataclass
class WorkingRecord:
    """Editable copy of a configuration record.

    ``persisted`` holds fields submitted to the backend, ``transient`` the
    UI-only fields.  ``invalid`` remembers fields whose last input did not
    validate, mapped to the rejected raw input.
    """

    persisted: dict[str, Any] = field(default_factory=dict)
    transient: dict[str, Any] = field(default_factory=dict)
    invalid: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | WorkingRecord) -> WorkingRecord:
        if isinstance(record, WorkingRecord):
            return record.copy()
        working = cls()
        for name, value in record.items():
            working.set(name, copy.deepcopy(value))
        return working

    def copy(self) -> WorkingRecord:
        return WorkingRecord(
            copy.deepcopy(self.persisted),
            copy.deepcopy(self.transient),
            dict(self.invalid),
        )

    def _map(self, name: str) -> dict[str, Any]:
        return self.transient if is_transient(name) else self.persisted

    def get(self, name: str, default: Any = None) -> Any:
        return self._map(name).get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self._map(name)[name]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._map(name)

    def set(self, name: str, value: Any) -> None:
        self._map(name)[name] = value
        self.invalid.pop(name, None)

    def pop(self, name: str, default: Any = None) -> Any:
        self.invalid.pop(name, None)
        return self._map(name).pop(name, default)

    def mark_invalid(self, name: str, raw: Any) -> None:
        """Record that the current input for *name* failed validation.

        The last valid value stays in place; :meth:`last_valid` refuses to
        return it until the field is set again.
        """

        self.invalid[name] = raw

    def last_valid(self, name: str) -> Any:
        if name in self.invalid:
            raise ReassembleError(name, f"invalid input {self.invalid[name]!r}")
        return self.get(name)

    def transient_for(self, field_name: str) -> dict[str, Any]:
        """Return ``{sub: value}`` for all transient fields of *field_name*."""

        prefix = transient_name(field_name, "")
        return {
            name[len(prefix):]: value
            for name, value in self.transient.items()
            if name.startswith(prefix)
        }

    def submit_data(self, names: Iterable[str] | None = None) -> dict[str, Any]:
        """Return a payload copy of the persisted fields (optionally a subset)."""

        if names is None:
            return copy.deepcopy(self.persisted)
        return {
            name: copy.deepcopy(self.persisted[name])
            for name in names
            if name in self.persisted
        }

    def as_dict(self) -> dict[str, Any]:
        data = copy.deepcopy(self.persisted)
        data.update(copy.deepcopy(self.transient))
        return data


# ---------------------------------------------------------------------------
# Derived inverse fields
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Inverse:
    """Positive checkbox *derived* standing in for negative flag *source*."""

    derived: str
    source: str


def _apply_inverse_load(working: WorkingRecord, field_name: str, rule: Inverse) -> None:
    source = working.get(transient_name(field_name, rule.source))
    negative = source is True
    working.set(transient_name(field_name, rule.derived), not negative)


def _apply_inverse_submit(parts: dict[str, Any], rule: Inverse, field_name: str) -> None:
    derived = parts.pop(rule.derived, None)
    if derived is None:
        return
    if not isinstance(derived, bool):
        raise ReassembleError(transient_name(field_name, rule.derived), "expected a boolean")
    parts[rule.source] = True if derived is False else None


# ---------------------------------------------------------------------------
# Flatten / reassemble
# ---------------------------------------------------------------------------


def flatten(
    record: Mapping[str, Any] | WorkingRecord,
    field_name: str,
    schema: PropertySchema,
    *,
    inverse: Iterable[Inverse] = (),
) -> WorkingRecord:
    """Return a working record with *field_name* split into sub-fields.

    The persisted value of *field_name* is kept as is.  Undecodable values
    are logged and treated as empty.  A bare scalar (for example a number
    returned for a field whose only required sub-property is the default
    key) is assigned to the default key.
    """

    working = WorkingRecord.from_record(record)
    decoded = decode_or_default(schema, working.get(field_name))
    kind = value_kind(decoded)
    if kind is ValueKind.OBJECT:
        for sub, value in decoded.items():
            working.set(transient_name(field_name, sub), value)
    elif kind is ValueKind.NULL:
        pass
    elif kind is ValueKind.ARRAY:
        logger.error("unable to flatten %s: got a list", field_name)
    else:
        desc = schema.default_key
        if desc is None:
            logger.error("unable to flatten %s: got scalar %r", field_name, decoded)
        else:
            try:
                working.set(transient_name(field_name, desc.name), desc.coerce(decoded))
            except (TypeError, ValueError) as exc:
                logger.error("unable to flatten %s: %s", field_name, exc)
    for rule in inverse:
        _apply_inverse_load(working, field_name, rule)
    return working


def collect_parts(
    working: WorkingRecord, field_name: str, schema: PropertySchema
) -> dict[str, Any]:
    """Return the sub-property values of *field_name* ready for encoding.

    Raises :class:`ReassembleError` naming the transient field when an
    input is pending validation, a numeric input cannot be read or a
    required sub-property is missing.
    """

    parts: dict[str, Any] = {}
    for sub in working.transient_for(field_name):
        name = transient_name(field_name, sub)
        value = working.last_valid(name)
        desc = schema.get(sub)
        if desc is not None and desc.kind == "integer" and isinstance(value, str) and value != "":
            try:
                value = desc.coerce(value)
            except ValueError as exc:
                raise ReassembleError(name, f"invalid number {value!r}") from exc
        parts[sub] = value
    for desc in schema.properties:
        if not desc.optional and is_empty(parts.get(desc.name)):
            raise ReassembleError(transient_name(field_name, desc.name), "value is required")
    return parts


def reassemble(
    working: WorkingRecord,
    field_name: str,
    schema: PropertySchema,
    *,
    inverse: Iterable[Inverse] = (),
) -> Any:
    """Encode the transient sub-fields of *field_name* into its persisted value.

    Returns the encoded string, or ``None`` when every sub-property is
    empty.
    """

    parts = collect_parts(working, field_name, schema)
    for rule in inverse:
        _apply_inverse_submit(parts, rule, field_name)
    try:
        schema.validate(parts)
        encoded = encode(schema, parts)
    except ValidationError as exc:
        raise ReassembleError(transient_name(field_name, exc.field or ""), exc.message) from exc
    return encoded or None


def add_missing_data(
    working: WorkingRecord,
    record: Mapping[str, Any],
    field_name: str,
    schema: PropertySchema,
) -> None:
    """Copy sub-properties of ``record[field_name]`` not present in *working*.

    Keeps sub-properties that have no editor on the form in the
    submission.
    """

    decoded = decode_or_default(schema, record.get(field_name))
    if value_kind(decoded) is not ValueKind.OBJECT:
        return
    for sub, value in decoded.items():
        name = transient_name(field_name, sub)
        if name not in working:
            working.set(name, value)


def delete_empty_values(
    data: Mapping[str, Any], names: Iterable[str], delete_undefined: bool = False
) -> dict[str, Any]:
    """Drop empty *names* from *data* and list them under ``delete``.

    Only the listed names are considered.  An absent key means
    "unchanged" to the backend while a name in ``delete`` clears it.
    """

    names = list(names)
    result: dict[str, Any] = {}
    delete: list[str] = []
    for name, value in data.items():
        if name in names and is_empty(value):
            delete.append(name)
        else:
            result[name] = value
    if delete_undefined:
        delete.extend(name for name in names if name not in data)
    if delete:
        result["delete"] = ",".join(delete)
    return result


def property_string_payload(
    working: WorkingRecord,
    field_name: str,
    schema: PropertySchema,
    *,
    names: Iterable[str] = (),
    inverse: Iterable[Inverse] = (),
) -> dict[str, Any]:
    """Build the submission payload for a property-string editor.

    *names* lists additional persisted fields edited alongside
    *field_name*.
    """

    names = [field_name, *names]
    payload = working.submit_data(names)
    payload[field_name] = reassemble(working, field_name, schema, inverse=inverse)
    return delete_empty_values(payload, names)


__all__ = [
    "TRANSIENT_PREFIX",
    "is_transient",
    "transient_name",
    "WorkingRecord",
    "Inverse",
    "flatten",
    "collect_parts",
    "reassemble",
    "add_missing_data",
    "delete_empty_values",
    "property_string_payload",
]
