"""Reconciliation of pending (not yet applied) guest configuration.

The backend lists one row per configuration key carrying the current
value, the pending value and a delete flag.  :func:`reconcile` turns the
rows into a current object, a pending object and the set of changed keys.
The view is always rebuilt from the latest listing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol


class DeleteMode(Enum):
    NONE = 0
    SOFT = 1
    FORCE = 2


@dataclass(frozen=True)
class PendingConfigEntry:
    key: str
    delete: DeleteMode = DeleteMode.NONE
    current: Any = None
    pending: Any = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> PendingConfigEntry:
        """Build an entry from a ``{key, delete, value, pending}`` row."""

        key = data.get("key")
        if not isinstance(key, str) or not key:
            raise ValueError(f"pending entry without key: {data!r}")
        raw_delete = data.get("delete")
        if raw_delete is None:
            delete = DeleteMode.NONE
        elif isinstance(raw_delete, bool) or not isinstance(raw_delete, int):
            raise ValueError(f"invalid delete flag for {key}: {raw_delete!r}")
        else:
            delete = DeleteMode(raw_delete)
        return cls(key, delete, data.get("value"), data.get("pending"))


@dataclass(frozen=True)
class PendingConfigView:
    current: Mapping[str, Any]
    pending: Mapping[str, Any]
    changed_keys: frozenset[str]

    def is_changed(self, key: str) -> bool:
        return key in self.changed_keys


def reconcile(
    entries: Iterable[PendingConfigEntry | Mapping[str, Any]],
) -> PendingConfigView:
    """Merge pending-configuration rows into a :class:`PendingConfigView`.

    Deleted keys are changed and absent from the pending object; keys with
    a pending value are changed and carry it; otherwise the current value
    is copied to the pending object.
    """

    current: dict[str, Any] = {}
    pending: dict[str, Any] = {}
    changed: set[str] = set()

    for item in entries:
        entry = item if isinstance(item, PendingConfigEntry) else PendingConfigEntry.from_api(item)
        if entry.current is not None:
            current[entry.key] = entry.current
        if entry.delete in (DeleteMode.SOFT, DeleteMode.FORCE):
            changed.add(entry.key)
            continue
        if entry.pending is not None:
            changed.add(entry.key)
            pending[entry.key] = entry.pending
        elif entry.current is not None:
            pending[entry.key] = entry.current

    return PendingConfigView(
        MappingProxyType(current), MappingProxyType(pending), frozenset(changed)
    )


class RenderableProperty(Protocol):
    name: str
    placeholder: str | None

    def render(self, value: Any, record: Mapping[str, Any]) -> str: ...


def render_property_value(
    current: Mapping[str, Any],
    pending: Mapping[str, Any],
    prop: RenderableProperty,
) -> tuple[str, str | None]:
    """Return ``(current_text, pending_text)`` for *prop*.

    ``pending_text`` is ``None`` when both renderings are identical.
    """

    def _render(record: Mapping[str, Any]) -> str:
        value = record.get(prop.name)
        if value is None:
            return prop.placeholder if prop.placeholder is not None else "-"
        return prop.render(value, record)

    text = _render(current)
    new_text = _render(pending)
    if text != new_text:
        return text, new_text
    return text, None


def revert_payload(keys: Iterable[str]) -> dict[str, Any]:
    """Return the request parameters reverting pending changes of *keys*."""

    return {"revert": ",".join(keys)}


__all__ = [
    "DeleteMode",
    "PendingConfigEntry",
    "PendingConfigView",
    "reconcile",
    "render_property_value",
    "revert_payload",
]
