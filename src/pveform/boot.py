"""Boot order list model.

The ``boot`` option is either the legacy ``cdn`` style code or
``order=<dev>;<dev>;...``.  :func:`build_boot_list` turns either form
into a list of :class:`BootOrderEntry` objects: the configured devices
enabled and in order, followed by the remaining bootable devices of the
record, disabled and sorted by name.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from .catalog import BOOT
from .codec import decode_or_default
from .devices import extract_boot_devices, legacy_boot_order
from .errors import ValidationError
from .field import ReactiveField
from .values import ValueKind, value_kind

logger = logging.getLogger(__name__)

ORDER_DELIMITER = ";"
LEGACY_DEFAULT = "cdn"

# An empty ``order=`` decodes to nothing but still means "no boot devices".
_EMPTY_ORDER = re.compile(r"(?:^|,)\s*order=\s*(?:,|$)")


@dataclass
class BootOrderEntry:
    name: str
    enabled: bool
    display_value: str | None = None


def _entries_from_array(items: list[Any]) -> list[BootOrderEntry]:
    entries: list[BootOrderEntry] = []
    for item in items:
        if isinstance(item, BootOrderEntry):
            entries.append(BootOrderEntry(item.name, item.enabled, item.display_value))
        elif isinstance(item, Mapping):
            if not item.get("name"):
                raise ValueError(f"boot list item without name: {item!r}")
            entries.append(
                BootOrderEntry(str(item["name"]), bool(item.get("enabled", True)))
            )
        elif isinstance(item, str):
            entries.append(BootOrderEntry(item, True))
        else:
            raise TypeError(f"invalid boot list item {item!r}")
    return entries


def _configured_names(value: Any, record: Mapping[str, Any], legacy_default: str) -> list[str]:
    kind = value_kind(value)
    if kind is ValueKind.NULL:
        text = ""
    elif kind is ValueKind.STRING:
        text = value
    else:
        logger.error("unable to parse boot property string: got wrong type")
        text = ""
    if not text.strip():
        return legacy_boot_order(legacy_default, record)
    boot = decode_or_default(BOOT, text, {"legacy": legacy_default})
    order = boot.get("order")
    if order is None and _EMPTY_ORDER.search(text):
        return []
    if order is not None:
        return [name for name in str(order).split(ORDER_DELIMITER) if name]
    return legacy_boot_order(boot.get("legacy") or legacy_default, record)


def build_boot_list(
    value: Any, record: Mapping[str, Any], *, legacy_default: str = LEGACY_DEFAULT
) -> list[BootOrderEntry]:
    """Build the boot device list for *value* over the configuration *record*.

    *value* is the ``boot`` option as stored, or a list of entries (or
    names) when rebuilding from an edited list.  A device configured more
    than once is listed at its first position.
    """

    if value_kind(value) is ValueKind.ARRAY:
        entries = _entries_from_array(list(value))
    else:
        entries = [
            BootOrderEntry(name, True)
            for name in _configured_names(value, record, legacy_default)
        ]

    seen: set[str] = set()
    unique: list[BootOrderEntry] = []
    for entry in entries:
        if entry.name in seen:
            continue
        seen.add(entry.name)
        unique.append(entry)

    for entry in unique:
        desc = record.get(entry.name)
        entry.display_value = desc if isinstance(desc, str) else None

    disabled = [
        BootOrderEntry(name, False, desc)
        for name, desc in extract_boot_devices(record)
        if name not in seen
    ]
    disabled.sort(key=lambda entry: entry.name)
    return unique + disabled


def commit_boot_order(entries: list[BootOrderEntry]) -> str:
    """Return the ``order=`` encoding of the enabled entries."""

    names = [entry.name for entry in entries if entry.enabled]
    return "order=" + ORDER_DELIMITER.join(names)


def move_up(entries: list[BootOrderEntry], pos: int) -> bool:
    """Swap entry *pos* with its predecessor; ``False`` at the top."""

    if pos <= 0 or pos >= len(entries):
        return False
    entries[pos - 1], entries[pos] = entries[pos], entries[pos - 1]
    return True


def move_down(entries: list[BootOrderEntry], pos: int) -> bool:
    """Swap entry *pos* with its successor; ``False`` at the bottom."""

    if pos < 0 or pos + 1 >= len(entries):
        return False
    entries[pos], entries[pos + 1] = entries[pos + 1], entries[pos]
    return True


def validate_boot_list(value: Any, *, field: str = "boot") -> Any:
    """Commit an edited entry list to the ``order=`` encoding.

    Strings are taken as already encoded.
    """

    if value_kind(value) is ValueKind.ARRAY:
        try:
            return commit_boot_order(_entries_from_array(list(value)))
        except (TypeError, ValueError) as exc:
            raise ValidationError(field, f"invalid boot list: {exc}") from exc
    return value


class BootDeviceListField(ReactiveField):
    """Reactive field editing the ``boot`` option of *record*.

    While editing, the field value is the entry list (as dicts); the
    validator commits it to the ``order=`` encoding.
    """

    name = "boot"

    def __init__(
        self,
        value: Any = None,
        record: Mapping[str, Any] | None = None,
        *,
        legacy_default: str = LEGACY_DEFAULT,
        on_change: Callable[[Any], None] | None = None,
    ) -> None:
        self.record: Mapping[str, Any] = dict(record or {})
        self.legacy_default = legacy_default
        super().__init__(value, on_change=on_change)

    def default_state(self) -> list[BootOrderEntry]:
        return []

    def derive(self, value: Any) -> list[BootOrderEntry]:
        return build_boot_list(value, self.record, legacy_default=self.legacy_default)

    def encode(self, state: list[BootOrderEntry]) -> list[dict[str, Any]]:
        return [asdict(entry) for entry in state]

    def set_record(self, record: Mapping[str, Any]) -> None:
        """Rebuild the list for a changed configuration record."""

        self.record = dict(record)
        self.state = self._derive_or_default(self.value)

    def move_up(self, pos: int) -> None:
        if move_up(self.state, pos):
            self._commit()

    def move_down(self, pos: int) -> None:
        if move_down(self.state, pos):
            self._commit()

    def set_enabled(self, pos: int, enabled: bool) -> None:
        self.state[pos].enabled = enabled
        self._commit()

    def validator(self, value: Any) -> Any:
        return validate_boot_list(value, field=self.name)


__all__ = [
    "BootOrderEntry",
    "build_boot_list",
    "commit_boot_order",
    "move_up",
    "move_down",
    "validate_boot_list",
    "BootDeviceListField",
    "LEGACY_DEFAULT",
    "ORDER_DELIMITER",
]
