"""Reactive field contract.

A :class:`ReactiveField` keeps an internal representation (``state``) in
sync with an externally owned ``value``:

* on construction and on every :meth:`ReactiveField.set_value` the state
  is re-derived from the value alone;
* local edits modify the state and then re-encode the value from it,
  notifying ``on_change`` listeners;
* :meth:`ReactiveField.validate` checks the external value, so validators
  do not depend on the internal layout.

Concrete fields implement :meth:`derive`, :meth:`encode`,
:meth:`default_state` and :meth:`validator`.  Fields hold no global
state; :meth:`teardown` drops everything.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .devices import DeviceIdentifier, parse_device
from .errors import ParseError, PveFormError, ValidationError
from .values import ValueKind, value_kind

logger = logging.getLogger(__name__)


class ReactiveField:
    """Base class for editable fields with an internal representation."""

    name: str = "field"

    def __init__(
        self,
        value: Any = None,
        *,
        on_change: Callable[[Any], None] | None = None,
    ) -> None:
        self.on_change: list[Callable[[Any], None]] = []
        if on_change is not None:
            self.on_change.append(on_change)
        self.value = value
        self.state = self._derive_or_default(value)

    # -- hooks -------------------------------------------------------------
    def derive(self, value: Any) -> Any:
        raise NotImplementedError

    def encode(self, state: Any) -> Any:
        raise NotImplementedError

    def default_state(self) -> Any:
        return None

    def validator(self, value: Any) -> Any:
        return value

    # -- transitions ---------------------------------------------------------
    def _derive_or_default(self, value: Any) -> Any:
        try:
            return self.derive(value)
        except (PveFormError, TypeError, ValueError) as exc:
            logger.error("%s - got invalid value %r: %s", self.name, value, exc)
            return self.default_state()

    def set_value(self, value: Any) -> None:
        """External value changed; rebuild the internal state from scratch."""

        self.value = value
        self.state = self._derive_or_default(value)

    def _commit(self) -> None:
        self.value = self.encode(self.state)
        for cb in list(self.on_change):
            cb(self.value)

    def validate(self) -> Any:
        """Return the accepted value or raise :class:`ValidationError`."""

        return self.validator(self.value)

    def teardown(self) -> None:
        self.on_change.clear()
        self.state = None
        self.value = None


# ---------------------------------------------------------------------------
# Controller selector
# ---------------------------------------------------------------------------


def validate_device_name(
    value: Any, *, used: Iterable[DeviceIdentifier] = (), field: str = "controller"
) -> str:
    """Accept a device name such as ``scsi0`` that is not in *used*.

    Partial selector input (``{"controller": ..., "device_id": ...}``) is
    rejected with the combined text.
    """

    if not isinstance(value, str):
        if isinstance(value, Mapping):
            controller = value.get("controller", "")
            device_id = value.get("device_id", "")
            raise ValidationError(field, f"invalid device name '{controller}{device_id}'")
        raise ValidationError(field, "invalid device name")
    try:
        dev = parse_device(value)
    except ParseError as exc:
        raise ValidationError(field, str(exc)) from exc
    if dev in set(used):
        raise ValidationError(field, f"device '{dev}' is already in use")
    return value


class ControllerSelectorField(ReactiveField):
    """Bus/index selector for a drive slot.

    The state is a ``(controller, device_id)`` pair of strings.  The value
    is the device name (``"scsi0"``) when the pair parses, otherwise an
    object ``{"controller": ..., "device_id": ...}`` carrying the partial
    input so that validation can report it.
    """

    name = "controller"

    def __init__(
        self,
        value: Any = None,
        *,
        used: Iterable[DeviceIdentifier] = (),
        on_change: Callable[[Any], None] | None = None,
    ) -> None:
        self.used = set(used)
        super().__init__(value, on_change=on_change)

    def default_state(self) -> tuple[str, str]:
        return ("", "")

    def derive(self, value: Any) -> tuple[str, str]:
        kind = value_kind(value)
        if kind is ValueKind.NULL:
            return ("", "")
        if kind is ValueKind.STRING:
            dev = parse_device(value)
            return (dev.bus, str(dev.index))
        if kind is ValueKind.OBJECT:
            return (str(value.get("controller", "")), str(value.get("device_id", "")))
        raise TypeError(f"invalid value type {kind.value}")

    def encode(self, state: tuple[str, str]) -> Any:
        controller, device_id = state
        device = f"{controller}{device_id}"
        try:
            parse_device(device)
        except ParseError:
            return {"controller": controller, "device_id": device_id}
        return device

    def set_controller(self, controller: str) -> None:
        self.state = (controller, self.state[1])
        self._commit()

    def set_device_id(self, device_id: str) -> None:
        self.state = (self.state[0], device_id)
        self._commit()

    def validator(self, value: Any) -> str:
        return validate_device_name(value, used=self.used, field=self.name)


# ---------------------------------------------------------------------------
# Hotplug features
# ---------------------------------------------------------------------------

HOTPLUG_FEATURES: tuple[str, ...] = ("disk", "network", "usb", "memory", "cpu", "cloudinit")
HOTPLUG_DEFAULT = "disk,network,usb"


def normalize_hotplug_value(value: Any) -> Any:
    """Map the legacy hotplug encodings onto a feature list.

    ``None`` and ``"1"`` mean the default feature set, ``"0"`` means none.
    """

    kind = value_kind(value)
    if kind is ValueKind.NULL:
        return HOTPLUG_DEFAULT
    if kind is ValueKind.STRING:
        if value == "0":
            return ""
        if value == "1":
            return HOTPLUG_DEFAULT
    return value


def format_hotplug_feature(value: Any) -> str:
    normalized = normalize_hotplug_value(value)
    if normalized == "":
        return "Disabled"
    if isinstance(normalized, str):
        return ", ".join(part.capitalize() for part in normalized.split(",") if part)
    return str(normalized)


def validate_hotplug(value: Any, *, field: str = "hotplug") -> Any:
    """Commit a feature list to the comma separated encoding.

    An empty list disables hotplug (``"0"``); strings pass unchanged.
    """

    if isinstance(value, list):
        features = sorted(str(item) for item in value if item)
        if not features:
            return "0"
        unknown = [f for f in features if f not in HOTPLUG_FEATURES]
        if unknown:
            raise ValidationError(field, f"unknown feature(s): {', '.join(unknown)}")
        return ",".join(features)
    return value


class HotplugFeatureField(ReactiveField):
    """Checkbox set for the ``hotplug`` option."""

    name = "hotplug"

    def default_state(self) -> set[str]:
        return set()

    def derive(self, value: Any) -> set[str]:
        value = normalize_hotplug_value(value)
        kind = value_kind(value)
        if kind is ValueKind.STRING:
            return {part for part in value.split(",") if part}
        if kind is ValueKind.ARRAY:
            return {str(part) for part in value if part}
        raise TypeError(f"invalid value type {kind.value}")

    def encode(self, state: set[str]) -> list[str]:
        return sorted(state)

    def set_feature(self, feature: str, enabled: bool) -> None:
        if enabled:
            self.state.add(feature)
        else:
            self.state.discard(feature)
        self._commit()

    def validator(self, value: Any) -> Any:
        return validate_hotplug(value, field=self.name)


__all__ = [
    "ReactiveField",
    "ControllerSelectorField",
    "HotplugFeatureField",
    "HOTPLUG_FEATURES",
    "HOTPLUG_DEFAULT",
    "normalize_hotplug_value",
    "validate_device_name",
    "validate_hotplug",
    "format_hotplug_feature",
]
