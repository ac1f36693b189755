"""Bus-qualified device names and legacy boot-order expansion."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .catalog import BUS_MAX, BUSES
from .errors import ParseError

logger = logging.getLogger(__name__)

_INDEX_RE = re.compile(r"\d+", re.ASCII)
_DISK_RE = re.compile(r"^(ide|sata|virtio|scsi)(\d+)$")
_NET_RE = re.compile(r"^net\d+$")
_HOSTPCI_RE = re.compile(r"^hostpci\d+$")
_USB_RE = re.compile(r"^usb\d+$")
_CLOUD_INIT_RE = re.compile(r"[:/]vm-\d+-cloudinit")


@dataclass(frozen=True, order=True)
class DeviceIdentifier:
    bus: str
    index: int

    def __str__(self) -> str:
        return f"{self.bus}{self.index}"

    @property
    def max_index(self) -> int:
        return BUS_MAX[self.bus] - 1


def parse_device(name: str) -> DeviceIdentifier:
    """Parse a bus-qualified device name such as ``scsi14``.

    Bus prefixes are tried in the order ide, sata, scsi, virtio.  The
    remainder must be a non-negative integer below the bus slot count.
    """

    if not isinstance(name, str):
        raise ParseError(f"invalid device name {name!r}")
    for bus in BUSES:
        if not name.startswith(bus):
            continue
        rest = name[len(bus):]
        if not _INDEX_RE.fullmatch(rest):
            raise ParseError(f"unable to parse device name '{name}'")
        index = int(rest)
        if index >= BUS_MAX[bus]:
            raise ParseError(
                f"device index {index} out of range for {bus} (max {BUS_MAX[bus] - 1})"
            )
        return DeviceIdentifier(bus, index)
    raise ParseError(f"unable to parse device name '{name}'")


def is_disk(key: str) -> bool:
    return _DISK_RE.match(key) is not None


def is_net_device(key: str) -> bool:
    return _NET_RE.match(key) is not None


def is_hostpci(key: str) -> bool:
    return _HOSTPCI_RE.match(key) is not None


def is_usb(key: str) -> bool:
    return _USB_RE.match(key) is not None


def is_cdrom(value: str) -> bool:
    return "media=cdrom" in value


def is_cloud_init(value: str) -> bool:
    """Return ``True`` for a drive value pointing at a cloud-init volume."""

    return is_cdrom(value) and _CLOUD_INIT_RE.search(value) is not None


def is_boot_device(key: str, value: str) -> bool:
    """Return ``True`` if the record entry *key* can appear in a boot order.

    USB devices redirected through SPICE are not bootable.
    """

    if is_disk(key):
        return not is_cloud_init(value)
    if is_net_device(key) or is_hostpci(key):
        return True
    if is_usb(key):
        return "spice" not in value
    return False


def extract_boot_devices(record: Mapping[str, Any]) -> list[tuple[str, str]]:
    """Return ``(key, value)`` pairs of bootable devices in record order."""

    return [
        (key, value)
        for key, value in record.items()
        if isinstance(value, str) and is_boot_device(key, value)
    ]


def used_devices(record: Mapping[str, Any]) -> set[DeviceIdentifier]:
    used: set[DeviceIdentifier] = set()
    for key in record:
        if is_disk(key):
            try:
                used.add(parse_device(key))
            except ParseError:
                logger.warning("ignoring out of range device %s", key)
    return used


def next_free_device(bus: str, record: Mapping[str, Any]) -> DeviceIdentifier | None:
    """Return the lowest unused slot on *bus*, or ``None`` if the bus is full."""

    if bus not in BUS_MAX:
        raise ParseError(f"unknown bus '{bus}'")
    used = used_devices(record)
    for index in range(BUS_MAX[bus]):
        dev = DeviceIdentifier(bus, index)
        if dev not in used:
            return dev
    return None


def legacy_boot_order(code: str, record: Mapping[str, Any]) -> list[str]:
    """Expand a legacy ``cdn`` style boot code into device names.

    ``c`` is the record's ``bootdisk``, ``d`` every CD-ROM drive that is
    not a cloud-init volume and ``n`` every network device.  Unknown
    characters are logged and skipped.
    """

    devices: list[str] = []
    for char in code:
        if char == "c":
            bootdisk = record.get("bootdisk")
            if isinstance(bootdisk, str) and bootdisk:
                devices.append(bootdisk)
        elif char == "d":
            for key, value in record.items():
                if (
                    isinstance(value, str)
                    and is_disk(key)
                    and is_cdrom(value)
                    and not is_cloud_init(value)
                ):
                    devices.append(key)
        elif char == "n":
            devices.extend(key for key in record if is_net_device(key))
        else:
            logger.error("ignore unknown legacy boot order %r", char)
    return devices


__all__ = [
    "DeviceIdentifier",
    "parse_device",
    "is_disk",
    "is_net_device",
    "is_hostpci",
    "is_usb",
    "is_cdrom",
    "is_cloud_init",
    "is_boot_device",
    "extract_boot_devices",
    "used_devices",
    "next_free_device",
    "legacy_boot_order",
]
