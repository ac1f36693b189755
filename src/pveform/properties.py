"""Editable guest configuration properties.

An :class:`EditableProperty` describes how one configuration option is
shown and edited: how its value is rendered, how a record is projected
into a :class:`~pveform.flatten.WorkingRecord` when an editor opens
(``load_hook``), how the working record is turned back into a request
payload (``submit_hook``) and which synchronisation runs after every edit
(``on_change``).

The factories below build the properties of a QEMU guest.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .boot import validate_boot_list
from .catalog import AGENT, AMD_SEV, MACHINE, MEMORY, SMBIOS1, STARTUP, drive_schema
from .codec import decode
from .devices import parse_device, used_devices
from .errors import DecodeError, ParseError, ReassembleError, ValidationError
from .field import (
    format_hotplug_feature,
    normalize_hotplug_value,
    validate_device_name,
    validate_hotplug,
)
from .flatten import (
    Inverse,
    WorkingRecord,
    add_missing_data,
    delete_empty_values,
    flatten,
    property_string_payload,
    reassemble,
    transient_name,
)
from .schema import PropertySchema
from .values import (
    ValueKind,
    as_int,
    format_size,
    is_empty,
    parse_bool,
    render_boolean,
    render_value,
    value_kind,
)

logger = logging.getLogger(__name__)

Renderer = Callable[[str, Any, Mapping[str, Any]], str]
LoadHook = Callable[[Mapping[str, Any]], WorkingRecord]
SubmitHook = Callable[[WorkingRecord, Mapping[str, Any]], dict[str, Any]]
ChangeHook = Callable[[WorkingRecord], None]
Validator = Callable[[Any], Any]


@dataclass
class EditableProperty:
    """Description of one editable configuration option.

    ``validators`` maps working-record field names to functions returning
    the accepted (possibly normalised) value or raising
    :class:`ValidationError`.  They run on a copy of the working record
    before ``submit_hook``.
    """

    name: str
    title: str
    required: bool = False
    placeholder: str | None = None
    renderer: Renderer | None = None
    load_hook: LoadHook | None = None
    submit_hook: SubmitHook | None = None
    on_change: ChangeHook | None = None
    validators: dict[str, Validator] = field(default_factory=dict)
    revert_keys: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.revert_keys and self.name:
            self.revert_keys = (self.name,)

    def render(self, value: Any, record: Mapping[str, Any]) -> str:
        if self.renderer is None:
            return render_value(value)
        return self.renderer(self.name, value, record)

    def load(self, record: Mapping[str, Any]) -> WorkingRecord:
        if self.load_hook is None:
            return WorkingRecord.from_record(record)
        return self.load_hook(record)

    def sync(self, working: WorkingRecord) -> None:
        if self.on_change is not None:
            self.on_change(working)

    def validate(self, working: WorkingRecord) -> None:
        for name, validator in self.validators.items():
            if name in working.invalid:
                raise ReassembleError(name, f"invalid input {working.invalid[name]!r}")
            working.set(name, validator(working.get(name)))

    def submit(self, working: WorkingRecord, record: Mapping[str, Any]) -> dict[str, Any]:
        """Return the request payload for *working*.

        *working* itself is never modified.
        """

        working = working.copy()
        self.validate(working)
        if self.submit_hook is not None:
            return self.submit_hook(working, record)
        return delete_empty_values(working.submit_data([self.name]), [self.name])


# ---------------------------------------------------------------------------
# Simple properties
# ---------------------------------------------------------------------------


def bool_property(name: str, title: str, default: bool) -> EditableProperty:
    def renderer(_name: str, value: Any, _record: Mapping[str, Any]) -> str:
        try:
            return render_boolean(parse_bool(value))
        except (TypeError, ValueError):
            logger.error("%s: invalid boolean %r", name, value)
            return render_value(value)

    return EditableProperty(
        name, title, required=True, placeholder=render_boolean(default), renderer=renderer
    )


def string_property(
    name: str,
    title: str,
    *,
    placeholder: str | None = None,
    validator: Validator | None = None,
) -> EditableProperty:
    validators = {name: validator} if validator is not None else {}
    return EditableProperty(
        name, title, required=True, placeholder=placeholder, validators=validators
    )


def name_property(vmid: int) -> EditableProperty:
    return string_property("name", "Name", placeholder=f"VM {vmid}")


def property_string_property(
    name: str,
    title: str,
    schema: PropertySchema,
    *,
    placeholder: str | None = None,
    renderer: Renderer | None = None,
    required: bool = True,
) -> EditableProperty:
    """Generic editor splitting *name* into one field per sub-property."""

    def load(record: Mapping[str, Any]) -> WorkingRecord:
        return flatten(record, name, schema)

    def submit(working: WorkingRecord, record: Mapping[str, Any]) -> dict[str, Any]:
        add_missing_data(working, record, name, schema)
        return property_string_payload(working, name, schema)

    return EditableProperty(
        name,
        title,
        required=required,
        placeholder=placeholder,
        renderer=renderer,
        load_hook=load,
        submit_hook=submit,
    )


def startup_property() -> EditableProperty:
    return property_string_property(
        "startup", "Start/Shutdown order", STARTUP, placeholder="order=any"
    )


def render_agent(_name: str, value: Any, _record: Mapping[str, Any]) -> str:
    try:
        agent = decode(AGENT, value)
        if value_kind(agent) is not ValueKind.OBJECT:
            agent = {"enabled": parse_bool(agent)}
    except (DecodeError, TypeError, ValueError) as exc:
        logger.error("failed to parse agent property: %s", exc)
        return render_value(value)

    if not agent.get("enabled"):
        return "Disabled"
    parts = ["Enabled"]
    if agent.get("type"):
        parts.append(str(agent["type"]))
    if agent.get("fstrim_cloned_disks") is not None:
        parts.append(f"fstrim-cloned-disks: {render_boolean(agent['fstrim_cloned_disks'])}")
    if agent.get("freeze-fs-on-backup") is False:
        parts.append(f"freeze-fs-on-backup: {render_boolean(False)}")
    return ", ".join(parts)


def agent_property() -> EditableProperty:
    return property_string_property(
        "agent", "QEMU Guest Agent", AGENT, placeholder="Default (Disabled)", renderer=render_agent
    )


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

MEMORY_CURRENT = transient_name("memory", "current")
OLD_MEMORY = "_old_memory"
USE_BALLOONING = "_use_ballooning"
MIB = 1024 * 1024


def _read_int(working: WorkingRecord, name: str) -> int | None:
    if name in working.invalid:
        return None
    try:
        value = working.get(name)
        return None if is_empty(value) else as_int(value)
    except (TypeError, ValueError):
        return None


def sync_memory(working: WorkingRecord) -> None:
    """Keep ``balloon`` following the current memory until it is customised.

    ``balloon`` advances only while it still equals the previous current
    memory; ``_old_memory`` is updated to the current memory afterwards.
    """

    current = _read_int(working, MEMORY_CURRENT)
    old = _read_int(working, OLD_MEMORY)
    balloon = _read_int(working, "balloon")
    if None not in (current, old, balloon) and balloon == old and old != current:
        working.set("balloon", current)
    if current is not None:
        working.set(OLD_MEMORY, current)


def memory_property(default_memory: int = 512) -> EditableProperty:
    def renderer(_name: str, value: Any, record: Mapping[str, Any]) -> str:
        if value is None:
            current = default_memory
        else:
            try:
                decoded = decode(MEMORY, value)
                if value_kind(decoded) is ValueKind.OBJECT:
                    current = as_int(decoded.get("current", default_memory))
                else:
                    current = as_int(decoded)
            except (DecodeError, TypeError, ValueError) as exc:
                logger.error("memory renderer: %s", exc)
                return render_value(value)

        current_text = format_size(current * MIB)
        balloon = record.get("balloon")
        if balloon is None:
            return current_text
        try:
            balloon = as_int(balloon)
        except (TypeError, ValueError):
            logger.error("memory renderer: invalid balloon %r", balloon)
            return current_text
        if balloon == 0:
            return f"{current_text} [balloon=0]"
        if current > balloon:
            return f"{format_size(balloon * MIB)}/{current_text}"
        return current_text

    def load(record: Mapping[str, Any]) -> WorkingRecord:
        working = flatten(record, "memory", MEMORY)
        current = _read_int(working, MEMORY_CURRENT)
        working.set(USE_BALLOONING, _read_int(working, "balloon") is not None)
        if working.get("balloon") is None and current is not None:
            working.set("balloon", current)
        if current is not None:
            working.set(OLD_MEMORY, current)
        return working

    def submit(working: WorkingRecord, _record: Mapping[str, Any]) -> dict[str, Any]:
        names = ["memory", "balloon", "shares"]
        if not working.get(USE_BALLOONING):
            working.set("balloon", None)
            working.set("shares", None)
        for name in ("balloon", "shares"):
            value = working.last_valid(name)
            if is_empty(value):
                continue
            try:
                working.set(name, as_int(value))
            except (TypeError, ValueError) as exc:
                raise ReassembleError(name, f"invalid number {value!r}") from exc

        payload = working.submit_data(names)
        payload["memory"] = reassemble(working, "memory", MEMORY)

        balloon = working.get("balloon")
        current = _read_int(working, MEMORY_CURRENT) or default_memory
        if balloon is not None and balloon > current:
            raise ValidationError("balloon", f"must not exceed memory ({current})")
        return delete_empty_values(payload, names)

    return EditableProperty(
        "memory",
        "Memory",
        required=True,
        placeholder=str(default_memory),
        renderer=renderer,
        load_hook=load,
        submit_hook=submit,
        on_change=sync_memory,
        revert_keys=("memory", "balloon", "shares"),
    )


# ---------------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------------

EXTRACTED_TYPE = "_extracted-type"
MACHINE_FAMILIES: tuple[str, ...] = ("i440fx", "q35", "virt")
WINDOWS_OSTYPES = frozenset(
    {"wxp", "w2k", "w2k3", "w2k8", "wvista", "win7", "win8", "win10", "win11"}
)


def ostype_is_windows(ostype: Any) -> bool:
    return isinstance(ostype, str) and ostype in WINDOWS_OSTYPES


def extract_machine_type(machine_id: str) -> str:
    """Infer the machine family of a machine identifier."""

    if machine_id == "q35" or machine_id.startswith("pc-q35-"):
        return "q35"
    if not machine_id or machine_id == "pc" or machine_id.startswith("pc-"):
        return "i440fx"
    if machine_id.startswith("virt-"):
        return "virt"
    logger.error("extract_machine_type failed: got %r", machine_id)
    return "i440fx"


def version_field(family: str) -> str:
    return f"_{family}-version"


def machine_property() -> EditableProperty:
    placeholder = "Default (i440fx)"
    type_field = transient_name("machine", "type")
    viommu_field = transient_name("machine", "viommu")

    def renderer(_name: str, value: Any, record: Mapping[str, Any]) -> str:
        windows = ostype_is_windows(record.get("ostype"))
        if windows and value in (None, "pc"):
            return "pc-i440fx-5.1"
        if windows and value == "q35":
            return "pc-q35-5.1"
        if value is None:
            return placeholder
        return render_value(value)

    def load(record: Mapping[str, Any]) -> WorkingRecord:
        working = flatten(record, "machine", MACHINE)
        machine_id = working.pop(type_field)
        machine_id = machine_id if isinstance(machine_id, str) else ""
        family = extract_machine_type(machine_id)
        working.set(version_field(family), machine_id)
        working.set(EXTRACTED_TYPE, family)
        return working

    def submit(working: WorkingRecord, record: Mapping[str, Any]) -> dict[str, Any]:
        family = working.get(EXTRACTED_TYPE) or "i440fx"
        if family not in MACHINE_FAMILIES:
            raise ValidationError(EXTRACTED_TYPE, f"unknown machine type {family!r}")
        version = working.last_valid(version_field(family)) or ""
        if not version and family == "q35":
            version = "q35"
        if not version and ostype_is_windows(working.get("ostype", record.get("ostype"))):
            raise ValidationError(version_field(family), "value is required")
        if working.get(viommu_field) == "intel" and family != "q35":
            raise ValidationError(viommu_field, "intel vIOMMU requires the q35 machine type")
        working.set(type_field, version)
        add_missing_data(working, record, "machine", MACHINE)
        return property_string_payload(working, "machine", MACHINE)

    return EditableProperty(
        "machine",
        "Machine",
        placeholder=placeholder,
        renderer=renderer,
        load_hook=load,
        submit_hook=submit,
    )


# ---------------------------------------------------------------------------
# AMD SEV
# ---------------------------------------------------------------------------

SEV_TYPES = {"std": "AMD SEV", "es": "AMD SEV-ES", "snp": "AMD SEV-SNP"}


def amd_sev_property(name: str = "amd-sev") -> EditableProperty:
    inverse = (Inverse("debug", "no-debug"), Inverse("key-sharing", "no-key-sharing"))

    def renderer(_name: str, value: Any, _record: Mapping[str, Any]) -> str:
        try:
            data = decode(AMD_SEV, value)
        except DecodeError as exc:
            logger.error("%s renderer: %s", name, exc)
            return render_value(value)
        if value_kind(data) is ValueKind.OBJECT and data.get("type") in SEV_TYPES:
            return f"{SEV_TYPES[data['type']]} ({value})"
        return render_value(value)

    def load(record: Mapping[str, Any]) -> WorkingRecord:
        return flatten(record, name, AMD_SEV, inverse=inverse)

    def submit(working: WorkingRecord, _record: Mapping[str, Any]) -> dict[str, Any]:
        sev_type = working.get(transient_name(name, "type"))
        if not isinstance(sev_type, str) or not sev_type:
            return {"delete": name}

        if sev_type == "snp":
            # no-key-sharing is not an SNP option, keep it out of the encoding
            working.set(transient_name(name, "key-sharing"), True)
        allow_smt = transient_name(name, "allow-smt")
        if not (sev_type == "snp" and working.get(allow_smt) is False):
            working.set(allow_smt, None)
        kernel_hashes = transient_name(name, "kernel-hashes")
        if working.get(kernel_hashes) is not True:
            working.set(kernel_hashes, None)
        return property_string_payload(working, name, AMD_SEV, inverse=inverse)

    return EditableProperty(
        name,
        "AMD SEV",
        required=True,
        placeholder="Default (Disabled)",
        renderer=renderer,
        load_hook=load,
        submit_hook=submit,
    )


# ---------------------------------------------------------------------------
# SMBIOS
# ---------------------------------------------------------------------------

SMBIOS_TEXT_FIELDS: tuple[str, ...] = (
    "manufacturer",
    "product",
    "version",
    "serial",
    "sku",
    "family",
)
_UUID_RE = re.compile(r"^[a-fA-F0-9]{8}(?:-[a-fA-F0-9]{4}){3}-[a-fA-F0-9]{12}$")


def validate_uuid(value: Any) -> Any:
    if is_empty(value):
        return value
    if not isinstance(value, str) or not _UUID_RE.match(value):
        raise ValidationError(transient_name("smbios1", "uuid"), "invalid UUID")
    return value


def smbios1_property() -> EditableProperty:
    flag = transient_name("smbios1", "base64")

    def load(record: Mapping[str, Any]) -> WorkingRecord:
        working = flatten(record, "smbios1", SMBIOS1)
        if working.get(flag) is True:
            for sub in SMBIOS_TEXT_FIELDS:
                name = transient_name("smbios1", sub)
                value = working.get(name)
                if not isinstance(value, str):
                    continue
                try:
                    raw = base64.b64decode(value, validate=True)
                except binascii.Error:
                    logger.warning("smbios1: %s is not valid base64", sub)
                    continue
                working.set(name, raw.decode("utf-8", errors="replace"))
        return working

    def submit(working: WorkingRecord, _record: Mapping[str, Any]) -> dict[str, Any]:
        encoded = False
        for sub in SMBIOS_TEXT_FIELDS:
            name = transient_name("smbios1", sub)
            value = working.last_valid(name)
            if isinstance(value, str) and value:
                working.set(name, base64.b64encode(value.encode("utf-8")).decode("ascii"))
                encoded = True
        working.set(flag, True if encoded else None)
        return property_string_payload(working, "smbios1", SMBIOS1)

    return EditableProperty(
        "smbios1",
        "SMBIOS settings (type1)",
        required=True,
        load_hook=load,
        submit_hook=submit,
        validators={transient_name("smbios1", "uuid"): validate_uuid},
    )


# ---------------------------------------------------------------------------
# CD/DVD drives
# ---------------------------------------------------------------------------

MEDIA_TYPE = "_media_type_"
BUS_DEVICE = "_device_"
IMAGE_STORAGE = "_storage_"
MEDIA_TYPES: tuple[str, ...] = ("iso", "cdrom", "none")
NEW_DRIVE = "drive"


def cdrom_property(name: str | None = None) -> EditableProperty:
    """CD/DVD drive editor for drive *name*, or a new drive when ``None``.

    A new drive is edited under ``_drive_<sub>`` and the bus slot is picked
    through ``_device_``.
    """

    prefix = name or NEW_DRIVE
    title = "CD/DVD Drive" + (f" ({name})" if name else "")

    def load(record: Mapping[str, Any]) -> WorkingRecord:
        if name is not None:
            try:
                dev = parse_device(name)
            except ParseError as exc:
                raise ValidationError(BUS_DEVICE, str(exc)) from exc
            working = flatten(record, name, drive_schema(dev.bus))
        else:
            working = WorkingRecord.from_record(record)
        working.set(BUS_DEVICE, name)

        volume = working.get(transient_name(prefix, "file"))
        if volume in ("cdrom", "none"):
            working.set(MEDIA_TYPE, volume)
        elif isinstance(volume, str) and volume:
            working.set(MEDIA_TYPE, "iso")
            storage, sep, _rest = volume.partition(":")
            if sep:
                working.set(IMAGE_STORAGE, storage)
        return working

    def submit(working: WorkingRecord, record: Mapping[str, Any]) -> dict[str, Any]:
        used = {dev for dev in used_devices(record) if str(dev) != name}
        device = name if name is not None else working.get(BUS_DEVICE)
        device = validate_device_name(device, used=used, field=BUS_DEVICE)
        schema = drive_schema(parse_device(device).bus)

        media = working.get(MEDIA_TYPE) or "iso"
        if media not in MEDIA_TYPES:
            raise ValidationError(MEDIA_TYPE, f"unknown media type {media!r}")
        file_field = transient_name(prefix, "file")
        if media != "iso":
            working.set(file_field, media)
        working.set(transient_name(prefix, "media"), "cdrom")

        if prefix != device:
            for sub, value in working.transient_for(prefix).items():
                working.pop(transient_name(prefix, sub))
                working.set(transient_name(device, sub), value)
        add_missing_data(working, record, device, schema)
        return property_string_payload(working, device, schema)

    return EditableProperty(
        name or "",
        title,
        load_hook=load,
        submit_hook=submit,
        revert_keys=(name,) if name else (),
    )


# ---------------------------------------------------------------------------
# Hotplug, start date and boot order
# ---------------------------------------------------------------------------


def _hotplug_features(value: Any) -> Any:
    value = normalize_hotplug_value(value)
    if isinstance(value, str):
        return sorted(part for part in value.split(",") if part)
    return value


def hotplug_property() -> EditableProperty:
    def load(record: Mapping[str, Any]) -> WorkingRecord:
        working = WorkingRecord.from_record(record)
        working.set("hotplug", _hotplug_features(record.get("hotplug")))
        return working

    return EditableProperty(
        "hotplug",
        "Hotplug",
        required=True,
        placeholder=format_hotplug_feature(None),
        renderer=lambda _name, value, _record: format_hotplug_feature(value),
        load_hook=load,
        validators={"hotplug": validate_hotplug},
    )


_STARTDATE_RE = re.compile(r"^(now|\d{4}-\d{1,2}-\d{1,2}(T\d{1,2}:\d{1,2}:\d{1,2})?)$")


def validate_startdate(value: Any) -> Any:
    if is_empty(value):
        return value
    if isinstance(value, str) and _STARTDATE_RE.match(value):
        return value
    raise ValidationError(
        "startdate", 'Format: "now" or "2006-06-17T16:01:21" or "2006-06-17"'
    )


def startdate_property() -> EditableProperty:
    return string_property(
        "startdate", "RTC start date", placeholder="now", validator=validate_startdate
    )


def boot_property() -> EditableProperty:
    return EditableProperty(
        "boot",
        "Boot Order",
        required=True,
        placeholder="first Disk, any CD-ROM, any net",
        validators={"boot": validate_boot_list},
    )


def guest_properties(*, default_memory: int = 512) -> dict[str, EditableProperty]:
    """Return the standard guest options keyed by configuration name."""

    props = (
        startup_property(),
        agent_property(),
        memory_property(default_memory),
        machine_property(),
        amd_sev_property(),
        smbios1_property(),
        hotplug_property(),
        startdate_property(),
        boot_property(),
    )
    return {prop.name: prop for prop in props}


__all__ = [
    "EditableProperty",
    "bool_property",
    "string_property",
    "name_property",
    "property_string_property",
    "startup_property",
    "agent_property",
    "render_agent",
    "memory_property",
    "sync_memory",
    "machine_property",
    "extract_machine_type",
    "ostype_is_windows",
    "amd_sev_property",
    "smbios1_property",
    "validate_uuid",
    "cdrom_property",
    "hotplug_property",
    "validate_startdate",
    "startdate_property",
    "boot_property",
    "guest_properties",
]
