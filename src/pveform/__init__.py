"""Configuration property model for guest configuration editors."""

from __future__ import annotations

import os

from .boot import BootDeviceListField, BootOrderEntry, build_boot_list, commit_boot_order
from .codec import decode, encode
from .config import Settings, enable_debug_logging, load_settings
from .devices import DeviceIdentifier, legacy_boot_order, parse_device
from .errors import (
    DecodeError,
    ParseError,
    PveFormError,
    ReassembleError,
    SchemaError,
    SubmissionError,
    SubmissionInProgressError,
    ValidationError,
)
from .field import ControllerSelectorField, HotplugFeatureField, ReactiveField
from .flatten import WorkingRecord, delete_empty_values, flatten, reassemble, transient_name
from .pending import PendingConfigEntry, PendingConfigView, reconcile
from .properties import EditableProperty
from .schema import PropertyDescriptor, PropertySchema
from .session import EditSession

if os.environ.get("PVEFORM_DEBUG"):
    enable_debug_logging()

__all__ = [
    "BootDeviceListField",
    "BootOrderEntry",
    "ControllerSelectorField",
    "DecodeError",
    "DeviceIdentifier",
    "EditSession",
    "EditableProperty",
    "HotplugFeatureField",
    "ParseError",
    "PendingConfigEntry",
    "PendingConfigView",
    "PropertyDescriptor",
    "PropertySchema",
    "PveFormError",
    "ReactiveField",
    "ReassembleError",
    "SchemaError",
    "Settings",
    "SubmissionError",
    "SubmissionInProgressError",
    "ValidationError",
    "WorkingRecord",
    "build_boot_list",
    "commit_boot_order",
    "decode",
    "delete_empty_values",
    "enable_debug_logging",
    "encode",
    "flatten",
    "legacy_boot_order",
    "load_settings",
    "parse_device",
    "reassemble",
    "reconcile",
    "transient_name",
]
