"""Built-in schemas for the guest configuration properties we edit."""

from __future__ import annotations

from .errors import SchemaError
from .schema import PropertyDescriptor as P, PropertySchema

# Number of slots per disk bus.
BUS_MAX: dict[str, int] = {
    "ide": 4,
    "sata": 6,
    "scsi": 31,
    "virtio": 16,
}

# Bus prefixes in matching priority order.
BUSES: tuple[str, ...] = ("ide", "sata", "scsi", "virtio")

STARTUP = PropertySchema(
    "startup",
    [
        P("order", "integer", is_default_key=True, minimum=0,
          description="Startup order, shutdown is done in reverse"),
        P("up", "integer", minimum=0, description="Delay in seconds before the next guest starts"),
        P("down", "integer", minimum=0, description="Delay in seconds before the next guest stops"),
    ],
)

BOOT = PropertySchema(
    "boot",
    [
        P("legacy", "string", is_default_key=True),
        P("order", "string"),
    ],
)

MEMORY = PropertySchema(
    "memory",
    [P("current", "integer", is_default_key=True, default=512, minimum=16)],
)

AGENT = PropertySchema(
    "agent",
    [
        P("enabled", "boolean", is_default_key=True, default=False),
        P("fstrim_cloned_disks", "boolean", default=False, omit_if_default=True),
        P("freeze-fs-on-backup", "boolean", default=True, omit_if_default=True),
        P("type", "enum", choices=("virtio", "isa")),
    ],
)

MACHINE = PropertySchema(
    "machine",
    [
        P("type", "string", is_default_key=True),
        P("viommu", "enum", choices=("intel", "virtio")),
    ],
)

SMBIOS1 = PropertySchema(
    "smbios1",
    [
        P("uuid", "string"),
        P("manufacturer", "string"),
        P("product", "string"),
        P("version", "string"),
        P("serial", "string"),
        P("sku", "string"),
        P("family", "string"),
        P("base64", "boolean", default=False, omit_if_default=True),
    ],
)

AMD_SEV = PropertySchema(
    "amd-sev",
    [
        P("type", "enum", is_default_key=True, optional=False, choices=("std", "es", "snp")),
        P("no-debug", "boolean", default=False, omit_if_default=True),
        P("no-key-sharing", "boolean", default=False, omit_if_default=True),
        P("allow-smt", "boolean", default=True, omit_if_default=True),
        P("kernel-hashes", "boolean", default=False, omit_if_default=True),
    ],
)


def _drive_schema(bus: str, *extra: P) -> PropertySchema:
    return PropertySchema(
        bus,
        [
            P("file", "string", is_default_key=True, optional=False),
            P("media", "enum", choices=("cdrom", "disk"), default="disk", omit_if_default=True),
            P("size", "string"),
            P("format", "enum", choices=("raw", "qcow2", "vmdk", "cloop", "cow", "qed")),
            P("cache", "enum",
              choices=("none", "writethrough", "writeback", "unsafe", "directsync")),
            P("discard", "enum", choices=("ignore", "on")),
            P("backup", "boolean"),
            P("replicate", "boolean"),
            *extra,
        ],
    )


DRIVES: dict[str, PropertySchema] = {
    "ide": _drive_schema("ide", P("ssd", "boolean")),
    "sata": _drive_schema("sata", P("ssd", "boolean")),
    "scsi": _drive_schema("scsi", P("ssd", "boolean"), P("iothread", "boolean")),
    "virtio": _drive_schema("virtio", P("iothread", "boolean")),
}

SCHEMAS: dict[str, PropertySchema] = {
    schema.name: schema
    for schema in (STARTUP, BOOT, MEMORY, AGENT, MACHINE, SMBIOS1, AMD_SEV, *DRIVES.values())
}


def get_schema(name: str) -> PropertySchema:
    try:
        return SCHEMAS[name]
    except KeyError as exc:
        raise SchemaError(f"unknown schema: {name!r}") from exc


def drive_schema(bus: str) -> PropertySchema:
    try:
        return DRIVES[bus]
    except KeyError as exc:
        raise SchemaError(f"unsupported bus: {bus!r}") from exc


__all__ = [
    "BUS_MAX",
    "BUSES",
    "STARTUP",
    "BOOT",
    "MEMORY",
    "AGENT",
    "MACHINE",
    "SMBIOS1",
    "AMD_SEV",
    "DRIVES",
    "SCHEMAS",
    "get_schema",
    "drive_schema",
]
