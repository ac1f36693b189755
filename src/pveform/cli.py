from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from .boot import build_boot_list
from .catalog import SCHEMAS
from .codec import decode, encode
from .config import enable_debug_logging, load_settings
from .errors import PveFormError
from .paths import schemas_file, settings_file
from .pending import reconcile
from .properties import guest_properties
from .schema import PropertySchema
from .schema_io import dump_schemas, load_schemas


def _schemas(args: argparse.Namespace) -> dict[str, PropertySchema]:
    schemas = dict(SCHEMAS)
    default_file = schemas_file()
    if default_file.exists():
        schemas.update(load_schemas(default_file))
    if getattr(args, "schemas", None):
        schemas.update(load_schemas(args.schemas))
    return schemas


def _schema(args: argparse.Namespace) -> PropertySchema:
    schemas = _schemas(args)
    try:
        return schemas[args.schema]
    except KeyError:
        raise PveFormError(f"unknown schema: {args.schema!r}") from None


def _json_arg(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PveFormError(f"invalid JSON: {exc}") from exc


def _record_arg(text: str) -> dict[str, Any]:
    record = _json_arg(text)
    if not isinstance(record, dict):
        raise PveFormError("configuration must be a JSON object")
    return record


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def decode_cmd(args: argparse.Namespace) -> int:
    print(json.dumps(decode(_schema(args), args.value)))
    return 0


def encode_cmd(args: argparse.Namespace) -> int:
    obj = _json_arg(args.json)
    print(encode(_schema(args), obj))
    return 0


def boot_cmd(args: argparse.Namespace) -> int:
    record = _record_arg(args.config)
    entries = build_boot_list(
        record.get("boot"), record, legacy_default=args.settings.legacy_boot_default
    )
    for entry in entries:
        mark = "x" if entry.enabled else " "
        line = f"[{mark}] {entry.name}"
        if entry.display_value:
            line += f"  {entry.display_value}"
        print(line)
    return 0


def show_cmd(args: argparse.Namespace) -> int:
    record = _record_arg(args.config)
    props = guest_properties(default_memory=args.settings.default_memory)
    names = args.keys or [name for name in props if name in record]
    for name in names:
        prop = props.get(name)
        if prop is None:
            raise PveFormError(f"unknown option: {name!r}")
        print(f"{prop.title}: {prop.render(record.get(name), record)}")
    return 0


def pending_cmd(args: argparse.Namespace) -> int:
    rows = _json_arg(args.pending)
    if not isinstance(rows, list):
        raise PveFormError("pending listing must be a JSON array")
    try:
        view = reconcile(rows)
    except ValueError as exc:
        raise PveFormError(str(exc)) from exc
    print(
        json.dumps(
            {
                "current": dict(view.current),
                "pending": dict(view.pending),
                "changed": sorted(view.changed_keys),
            }
        )
    )
    return 0


def schemas_cmd(args: argparse.Namespace) -> int:
    schemas = _schemas(args)
    if args.toml:
        print(dump_schemas(schemas.values()), end="")
        return 0
    for name in sorted(schemas):
        print(name)
    return 0


def config_cmd(args: argparse.Namespace) -> int:
    settings = args.settings
    if args.as_json:
        print(json.dumps(settings.as_dict()))
        return 0
    print(f"file: {settings_file()}")
    for key, value in settings.as_dict().items():
        print(f"{key}: {value}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pveform", description="Guest configuration property tools."
    )
    parser.add_argument(
        "--schemas", type=Path, help="TOML file with additional schema tables."
    )
    subparsers = parser.add_subparsers(dest="cmd")

    p_decode = subparsers.add_parser("decode", help="Decode a property string.")
    p_decode.add_argument("schema")
    p_decode.add_argument("value")
    p_decode.set_defaults(func=decode_cmd)

    p_encode = subparsers.add_parser("encode", help="Encode a JSON object.")
    p_encode.add_argument("schema")
    p_encode.add_argument("json")
    p_encode.set_defaults(func=encode_cmd)

    p_boot = subparsers.add_parser("boot", help="Show the boot device list of a configuration.")
    p_boot.add_argument("config", help="Guest configuration as JSON.")
    p_boot.set_defaults(func=boot_cmd)

    p_show = subparsers.add_parser("show", help="Render the options of a configuration.")
    p_show.add_argument("config", help="Guest configuration as JSON.")
    p_show.add_argument("keys", nargs="*", help="Options to show (default: all present).")
    p_show.set_defaults(func=show_cmd)

    p_pending = subparsers.add_parser("pending", help="Reconcile a pending listing.")
    p_pending.add_argument("pending", help="Pending rows as JSON.")
    p_pending.set_defaults(func=pending_cmd)

    p_schemas = subparsers.add_parser("schemas", help="List known schemas.")
    p_schemas.add_argument("--toml", action="store_true", help="Print the tables as TOML.")
    p_schemas.set_defaults(func=schemas_cmd)

    p_config = subparsers.add_parser("config", help="Show the effective settings.")
    p_config.add_argument("--json", dest="as_json", action="store_true")
    p_config.set_defaults(func=config_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 1
    args.settings = load_settings()
    if args.settings.debug:
        enable_debug_logging()
    try:
        return int(func(args))
    except PveFormError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
