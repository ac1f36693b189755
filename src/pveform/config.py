"""User settings.

Settings are read from the ``[pveform]`` section of
``<user_config_dir>/settings.ini`` and then overridden by environment
variables named ``PVEFORM_<KEY>``.
"""

from __future__ import annotations

import configparser
import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from .paths import settings_file
from .values import as_int, parse_bool

logger = logging.getLogger(__name__)

SECTION = "pveform"
ENV_PREFIX = "PVEFORM_"


@dataclass(frozen=True)
class Settings:
    default_memory: int = 512
    legacy_boot_default: str = "cdn"
    debug: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def enable_debug_logging() -> None:
    """Send ``pveform`` log records to stderr at DEBUG level."""

    log = logging.getLogger("pveform")
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))
        log.addHandler(handler)
    log.setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Reading helpers
# ---------------------------------------------------------------------------

def read_section(path: Path, *, section: str = SECTION) -> dict[str, str]:
    """Return the raw ``key = value`` pairs of *section* in *path*.

    Missing or unreadable files yield an empty mapping.
    """

    if not path.exists():
        return {}
    parser = configparser.ConfigParser()
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as exc:
        logger.warning("Failed to read config %s: %s", path, exc)
        return {}
    if not parser.has_section(section):
        return {}
    return dict(parser.items(section))


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    environ = os.environ if environ is None else environ
    result: dict[str, str] = {}
    for f in fields(Settings):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            result[f.name] = environ[key]
    return result


def _coerce(name: str, raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return parse_bool(raw)
    if isinstance(default, int):
        value = as_int(raw)
        if value <= 0:
            raise ValueError(f"expected a positive number, got {raw!r}")
        return value
    return raw.strip()


def load_settings(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> Settings:
    """Return the effective :class:`Settings`.

    Invalid values are logged and the default is kept.
    """

    raw = read_section(path or settings_file())
    raw.update(env_overrides(environ))
    defaults = Settings()
    values: dict[str, Any] = {}
    for f in fields(Settings):
        if f.name not in raw:
            continue
        try:
            values[f.name] = _coerce(f.name, raw[f.name], getattr(defaults, f.name))
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid setting %s=%r: %s", f.name, raw[f.name], exc)
    return Settings(**values)


__all__ = [
    "Settings",
    "load_settings",
    "read_section",
    "env_overrides",
    "enable_debug_logging",
    "SECTION",
]
