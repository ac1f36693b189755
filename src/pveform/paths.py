from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir as _uc

# ---------------------------------------------------------------------------
# User directories
# ---------------------------------------------------------------------------

def _app_name(default: str) -> str:
    return os.getenv("PVEFORM_APP_NAME", default)

def user_config_dir(app_name: str = "pveform") -> Path:
    app = _app_name(app_name)
    return Path(_uc(appname=app)).resolve()

def settings_file() -> Path:
    return user_config_dir() / "settings.ini"

def schemas_file() -> Path:
    return user_config_dir() / "schemas.toml"
