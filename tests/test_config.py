from __future__ import annotations

import logging
from pathlib import Path

from pveform import config as cfg
from pveform import paths


def test_defaults(tmp_path: Path) -> None:
    settings = cfg.load_settings(tmp_path / "missing.ini", environ={})
    assert settings == cfg.Settings()
    assert settings.default_memory == 512
    assert settings.legacy_boot_default == "cdn"


def test_file_values(tmp_path: Path) -> None:
    ini = tmp_path / "settings.ini"
    ini.write_text("[pveform]\ndefault_memory = 1024\ndebug = yes\nlegacy_boot_default = dn\n")
    settings = cfg.load_settings(ini, environ={})
    assert settings.default_memory == 1024
    assert settings.debug is True
    assert settings.legacy_boot_default == "dn"


def test_env_overrides_file(tmp_path: Path) -> None:
    ini = tmp_path / "settings.ini"
    ini.write_text("[pveform]\ndefault_memory = 1024\n")
    settings = cfg.load_settings(ini, environ={"PVEFORM_DEFAULT_MEMORY": "2048"})
    assert settings.default_memory == 2048


def test_invalid_value_logs_warning(tmp_path: Path, caplog) -> None:
    ini = tmp_path / "settings.ini"
    ini.write_text("[pveform]\ndefault_memory = soon\n")
    with caplog.at_level("WARNING"):
        settings = cfg.load_settings(ini, environ={})
    assert settings.default_memory == 512
    assert "default_memory" in caplog.text


def test_invalid_ini_logs_warning(tmp_path: Path, caplog) -> None:
    ini = tmp_path / "settings.ini"
    ini.write_text("not an ini")
    with caplog.at_level("WARNING"):
        settings = cfg.load_settings(ini, environ={})
    assert settings == cfg.Settings()
    assert "Failed to read config" in caplog.text


def test_other_sections_ignored(tmp_path: Path) -> None:
    ini = tmp_path / "settings.ini"
    ini.write_text("[other]\ndefault_memory = 10\n")
    assert cfg.read_section(ini) == {}


def test_app_name_override(monkeypatch) -> None:
    monkeypatch.setenv("PVEFORM_APP_NAME", "pveform-test")
    assert paths.user_config_dir().name == "pveform-test"
    assert paths.settings_file().name == "settings.ini"
    assert paths.schemas_file().parent == paths.user_config_dir()


def test_enable_debug_logging() -> None:
    logger = logging.getLogger("pveform")
    saved = list(logger.handlers), logger.level
    for handler in saved[0]:
        logger.removeHandler(handler)
    try:
        cfg.enable_debug_logging()
        cfg.enable_debug_logging()
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        for handler in saved[0]:
            logger.addHandler(handler)
        logger.setLevel(saved[1])
