from __future__ import annotations

import logging
from pathlib import Path

import pytest

from shared import logging_config

ENGINE_LOGGER = "services.online_patch"


def _managed_handlers() -> list[logging.Handler]:
    return [
        handler
        for handler in logging.getLogger(ENGINE_LOGGER).handlers
        if getattr(handler, logging_config._HANDLER_TAG, False)  # type: ignore[attr-defined]
    ]


def _flush_managed_handlers() -> None:
    for handler in _managed_handlers():
        handler.flush()


@pytest.fixture(autouse=True)
def reset_logging():
    logging_config._reset_for_tests()
    try:
        yield
    finally:
        logging_config._reset_for_tests()


def test_logging_creates_file_and_records_info(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))

    log_path = logging_config.ensure_engine_logging()
    assert log_path == tmp_path / "patch-engine.log"
    assert logging_config.get_file_log_verbosity() == logging_config.LogVerbosity.INFO
    logging.getLogger("services.online_patch.coordinator").debug("debug message")
    logging.getLogger("services.online_patch.coordinator").info("info message")
    _flush_managed_handlers()

    contents = log_path.read_text(encoding="utf-8")
    assert "Writing patch engine logs" in contents
    assert "debug message" not in contents
    assert "info message" in contents


def test_log_file_environment_overrides_directory(tmp_path, monkeypatch):
    target = tmp_path / "custom" / "engine.log"
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path / "ignored"))
    monkeypatch.setenv("PATCH_ENGINE_LOG_FILE", str(target))

    assert logging_config.ensure_engine_logging() == target
    assert target.parent.is_dir()


def test_logging_configuration_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))

    first_path = logging_config.ensure_engine_logging()
    second_path = logging_config.ensure_engine_logging()

    assert first_path == second_path
    managed = _managed_handlers()
    assert len(managed) == 1
    assert isinstance(managed[0], logging.FileHandler)
    assert Path(managed[0].baseFilename) == first_path


def test_host_root_handlers_are_left_alone(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))
    root = logging.getLogger()
    before = list(root.handlers)
    root_level = root.level

    logging_config.ensure_engine_logging()
    logging.getLogger("unrelated.host").warning("host message")
    _flush_managed_handlers()

    assert root.handlers == before
    assert root.level == root_level
    assert "host message" not in (tmp_path / "patch-engine.log").read_text(encoding="utf-8")


def test_verbose_level_records_debug_messages(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))

    log_path = logging_config.ensure_engine_logging()
    logging_config.set_file_log_verbosity("verbose")
    logging.getLogger("services.online_patch.swap").debug("debug message")
    _flush_managed_handlers()

    assert "debug message" in log_path.read_text(encoding="utf-8")
    assert logging_config.get_file_log_verbosity() == logging_config.LogVerbosity.VERBOSE


def test_verbosity_passed_on_first_call_applies_to_new_handler(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))

    logging_config.ensure_engine_logging(" Warning ")

    assert logging_config.get_file_log_verbosity() is logging_config.LogVerbosity.WARNING
    assert _managed_handlers()[0].level == logging.WARNING


def test_unknown_verbosity_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))

    with pytest.raises(ValueError, match="chatty"):
        logging_config.set_file_log_verbosity("chatty")


def test_disabling_file_logging_suppresses_output(tmp_path, monkeypatch):
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(tmp_path))

    log_path = logging_config.ensure_engine_logging()
    logging_config.set_file_log_verbosity(logging_config.LogVerbosity.DISABLED)
    _flush_managed_handlers()
    initial_size = log_path.stat().st_size

    logging.getLogger("services.online_patch").critical("critical message")
    _flush_managed_handlers()

    assert log_path.stat().st_size == initial_size


def test_sanitize_text_redacts_home_directory():
    home = str(Path.home())
    message = f"Swapping {home}/Games/client.exe"

    sanitized = logging_config.sanitize_text(message)

    if home not in {"/", "."}:
        assert home not in sanitized
        assert logging_config.USER_HOME_PLACEHOLDER in sanitized
    assert sanitized.endswith("Games/client.exe")
