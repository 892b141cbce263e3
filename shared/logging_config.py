"""File logging for the patch engine.

The host application opts in by building its coordinators with
``configure_logging=True`` (see :mod:`services.online_patch.builder`), which
calls :func:`ensure_engine_logging` with the verbosity from ``engine.json``.
Hosts that wire coordinators by hand may call it directly instead.

The handler is attached to the ``services.online_patch`` logger only, so the
host's own root handlers and levels are left alone.  The log file location
can be overridden with ``PATCH_ENGINE_LOG_FILE`` (exact path) or
``PATCH_ENGINE_LOG_DIR`` (directory for the default file name).  Home
directories in formatted records are replaced with ``<user_home>``.
"""

from __future__ import annotations

import logging
import os
import re
from enum import Enum
from pathlib import Path

_LOG_FILE_ENV = "PATCH_ENGINE_LOG_FILE"
_LOG_DIR_ENV = "PATCH_ENGINE_LOG_DIR"
_DEFAULT_LOG_PATH = Path("~") / ".online_patch_engine" / "logs" / "patch-engine.log"
_ENGINE_LOGGER_NAME = "services.online_patch"
_HANDLER_TAG = "_patch_engine_logging_handler"

USER_HOME_PLACEHOLDER = "<user_home>"


class LogVerbosity(str, Enum):
    """Minimum severity written to the engine log file."""

    DISABLED = "disabled"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"

    @property
    def level(self) -> int:
        return _LEVELS[self]

    @classmethod
    def parse(cls, value: "LogVerbosity | str") -> "LogVerbosity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported log verbosity: {value}") from exc


_LEVELS = {
    LogVerbosity.DISABLED: logging.CRITICAL + 1,
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}

_file_handler: logging.FileHandler | None = None
_verbosity = LogVerbosity.INFO


def _home_patterns() -> tuple[re.Pattern[str], ...]:
    homes = {str(Path.home()), os.environ.get("HOME", ""), os.environ.get("USERPROFILE", "")}
    variants: set[str] = set()
    for home in homes:
        home = os.path.normpath(home) if home else ""
        if home in {"", ".", os.sep}:
            continue
        variants.update({home, home.replace("\\", "/"), home.replace("/", "\\")})
    flags = re.IGNORECASE if os.name == "nt" else 0
    # Longest first so a nested profile is not left half redacted.
    return tuple(
        re.compile(re.escape(variant), flags)
        for variant in sorted(variants, key=len, reverse=True)
    )


_HOME_PATTERNS = _home_patterns()


def sanitize_text(message: str) -> str:
    """Return ``message`` with home directories replaced by a placeholder."""

    for pattern in _HOME_PATTERNS:
        message = pattern.sub(USER_HOME_PLACEHOLDER, message)
    return message


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return sanitize_text(super().format(record))


def ensure_engine_logging(verbosity: LogVerbosity | str | None = None) -> Path:
    """Attach the engine log file handler once and return the log path.

    ``verbosity`` is applied on every call, so a later call can change the
    level of an already installed handler.
    """

    global _file_handler

    if verbosity is not None:
        _apply_verbosity(LogVerbosity.parse(verbosity))
    if _file_handler is not None:
        return Path(_file_handler.baseFilename)

    log_path = _resolve_log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(_verbosity.level)
    handler.setFormatter(
        _RedactingFormatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    setattr(handler, _HANDLER_TAG, True)

    engine_logger = logging.getLogger(_ENGINE_LOGGER_NAME)
    engine_logger.setLevel(logging.DEBUG)
    engine_logger.addHandler(handler)
    _file_handler = handler

    engine_logger.info(
        "Writing patch engine logs to %s (verbosity=%s)", log_path, _verbosity.value
    )
    return log_path


def set_file_log_verbosity(verbosity: LogVerbosity | str) -> None:
    """Change the minimum severity recorded in the engine log file."""

    ensure_engine_logging(verbosity)


def get_file_log_verbosity() -> LogVerbosity:
    return _verbosity


def _apply_verbosity(verbosity: LogVerbosity) -> None:
    global _verbosity

    _verbosity = verbosity
    if _file_handler is not None:
        _file_handler.setLevel(verbosity.level)


def _resolve_log_path() -> Path:
    explicit = os.environ.get(_LOG_FILE_ENV)
    if explicit:
        return Path(explicit).expanduser()
    directory = os.environ.get(_LOG_DIR_ENV)
    if directory:
        return Path(directory).expanduser() / _DEFAULT_LOG_PATH.name
    return _DEFAULT_LOG_PATH.expanduser()


def _reset_for_tests() -> None:
    """Detach and close the handler installed by :func:`ensure_engine_logging`."""

    global _file_handler, _verbosity

    engine_logger = logging.getLogger(_ENGINE_LOGGER_NAME)
    for handler in list(engine_logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            engine_logger.removeHandler(handler)
            handler.close()
    engine_logger.setLevel(logging.NOTSET)
    _file_handler = None
    _verbosity = LogVerbosity.INFO


__all__ = [
    "LogVerbosity",
    "USER_HOME_PLACEHOLDER",
    "ensure_engine_logging",
    "get_file_log_verbosity",
    "sanitize_text",
    "set_file_log_verbosity",
]
