"""Tagged logging helper shared by the audio, calibration and game modules.

Every record carries a short subsystem tag ("Audio", "Calibration", "Session",
...) and optional key=value fields. Console output looks like::

    [INFO][Calibration] Step finished | step=voiceAmplitude samples=598

An optional log file gets the same lines with a timestamp in front.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")

_CONSOLE_FORMAT = "[%(levelname)s][%(tag)s] %(message)s%(fields)s"
_FILE_FORMAT = "%(asctime)s " + _CONSOLE_FORMAT

_logger = logging.getLogger("whistlenoid")
if not _logger.handlers:
    _console = logging.StreamHandler()
    _console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    _logger.addHandler(_console)
    _logger.setLevel(logging.INFO)
    _logger.propagate = False


def _level_value(level: str | None) -> int:
    name = (level or "INFO").upper()
    if name == "WARN":
        name = "WARNING"
    return logging.getLevelName(name) if name in LEVEL_NAMES else logging.INFO


def _format_fields(fields: dict[str, Any]) -> str:
    if not fields:
        return ""
    return " | " + " ".join(f"{k}={v}" for k, v in fields.items())


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log `message` under `tag`; keyword fields are appended as key=value."""
    level_val = _level_value(level)
    if not _logger.isEnabledFor(level_val):
        return
    _logger.log(level_val, message, extra={"tag": tag, "fields": _format_fields(fields)})


def set_log_level(level: str | None) -> str:
    """Set the global level. Unknown names fall back to INFO; returns the name applied."""
    level_val = _level_value(level)
    _logger.setLevel(level_val)
    return logging.getLevelName(level_val)


def get_log_level() -> str:
    return logging.getLevelName(_logger.level)


def add_log_file(path: str | Path) -> Path:
    """Mirror log output into `path` (appending). Adding the same file twice is a no-op."""
    path = Path(path).expanduser().resolve()
    for handler in _logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path:
            return path
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    _logger.addHandler(file_handler)
    return path


def remove_log_file(path: str | Path) -> None:
    path = Path(path).expanduser().resolve()
    for handler in list(_logger.handlers):
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path:
            _logger.removeHandler(handler)
            handler.close()
