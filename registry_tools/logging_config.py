"""Application-wide logging configuration utilities."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

_CONFIGURED = False
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure the root logger for the proxy.

    Parameters
    ----------
    level:
        The minimum logging level for the root logger, as a number or a level
        name such as ``"DEBUG"``.
    log_file:
        Optional path of a file that receives a copy of every record.
    """

    global _CONFIGURED

    root_logger = logging.getLogger()
    numeric_level = _coerce_level(level)
    if not root_logger.handlers:
        root_logger.setLevel(numeric_level)
    else:
        root_logger.setLevel(min(root_logger.level, numeric_level))

    formatter = logging.Formatter(_FORMAT)
    if not _CONFIGURED:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        already_configured = any(
            isinstance(handler, logging.FileHandler)
            and getattr(handler, "baseFilename", None) == str(log_path.resolve())
            for handler in root_logger.handlers
        )
        if not already_configured:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    _CONFIGURED = True
    root_logger.debug("Logging configured at level %s", logging.getLevelName(numeric_level))


__all__ = ["configure_logging"]
