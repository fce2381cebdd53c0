"""Logging setup for the skillmesh CLI.

Library modules only call ``logging.getLogger(__name__)``. Handlers are
attached once, by :func:`setup_logging`, to the ``skillmesh`` logger so
nothing leaks into an embedding application's root logger.

Environment variables:
    SKILLMESH_LOG_LEVEL: DEBUG, INFO, WARNING (default), ERROR or CRITICAL
    SKILLMESH_LOG_FILE: true/1/yes/on for a daily file in the log
        directory (``SKILLMESH_LOG_DIR``), or an explicit file path
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from skillmesh.paths import get_log_dir

LOGGER_NAME = "skillmesh"

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ON = ("true", "1", "yes", "on")
_OFF = ("", "false", "0", "no", "off")


def resolve_log_level(value: str | int | None = None) -> int:
    """Turn a level name (or ``SKILLMESH_LOG_LEVEL``) into a logging level.

    Unknown names fall back to WARNING so a typo never silences errors.
    """
    if isinstance(value, int):
        return value
    if value is None:
        value = os.environ.get("SKILLMESH_LOG_LEVEL", "")
    name = value.strip().upper()
    if not name:
        return logging.WARNING
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def resolve_log_file(
    value: bool | str | None = None, now: datetime | None = None
) -> Path | None:
    """Return the file to log into, or None when file logging is off."""
    if value is None:
        value = os.environ.get("SKILLMESH_LOG_FILE", "")
    if value is False:
        return None
    text = "" if value is True else value.strip()
    if value is True or text.lower() in _ON:
        day = (now or datetime.now()).strftime("%Y%m%d")
        return Path(get_log_dir()) / f"skillmesh-{day}.log"
    if text.lower() in _OFF:
        return None
    return Path(os.path.expanduser(text))


def setup_logging(
    level: str | int | None = None,
    log_file: bool | str | None = None,
    debug: bool = False,
) -> Path | None:
    """Attach a stderr handler and an optional file handler.

    Calling it again replaces the previous handlers. ``debug`` forces
    DEBUG and adds source locations to console lines. Returns the log
    file in use; a file that cannot be opened is reported on the console
    and logging continues without it.
    """
    resolved = logging.DEBUG if debug else resolve_log_level(level)
    path = resolve_log_file(log_file)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(resolved)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(
        logging.Formatter(FILE_FORMAT if debug else CONSOLE_FORMAT, DATE_FORMAT)
    )
    logger.addHandler(console)

    if path is None:
        return None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        logger.warning(f"File logging disabled, cannot open {path}: {e}")
        return None
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)
    return path
