from __future__ import annotations

import logging
import os
import sys
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("cephalopod.logging")
LOG_DIR_ENV = "CEPHALOPOD_LOG_DIR"
DEBUG_ENV = "CEPHALOPOD_DEBUG"
_PACKAGE_LOGGER = "cephalopod"
_LOG_FILE = "cephalopod.log"
_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
_configured = False


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "cephalopod" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _console_level() -> int:
    return logging.DEBUG if os.environ.get(DEBUG_ENV) else logging.WARNING


def configure_logging(*, force: bool = False) -> None:
    """Attach console and file handlers to the ``cephalopod`` logger.

    Tick-level DEBUG records (sampler thread name included) only reach the
    file; the console stays quiet unless ``CEPHALOPOD_DEBUG`` is set, since
    fades run on background threads while the host owns the terminal.
    """

    global _configured
    if _configured and not force:
        return

    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers) if force else []:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT, datefmt="%H:%M:%S")
    if force or not logging.getLogger().handlers:
        console = logging.StreamHandler(stream=sys.__stderr__)
        console.setLevel(_console_level())
        console.setFormatter(formatter)
        logger.addHandler(console)

    try:
        path = get_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        _LOGGER.warning("File logging disabled: %s", exc)

    _configured = True


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append ``exc`` with its traceback to the log file; returns the file path."""

    path = get_log_path()
    stamp = datetime.now().isoformat(timespec="seconds")
    lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{stamp}] {context} failed: {type(exc).__name__}: {exc}\n")
            handle.writelines(lines)
            handle.write("\n")
    except OSError as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc, exc_info=True)
        return None
    return path
