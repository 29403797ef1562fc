# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Centralised logging configuration.

Levels, handlers and format live in etc/logging.conf.  The config file carries
a ``%(log_file)s`` placeholder; this module patches in the real path of
``app.log`` and applies the result with ``logging.config.fileConfig``.

The log directory defaults to <project>/log and can be moved with the
``CONTRACTMGR_LOG_DIR`` environment variable (containers, read-only trees).

Usage:
    from core.logger import logger              # "contractmgr"
    from core.logger import get_logger
    http_log = get_logger("http")               # "contractmgr.http"
"""

import configparser as _cp
import logging
import logging.config
import os
from pathlib import Path
from typing import Optional

LOGGER_NAME = "contractmgr"

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_LOGGING_CONF = _PROJECT_ROOT / "etc" / "logging.conf"


def _log_dir() -> Path:
    override = os.environ.get("CONTRACTMGR_LOG_DIR")
    return Path(override) if override else _PROJECT_ROOT / "log"


def configure_logging(log_dir: Optional[Path] = None) -> Path:
    """Apply etc/logging.conf with its file handler pointed at *log_dir*/app.log."""
    log_dir = log_dir or _log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    raw = _LOGGING_CONF.read_text(encoding="utf-8").replace("%(log_file)s", str(log_file))
    # Raw parser: the format strings contain %(asctime)s and friends.
    parser = _cp.RawConfigParser()
    parser.read_string(raw)
    logging.config.fileConfig(parser, disable_existing_loggers=False)
    return log_file


def get_logger(area: str) -> logging.Logger:
    """Child of the project logger; inherits its handlers."""
    return logging.getLogger(f"{LOGGER_NAME}.{area}")


configure_logging()

logger = logging.getLogger(LOGGER_NAME)
