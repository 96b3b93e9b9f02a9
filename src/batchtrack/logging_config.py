"""Logging setup for the ``batchtrack`` logger tree.

Modules log through ``logging.getLogger(__name__)``; only the CLI entry point
calls into this module. Console output goes to stderr so that command output
on stdout stays machine-readable.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

PACKAGE_LOGGER = "batchtrack"

# SDK transports and the SQL engine log every request at INFO/DEBUG.
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "google", "urllib3", "sqlalchemy.engine")

_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"

_configured = False


def _formatter(datefmt: str) -> logging.Formatter:
    return logging.Formatter(_FORMAT, datefmt=datefmt)


def setup_logging(level: int = logging.INFO) -> None:
    """Send ``batchtrack`` records at ``level`` and above to stderr.

    Third-party loggers listed in NOISY_LOGGERS are capped at WARNING. Calls
    after the first one are ignored until ``reset_logging``.
    """
    global _configured
    if _configured:
        return
    _configured = True

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(_formatter("%H:%M:%S"))

    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(level)
    package.addHandler(console)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_file_logging(log_dir: Path) -> logging.FileHandler:
    """Also write DEBUG records to ``log_dir/<YYYYMMDD_HHMMSS>.log``.

    The package logger is opened up to DEBUG for the file; the console
    handler keeps its own level. Returns the handler so callers can remove it.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    handler = logging.FileHandler(log_dir / f"{stamp}.log", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_formatter("%Y-%m-%d %H:%M:%S"))

    package = logging.getLogger(PACKAGE_LOGGER)
    package.addHandler(handler)
    package.setLevel(logging.DEBUG)
    return handler


def reset_logging() -> None:
    """Close and drop every handler of the package logger. Test helper."""
    global _configured
    _configured = False
    package = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package.handlers):
        package.removeHandler(handler)
        handler.close()
    package.setLevel(logging.WARNING)
