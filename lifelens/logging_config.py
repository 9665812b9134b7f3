"""
Logging setup for the CLI and for open stores.

By default SDK and HTTP client chatter is silenced. ``--verbose`` turns on
DEBUG output to stderr. Each open store also keeps an operations log so
state transitions can be reviewed after the fact.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

PACKAGE_LOGGER = "lifelens"
OPS_LOG_FILENAME = "lifelens-ops.log"

# Client libraries that log every request at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "urllib3")


def configure_quiet_mode(quiet: bool = True):
    """
    Silence library warnings and SDK request logging.

    Args:
        quiet: If False, leave everything as configured.
    """
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
        for h in logger.handlers
    )


def enable_debug_mode():
    """Send DEBUG output from lifelens and the SDKs to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _has_stderr_handler(root):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S",
        ))
        root.addHandler(handler)

    for name in (PACKAGE_LOGGER, *NOISY_LOGGERS):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> logging.Handler:
    """Attach ``{store_path}/lifelens-ops.log`` to the package logger.

    Rotates at 1MB and keeps 3 backups. Active regardless of --verbose.
    Pass the returned handler to `remove_ops_log` when the store closes.
    """
    handler = RotatingFileHandler(
        str(Path(store_path) / OPS_LOG_FILENAME),
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S",
    ))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(handler)
    # INFO must reach the file even in quiet mode
    if package_logger.level == logging.NOTSET or package_logger.level > logging.INFO:
        package_logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: logging.Handler) -> None:
    """Detach and close a handler from `configure_ops_log`."""
    logging.getLogger(PACKAGE_LOGGER).removeHandler(handler)
    handler.close()
