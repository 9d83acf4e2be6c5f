"""
Logging configuration for essaykit.

Quiet by default: HTTP library chatter is suppressed and only warnings
reach stderr. Degradations (stale cache served, skipped files, dates that
fell back to the current time) are logged at WARNING on the essaykit logger.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

PACKAGE_LOGGER = "essaykit"
HTTP_LOGGERS = ("httpx", "httpcore")

OPS_LOG_FILENAME = "essaykit-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3


def configure_quiet_mode(quiet: bool = True):
    """
    Set the HTTP libraries' log level.

    Args:
        quiet: WARNING when True (request lines hidden), INFO otherwise.
    """
    level = logging.WARNING if quiet else logging.INFO
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(level)


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    )


def enable_debug_mode():
    """Send DEBUG records from essaykit and the HTTP libraries to stderr."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    if not _has_stderr_handler(root):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG)
        stderr_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root.addHandler(stderr_handler)

    for name in (PACKAGE_LOGGER, *HTTP_LOGGERS):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(config_dir) -> RotatingFileHandler:
    """
    Record essaykit INFO and above in {config_dir}/essaykit-ops.log.

    Refreshes, writes, uploads and cache fallbacks end up here whether or
    not --verbose is set. Returns the handler so the caller can remove it.
    """
    log_path = Path(config_dir) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    ops_handler = RotatingFileHandler(
        log_path,
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
        encoding="utf-8",
    )
    ops_handler.setLevel(logging.INFO)
    ops_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(ops_handler)
    # INFO must reach the file even in quiet mode
    if package_logger.level == logging.NOTSET or package_logger.level > logging.INFO:
        package_logger.setLevel(logging.INFO)

    return ops_handler
