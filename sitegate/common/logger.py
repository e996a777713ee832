"""Logging infrastructure for SiteGate.

Modules log through ``get_logger(__name__)``, which keeps every engine
logger under the ``sitegate`` root. Handlers are attached to that root
once, by ``configure_logging`` from the runtime ``Settings``; records
from ``sitegate.core.approval.machine`` and friends propagate up to them.
"""

import logging
import logging.handlers
import os

ROOT_LOGGER = "sitegate"
HANDLER_PREFIX = "sitegate."

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_level(level: str) -> int:
    """Map a level name (any case) to its ``logging`` constant."""
    level_upper = level.upper()
    if level_upper not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, level_upper)


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: str = "/var/log/sitegate",
    level: str = "INFO",
    *,
    file_logging: bool = True,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Set up a logger with file and console handlers.

    Calling it again reconfigures the logger: handlers from the earlier
    call are closed and replaced, handlers added by anyone else are kept.

    Args:
        name: Logger name; the log file is ``<log_dir>/<name>.log``
        log_dir: Directory for log files
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file_logging: Enable the rotating file handler
        console_logging: Enable the stderr handler
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(level))

    for handler in list(logger.handlers):
        if (handler.get_name() or "").startswith(HANDLER_PREFIX):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"), maxBytes=max_bytes, backupCount=backup_count
        )
        _attach(logger, file_handler, "file", formatter)

    if console_logging:
        _attach(logger, logging.StreamHandler(), "console", formatter)

    return logger


def configure_logging(settings) -> logging.Logger:
    """Configure the ``sitegate`` root logger from runtime settings."""
    return setup_logger(
        ROOT_LOGGER,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.file_logging,
        console_logging=settings.console_logging,
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, nested under the ``sitegate`` root."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def _attach(
    logger: logging.Logger, handler: logging.Handler, kind: str, formatter: logging.Formatter
) -> None:
    handler.set_name(f"{HANDLER_PREFIX}{kind}")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
