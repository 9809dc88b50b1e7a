from __future__ import annotations

import logging
import sys

"""Labeled logging for the catalog service.

Lines look like ``<LABEL> <message>`` where LABEL is INFO, WARN, ERROR or
SUMMARY (DEBUG with ``--debug``). Each dataset load writes exactly one
SUMMARY line, rendered by ``services.summary``.

Modules use ``logging.getLogger(__name__)``. They all live below the
``tower_catalog`` logger, which owns the only handler.
"""

__all__ = [
    "LOGGER_NAME",
    "SUMMARY_LEVEL",
    "LabeledFormatter",
    "setup_logging",
    "get_logger",
    "set_debug",
    "log_summary",
    "reset_logging",
]

LOGGER_NAME = "tower_catalog"

# between INFO (20) and WARNING (30), so it survives a WARNING threshold
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """``<LABEL> <message>``; levels not listed use their standard name."""

    LABELS = {
        logging.WARNING: "WARN",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LABELS.get(record.levelno, record.levelname)
        return f"{label} {record.getMessage()}"


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to the ``tower_catalog`` logger once.

    The CLI and the server share this stream. Later calls return the same
    logger untouched.
    """
    global _logger
    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    logger = logging.getLogger(LOGGER_NAME)
    _detach_handlers(logger)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LabeledFormatter())
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    # no duplicate lines through root handlers
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else setup_logging()


def set_debug(logger: logging.Logger) -> None:
    """Switch an already configured logger and its handlers to DEBUG."""
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers:
        handler.setLevel(logging.DEBUG)
    logger.debug("debug mode enabled")


def log_summary(message: str) -> None:
    """Write ``SUMMARY <message>``."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Forget the configured logger and detach its handler (tests)."""
    global _logger
    _detach_handlers(logging.getLogger(LOGGER_NAME))
    _logger = None
