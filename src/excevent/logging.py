"""Logging configuration for excevent.

The library logs through loguru and stays silent until ``setup_logging``
enables it. Standard ``logging`` records of the embedding application are
forwarded to the same loguru sinks.
"""

import logging
import sys

from loguru import logger

from .settings import LOG_LEVELS, get_settings


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru.

    The record keeps the location of the code that called the stdlib logger,
    and the stdlib logger name is bound as ``extra["stdlib_logger"]``.
    """

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int = record.levelname
        try:
            logger.level(record.levelname)
        except ValueError:
            level = record.levelno

        logger.bind(stdlib_logger=record.name).opt(depth=_caller_depth(), exception=record.exc_info).log(
            level, record.getMessage()
        )


def _caller_depth() -> int:
    # depth is counted from InterceptHandler.emit, loguru's reference frame
    frame, depth = logging.currentframe().f_back, 0
    while frame is not None and frame.f_code.co_filename in (__file__, logging.__file__):
        frame = frame.f_back
        depth += 1
    return depth


def setup_logging(log_level: str | None = None) -> str:
    """Configure loguru logging for processes embedding excevent.

    Args:
        log_level: Log level to use. Falls back to ``Settings.log_level``
            (``EXCEVENT_LOG_LEVEL``) when omitted.

    Returns:
        The effective, upper-cased log level.

    Raises:
        ValueError: If ``log_level`` is not a known level name
    """
    if log_level is None:
        log_level = get_settings().log_level

    log_level = log_level.upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {log_level}. Must be one of: {', '.join(LOG_LEVELS)}")

    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=log_level,
        colorize=True,
    )
    logger.enable("excevent")

    logger.info(f"Log level set to: {log_level}")

    # Redirect all standard logging to loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.getLogger("excevent").setLevel(log_level)

    return log_level
