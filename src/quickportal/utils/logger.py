"""
Logging helpers built on loguru.

Every module grabs a logger via ``get_logger(__name__)``; the CLI calls
``configure_logging`` once at startup to install the stderr sink.
"""

import sys
import traceback

from loguru import logger as _logger

from quickportal.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# loguru level name for each verbosity setting
_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}


def get_logger(name: str):
    """Return a loguru logger bound to a module name."""
    return _logger.bind(name=name)


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Replace loguru's default sink with a single stderr sink.

    Args:
        level: Verbosity to log at. FULL also attaches diagnose output
            to exception traces.
    """
    _logger.remove()
    _logger.configure(extra={"name": "quickportal"})
    _logger.add(
        sys.stderr,
        level=_LEVEL_MAP.get(level, "INFO"),
        format=LOG_FORMAT,
        backtrace=level == LogLevel.FULL,
        diagnose=level == LogLevel.FULL,
    )


def format_traceback(exc: BaseException) -> str:
    """Render an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
