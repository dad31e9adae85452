"""
Loguru logging for skyhistory.

The package logs through loguru but stays silent until the application
opts in, which is the loguru convention for libraries:

    from skyhistory.utils.logger import setup_logger

    setup_logger(log_level="DEBUG")

Records emitted while a query runs carry its Trino query id, bound with
``logger.bind(query_id=...)``; other records show "-" in that column.
"""

import sys
from pathlib import Path

from loguru import logger

PACKAGE = "skyhistory"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[query_id]}</magenta> | "
    "<level>{message}</level>"
)

# No colour codes in files
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[query_id]} | "
    "{name}:{function}:{line} | "
    "{message}"
)

# Sinks installed by setup_logger, replaced on every call
_handler_ids: list[int] = []


def _with_query_id(record) -> bool:
    record["extra"].setdefault("query_id", "-")
    return True


def setup_logger(
    log_level: str = "INFO",
    log_dir: str | Path = "logs",
    log_file: str = "skyhistory.log",
    rotation: str = "10 MB",
    retention: str = "7 days",
    enable_console: bool = True,
    enable_file: bool = False,
) -> None:
    """
    Enable skyhistory logging and install its sinks.

    Sinks added by the host application are left untouched; only those
    from a previous call are replaced.

    Args:
        log_level: Minimum log level to capture (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory to store log files
        log_file: Name of the log file
        rotation: When to rotate the log file (e.g., "10 MB", "1 day", "00:00")
        retention: How long to keep old log files (e.g., "7 days", "1 week")
        enable_console: Whether to output logs to stderr
        enable_file: Whether to output logs to a rotating file
    """
    for handler_id in _handler_ids:
        logger.remove(handler_id)
    _handler_ids.clear()

    # stderr keeps stdout free for query output
    if enable_console:
        _handler_ids.append(logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            filter=_with_query_id,
            colorize=True,
            diagnose=False,
        ))

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        _handler_ids.append(logger.add(
            log_path / log_file,
            format=FILE_FORMAT,
            level=log_level,
            filter=_with_query_id,
            rotation=rotation,
            retention=retention,
            compression="zip",
            diagnose=False,
            enqueue=True,
        ))

    logger.enable(PACKAGE)
    logger.debug(f"Logging enabled at {log_level}")


# Silent until an application calls setup_logger()
logger.disable(PACKAGE)


__all__ = ["logger", "setup_logger"]
