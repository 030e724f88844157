from __future__ import annotations

import logging
import sys
import uuid

from loguru import logger as loguru_logger

# Attributes every LogRecord has; anything else came in through ``extra=``
_STANDARD_FIELDS = frozenset(
    {
        "args",
        "msg",
        "name",
        "levelno",
        "levelname",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "message",
    }
)

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | {message} | {extra}"
)


class InterceptHandler(logging.Handler):
    """Route stdlib logging records into loguru, keeping ``extra`` fields."""

    def emit(self, record: logging.LogRecord) -> None:
        level: int | str
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in _STANDARD_FIELDS
        }
        loguru_logger.bind(logger=record.name, **extra).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_logging(
    level: str = "INFO",
    *,
    json_logs: bool = True,
    log_file: str | None = None,
    max_file_size: str = "20 MB",
    retention: str = "14 days",
) -> None:
    """Configure loguru sinks and bridge stdlib logging into them.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Serialize records as JSON lines
        log_file: Optional log file path with rotation
        max_file_size: Rotation size for the file sink (loguru format)
        retention: Retention period for rotated files (loguru format)
    """
    lvl = level.upper()
    loguru_logger.remove()

    # Logs go to stderr so command output on stdout stays clean
    loguru_logger.add(
        sys.stderr,
        format=_TEXT_FORMAT,
        level=lvl,
        serialize=json_logs,
        backtrace=False,
        diagnose=False,
    )
    if log_file:
        loguru_logger.add(
            log_file,
            level=lvl,
            serialize=True,
            rotation=max_file_size,
            retention=retention,
            enqueue=True,
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, lvl, logging.INFO))
    root.addHandler(InterceptHandler())

    # httpx logs every request at INFO
    for noisy_logger in ("httpx", "httpcore", "peewee"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    loguru_logger.debug(
        "logging_initialized", setup_config={"level": lvl, "json": json_logs, "log_file": log_file}
    )


def generate_correlation_id() -> str:
    """Generate a short correlation ID for tracing one sync pass across logs."""
    return uuid.uuid4().hex[:12]
