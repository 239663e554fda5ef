"""JSON logging with a background writer thread.

Log calls only enqueue records; a ``QueueListener`` thread formats them and
writes them to stdout and, optionally, to a timestamped log file. Workers
therefore never block on console or disk I/O.
"""

import json
import logging
import logging.handlers
import queue
import sys
import time
from pathlib import Path
from typing import Any

LOGFILE_PREFIX = "asyncnuke"

_listeners: dict[str, logging.handlers.QueueListener] = {}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        """Format LogRecord into JSON string."""
        log_obj: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_obj["error"] = self.formatException(record.exc_info)
            log_obj["error_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None

        if hasattr(record, "extra_fields"):
            log_obj["extra_fields"] = record.extra_fields

        return json.dumps(log_obj, default=str)


def resolve_log_file(log_dir: str | None) -> str | None:
    """
    Build the timestamped log file path inside ``log_dir``.

    Args:
        log_dir: Directory that will hold the log file, or None for console-only logging

    Returns:
        Full log file path such as ``/var/log/asyncnuke_2024-01-31_13-05-00.log``, or None
    """
    if not log_dir:
        return None
    timestamp = time.strftime("%Y-%m-%d_%H-%M-%S", time.localtime())
    return str(Path(log_dir) / f"{LOGFILE_PREFIX}_{timestamp}.log")


def setup_logging(
    logger_name: str = "asyncnuke", level: str = "INFO", log_file: str | None = None
) -> logging.Logger:
    """
    Configure non-blocking JSON logging.

    Args:
        logger_name: Name of the logger
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file that receives every record in addition to stdout

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper()))

    # Avoid adding duplicate handlers
    if not logger.handlers:
        formatter = JsonFormatter()

        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        targets: list[logging.Handler] = [stream_handler]

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setFormatter(formatter)
            targets.append(file_handler)

        log_queue: queue.Queue = queue.Queue(-1)
        logger.addHandler(logging.handlers.QueueHandler(log_queue))

        listener = logging.handlers.QueueListener(log_queue, *targets, respect_handler_level=True)
        listener.start()
        _listeners[logger_name] = listener

    return logger


def shutdown_logging(logger_name: str = "asyncnuke") -> None:
    """
    Flush pending records and detach all handlers from the logger.

    Safe to call when logging was never configured.
    """
    listener = _listeners.pop(logger_name, None)
    if listener is not None:
        listener.stop()
        for handler in listener.handlers:
            handler.close()

    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def log_with_context(
    logger: logging.Logger, level: str, message: str, extra: dict[str, Any] | None = None
) -> None:
    """
    Log message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        extra: Additional context fields to include in JSON output
    """
    if extra is None:
        extra = {}

    log_method = getattr(logger, level.lower())
    log_method(message, extra={"extra_fields": extra})
