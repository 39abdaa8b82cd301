"""
Enhanced Logging Utilities

Provides structured logging with:
- JSON formatting for production
- Per-signal tracking identifiers
- Stage timing
"""

import json
import logging
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional


_EXTRA_FIELDS = ("tracking_id", "stage", "symbol", "direction", "execution_time")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """Logger for tracking operation timings."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._start_times = {}
        self._lock = threading.Lock()

    @contextmanager
    def timer(self, operation: str, **context):
        """Context manager for timing operations; logs at DEBUG on exit."""
        start_time = time.perf_counter()
        operation_id = f"{operation}_{threading.get_ident()}_{start_time}"

        try:
            with self._lock:
                self._start_times[operation_id] = start_time
            yield
        finally:
            execution_time = time.perf_counter() - start_time

            with self._lock:
                self._start_times.pop(operation_id, None)

            extra = {'execution_time': round(execution_time, 6), **context}
            self.logger.debug(f"Operation completed: {operation} in {execution_time * 1000:.1f}ms", extra=extra)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._start_times)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    # stderr keeps stdout free for command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_performance_logger(name: str) -> PerformanceLogger:
    """Get a performance logger instance."""
    return PerformanceLogger(logging.getLogger(name))
