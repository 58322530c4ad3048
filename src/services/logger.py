"""
Logger Service Module
Logging setup for the event journal: colored console, rotating journal
and error logs, and a JSON performance log for timed operations
"""

import json
import logging
import os
import sys
import time
from datetime import datetime
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Any

import colorlog

PERFORMANCE_LOGGER = "journal.performance"

# LogRecord attributes that are not user-supplied `extra` fields
_RECORD_ATTRIBUTES = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class LoggerService:
    """
    Owns the root logger's handlers:
    - console (colorlog) at console_level
    - journal.log, rotating, at file_level
    - errors.log, rotating, ERROR and above
    - performance.log, daily, JSON lines from the performance logger only
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = {**self._default_config(), **(config or {})}
        self.handlers: list[logging.Handler] = []

        self.log_dir = Path(self.config["log_dir"])
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(self.log_dir, os.W_OK):
                raise PermissionError(f"Log directory not writable: {self.log_dir}")
        except OSError:
            # Fall back to a local writable directory
            self.log_dir = Path("./logs")
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()

    def _default_config(self) -> dict[str, Any]:
        return {
            "log_dir": "./logs",
            "log_level": "INFO",
            "console_level": "INFO",
            "console_stream": "stdout",
            "file_level": "DEBUG",
            "max_bytes": 5 * 1024 * 1024,  # 5MB
            "backup_count": 3,
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "date_format": "%Y-%m-%d %H:%M:%S",
            "colored_output": True,
            "json_logs": False,
            "performance_logs": True,
        }

    def _setup_root_logger(self):
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)  # Filter at handler level
        root_logger.handlers = []

        self._add(root_logger, self._create_console_handler())
        self._add(root_logger, self._create_file_handler("journal.log"))
        self._add(root_logger, self._create_file_handler("errors.log", level=logging.ERROR))

        perf_logger = logging.getLogger(PERFORMANCE_LOGGER)
        perf_logger.propagate = False
        perf_logger.handlers = []
        if self.config.get("performance_logs"):
            self._add(perf_logger, self._create_performance_handler())

    def _add(self, logger: logging.Logger, handler: logging.Handler):
        logger.addHandler(handler)
        self.handlers.append(handler)

    def _level(self, key: str, default: str) -> int:
        return getattr(logging, str(self.config.get(key, default)).upper(), logging.INFO)

    def _create_console_handler(self) -> logging.Handler:
        stream = sys.stderr if self.config.get("console_stream") == "stderr" else sys.stdout
        console_handler = logging.StreamHandler(stream)
        console_handler.setLevel(self._level("console_level", "INFO"))

        if self.config.get("colored_output"):
            formatter: logging.Formatter = colorlog.ColoredFormatter(
                "%(log_color)s" + self.config["format"],
                datefmt=self.config.get("date_format"),
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        else:
            formatter = logging.Formatter(
                self.config["format"], datefmt=self.config.get("date_format")
            )

        console_handler.setFormatter(formatter)
        return console_handler

    def _create_file_handler(self, filename: str, level: int | None = None) -> logging.Handler:
        file_path = self.log_dir / filename

        try:
            handler: logging.Handler = RotatingFileHandler(
                file_path,
                maxBytes=self.config["max_bytes"],
                backupCount=self.config["backup_count"],
            )
        except OSError:
            # Filesystem not writable (CI/sandboxes)
            handler = logging.StreamHandler(sys.stderr)

        handler.setLevel(level or self._level("file_level", "DEBUG"))

        if self.config.get("json_logs"):
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(
                logging.Formatter(self.config["format"], datefmt=self.config.get("date_format"))
            )
        return handler

    def _create_performance_handler(self) -> logging.Handler:
        try:
            handler: logging.Handler = TimedRotatingFileHandler(
                self.log_dir / "performance.log",
                when="midnight",
                interval=1,
                backupCount=7,
            )
        except OSError:
            handler = logging.StreamHandler(sys.stderr)

        handler.setLevel(logging.INFO)
        handler.setFormatter(JsonFormatter())
        return handler

    def set_level(self, level: str, logger_name: str | None = None):
        """Set logging level for a specific logger or the root logger"""
        logging.getLogger(logger_name).setLevel(getattr(logging, level.upper()))

    def cleanup(self):
        """Detach and close every handler this service installed"""
        for handler in self.handlers:
            for logger in (logging.getLogger(), logging.getLogger(PERFORMANCE_LOGGER)):
                if handler in logger.handlers:
                    logger.removeHandler(handler)
            handler.close()
        self.handlers.clear()


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class PerformanceLogger:
    """
    Context manager timing one journal operation.

    Completion goes to `logger` at DEBUG and, as a JSON record with
    `operation`/`duration_ms`, to the performance log. Failures are logged
    at ERROR and the exception propagates.
    """

    def __init__(self, logger: logging.Logger, operation: str, **metadata):
        self.logger = logger
        self.operation = operation
        self.metadata = metadata
        self.start_time: float | None = None
        self.duration: float | None = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time

        if exc_type:
            self.logger.error(
                f"Operation '{self.operation}' failed after {self.duration:.3f}s: {exc_val}"
            )
        else:
            self.logger.debug(f"Operation '{self.operation}' completed in {self.duration:.3f}s")
            log_performance(self.operation, self.duration, self.metadata)
        return False


# Global logger service instance
_logger_service: LoggerService | None = None


def setup_logging(config: dict | None = None) -> logging.Logger:
    """
    Configure logging once and return the root logger.

    Settings come from `config.LOGGING`/`get_files_config()`; `config`
    overrides individual keys (e.g. log_dir in tests).
    """
    global _logger_service

    if _logger_service is not None:
        return logging.getLogger()

    from config import Config

    log_config = {
        "log_dir": str(Config.get_files_config()["log_dir"]),
        "log_level": Config.LOGGING["level"],
        "console_level": Config.LOGGING["console_level"],
        "max_bytes": Config.LOGGING["max_bytes"],
        "backup_count": Config.LOGGING["backup_count"],
        "format": Config.LOGGING["format"],
        "date_format": Config.LOGGING["date_format"],
        "json_logs": Config.LOGGING["json_logs"],
    }
    if config:
        log_config.update(config)

    _logger_service = LoggerService(log_config)
    return logging.getLogger()


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, configuring logging on first use"""
    if _logger_service is None:
        setup_logging()
    return logging.getLogger(name)


def log_performance(operation: str, duration: float, metadata: dict | None = None):
    """Write one JSON performance record (no-op until logging is set up)"""
    if _logger_service is None:
        return
    logging.getLogger(PERFORMANCE_LOGGER).info(
        operation,
        extra={"operation": operation, "duration_ms": round(duration * 1000, 3), **(metadata or {})},
    )


def cleanup_logging():
    """Close handlers and allow setup_logging() to run again"""
    global _logger_service

    if _logger_service:
        _logger_service.cleanup()
        _logger_service = None
