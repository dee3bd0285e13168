"""
Logging Configuration for the Caption Gallery API.

This module provides a centralized and configurable logging system for the
application. It supports structured JSON logging for production environments and
color-coded, human-readable logs for development. Every record can carry the
correlation ID of the request that produced it.

Key Components:
- `CorrelationFilter`: A filter that copies the current request's correlation ID
  onto each log record.
- `JSONFormatter`: Outputs log records as single-line JSON documents for log
  ingestion pipelines.
- `ColoredConsoleFormatter`: Adds color to log levels for a development console.
- `get_logging_config`: Builds the `dictConfig` dictionary from the
  `ENVIRONMENT`, `LOG_LEVEL` and `LOG_FILE` environment variables.
- `setup_logging`: Initializes logging for the whole application.
- `log_function_call`: A decorator that logs entry, exit and execution time of
  sync and async functions.

Architectural Design:
- Environment-Aware Configuration: format and level come from environment
  variables, so deployments change behaviour without code changes.
- Context-Aware Logging: the correlation ID lives in a `ContextVar`, so it
  follows each request across `await` points.
"""

import os
import json
import asyncio
import functools
import logging
import logging.config
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variable for request correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else arrived through `extra=`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
    "correlation_id",
}

APP_LOGGERS = ("api", "core", "services", "providers")
THIRD_PARTY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "sqlalchemy.engine": "WARNING",
    "aiohttp": "WARNING",
}

DEFAULT_LOG_FILE = "/var/log/caption_gallery/app.log"


class CorrelationFilter(logging.Filter):
    """Filter that adds correlation ID to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        corr_id = correlation_id.get()
        if corr_id:
            record.correlation_id = corr_id
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "correlation_id", None):
            log_entry["correlation_id"] = record.correlation_id

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        corr_id = getattr(record, "correlation_id", None)
        prefix = f"{timestamp} {record.levelname:<8} {record.name}"
        if corr_id:
            prefix += f" [{corr_id}]"

        formatted = f"{color}{prefix}: {record.getMessage()}{self.RESET}"
        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted


def _logger_entry(level: str, handlers) -> Dict[str, Any]:
    return {"level": level, "handlers": list(handlers), "propagate": False}


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig for the current ENVIRONMENT and LOG_LEVEL"""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    handler_names = ["console"]
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "colored_console" if environment == "development" else "json",
            "filters": ["correlation"],
            "stream": "ext://sys.stdout",
        },
    }

    if environment == "production":
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filters": ["correlation"],
            "filename": os.getenv("LOG_FILE", DEFAULT_LOG_FILE),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
        }
        handler_names.append("file")

    loggers = {name: _logger_entry(log_level, handler_names) for name in APP_LOGGERS}
    for name, level in THIRD_PARTY_LEVELS.items():
        loggers[name] = _logger_entry(level, handler_names)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"correlation": {"()": CorrelationFilter}},
        "formatters": {
            "json": {"()": JSONFormatter},
            "colored_console": {"()": ColoredConsoleFormatter},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": list(handler_names)},
    }


def setup_logging():
    """Initialize logging configuration"""
    logging.config.dictConfig(get_logging_config())

    environment = os.getenv("ENVIRONMENT", "development")
    logging.getLogger("core.logging").info(
        f"Logging initialized for {environment} environment"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def set_correlation_id(corr_id: str):
    """Set correlation ID for the current context"""
    correlation_id.set(corr_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from the current context"""
    return correlation_id.get()


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def log_function_call(logger: logging.Logger):
    """Decorator to log function calls with parameters and execution time"""

    def decorator(func):
        name = func.__name__

        def started(args, kwargs):
            logger.debug(
                f"Calling {name}",
                extra={"args_count": len(args), "kwargs_keys": list(kwargs.keys())},
            )
            return time.time()

        def failed(start_time, error):
            logger.error(
                f"Failed {name}: {error}",
                extra={
                    "execution_time_ms": _elapsed_ms(start_time),
                    "success": False,
                    "error_type": type(error).__name__,
                },
            )

        def completed(start_time):
            logger.debug(
                f"Completed {name}",
                extra={"execution_time_ms": _elapsed_ms(start_time), "success": True},
            )

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = started(args, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    failed(start_time, e)
                    raise
                completed(start_time)
                return result

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = started(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                failed(start_time, e)
                raise
            completed(start_time)
            return result

        return sync_wrapper

    return decorator
