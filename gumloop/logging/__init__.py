"""Structured logging helpers for gumloop components."""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from collections.abc import Callable, Mapping
from contextlib import ContextDecorator
from logging import Handler, LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

_DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
_DEFAULT_BACKUP_COUNT = 5
_LOGGER_NAME = "gumloop"
_LOCK = threading.RLock()
_CONFIGURED = False
_FILE_HANDLER: Optional[Handler] = None

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",  # cyan
    "INFO": "\033[32m",  # green
    "WARNING": "\033[33m",  # yellow
    "ERROR": "\033[31m",  # red
    "CRITICAL": "\033[41m",  # red background
}
_RESET_COLOR = "\033[0m"


class GumloopJsonFormatter(logging.Formatter):
    """JSON formatter that carries gumloop metadata."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.default_time_format),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        metadata = {}
        if hasattr(record, "metadata") and isinstance(record.metadata, Mapping):
            metadata.update(record.metadata)
        if metadata:
            payload["metadata"] = metadata
        return json.dumps(payload, default=str, ensure_ascii=False)


class GumloopConsoleFormatter(logging.Formatter):
    """Console formatter with colour support when stderr is a terminal."""

    default_time_format = "%H:%M:%S"

    def format(self, record: LogRecord) -> str:  # noqa: D401 - inherited docs
        record.__dict__.setdefault("component", record.name)
        base = super().format(record)
        colour = _LEVEL_COLORS.get(record.levelname)
        if not colour or not sys.stderr.isatty():
            return base
        return f"{colour}{base}{_RESET_COLOR}"


def _coerce_level(value: Optional[str]) -> int:
    if not value:
        return logging.WARNING
    if isinstance(value, str):
        value = value.strip()
        if value.isdigit():
            return int(value)
        mapped = getattr(logging, value.upper(), None)
        if isinstance(mapped, int):
            return mapped
    if isinstance(value, int):
        return value
    return logging.WARNING


def configure_logging(
    level: Optional[str] = None,
    *,
    log_file: Optional[Path | str] = None,
    enable_json: bool = True,
) -> None:
    """Initialise gumloop logging.

    Console output goes to stderr. A rotating file sink is attached only when
    ``log_file`` or ``GUMLOOP_LOG_FILE`` names one, since the supervised
    repository is also the working directory. Once configured, the level only
    changes when ``level`` is passed explicitly.
    """

    global _CONFIGURED, _FILE_HANDLER

    with _LOCK:
        resolved_level = _coerce_level(level or os.getenv("GUMLOOP_LOG_LEVEL"))
        logger = logging.getLogger(_LOGGER_NAME)

        if not _CONFIGURED:
            logger.handlers.clear()
            logger.setLevel(resolved_level)
            logger.propagate = False

            console_handler = logging.StreamHandler()
            console_handler.setFormatter(
                GumloopConsoleFormatter(
                    fmt="%(asctime)s %(levelname)s %(component)s %(message)s",
                    datefmt="%H:%M:%S",
                )
            )
            logger.addHandler(console_handler)
            _CONFIGURED = True
        elif level:
            logger.setLevel(resolved_level)

        target = log_file or os.getenv("GUMLOOP_LOG_FILE")
        if not target:
            return

        target_file = Path(target)
        target_file.parent.mkdir(parents=True, exist_ok=True)

        if _FILE_HANDLER and getattr(_FILE_HANDLER, "baseFilename", None) == str(
            target_file.resolve()
        ):
            return

        if _FILE_HANDLER is not None:
            logger.removeHandler(_FILE_HANDLER)
            try:
                _FILE_HANDLER.close()
            finally:
                _FILE_HANDLER = None

        rotation_handler = RotatingFileHandler(
            target_file,
            maxBytes=_DEFAULT_MAX_BYTES,
            backupCount=_DEFAULT_BACKUP_COUNT,
            encoding="utf-8",
        )

        if enable_json:
            formatter: logging.Formatter = GumloopJsonFormatter()
        else:
            formatter = logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        rotation_handler.setFormatter(formatter)
        logger.addHandler(rotation_handler)
        _FILE_HANDLER = rotation_handler


def get_logger(name: str, *, metadata: Optional[Mapping[str, Any]] = None) -> logging.Logger:
    """Return a logger scoped under the gumloop namespace."""

    if not _CONFIGURED:
        configure_logging()
    qualified = name if name.startswith(f"{_LOGGER_NAME}.") else f"{_LOGGER_NAME}.{name}"
    logger = logging.getLogger(qualified)
    if metadata:
        return GumloopLoggerAdapter(logger, dict(metadata))
    return logger


class GumloopLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects metadata for structured logging."""

    def process(self, msg: str, kwargs: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra", {}))
        metadata = dict(self.extra)
        metadata.update(extra.get("metadata", {}))
        if metadata:
            extra["metadata"] = metadata
        kwargs = dict(kwargs)
        kwargs["extra"] = extra
        return msg, kwargs


class log_exceptions(ContextDecorator):
    """Context manager/decorator that logs uncaught exceptions."""

    def __init__(self, logger: logging.Logger, *, message: str = "Unhandled error") -> None:
        self.logger = logger
        self.message = message

    def __enter__(self) -> "log_exceptions":  # noqa: D401 - context protocol
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback) -> bool:
        if exc_type is not None and issubclass(exc_type, Exception):
            self.logger.error(
                self.message,
                exc_info=(exc_type, exc_value, exc_traceback),
            )
        return False


def log_action(
    action: str,
    *,
    start_level: int = logging.DEBUG,
    success_level: int = logging.DEBUG,
    failure_level: int = logging.WARNING,
    logger_factory: Callable[[], logging.Logger] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that emits structured entry/exit logs around a callable."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func_logger = logger_factory() if logger_factory else get_logger(func.__module__)

        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            func_logger.log(
                start_level,
                "%s:start",
                action,
                extra={"metadata": {"action": action, "event": "start"}},
            )
            try:
                result = func(*args, **kwargs)
            except Exception:
                func_logger.log(
                    failure_level,
                    "%s:error",
                    action,
                    extra={"metadata": {"action": action, "event": "error"}},
                    exc_info=True,
                )
                raise
            duration = time.perf_counter() - start_time
            func_logger.log(
                success_level,
                "%s:success",
                action,
                extra={"metadata": {"action": action, "event": "success", "duration": duration}},
            )
            return result

        wrapper.__name__ = getattr(func, "__name__", "wrapper")
        wrapper.__doc__ = func.__doc__
        return wrapper

    return decorator


__all__ = [
    "GumloopConsoleFormatter",
    "GumloopJsonFormatter",
    "GumloopLoggerAdapter",
    "configure_logging",
    "get_logger",
    "log_action",
    "log_exceptions",
]
