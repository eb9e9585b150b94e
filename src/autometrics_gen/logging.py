"""Structured logging helpers for the generator.

Module-level loggers get a NullHandler so importing the package never prints
anything; the CLI calls :func:`setup_logging` once. Every record carries an
``operation`` and a ``status`` field, and :func:`with_fields` binds extra
fields (file, function) for the duration of a block.

Examples
--------
>>> from autometrics_gen.logging import get_logger, with_fields
>>> logger = get_logger(__name__)
>>> with with_fields(logger, operation="rewrite", file="main.go") as log:
...     log.info("Rewriting file")
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping
    from types import TracebackType

__all__ = [
    "JsonFormatter",
    "LoggerAdapter",
    "get_logger",
    "setup_logging",
    "with_fields",
]

TEXT_FORMAT: Final[str] = "%(levelname)s %(name)s: %(message)s"

_STANDARD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    {
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
    }
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Emits one JSON object per record with timestamp, level, logger name,
    message and every extra field whose value is JSON-friendly.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format. May include extra fields in record.__dict__.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if (
                key not in _STANDARD_ATTRIBUTES
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that injects structured context fields.

    Fields bound at construction time are merged into each record's
    ``extra`` without overriding fields passed at the call site. ``operation``
    and ``status`` are always present; ``status`` is inferred from the level
    when the caller does not set it.

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into log entries. Defaults to None.
    """

    def process(
        self, msg: object, kwargs: MutableMapping[str, Any]
    ) -> tuple[object, MutableMapping[str, Any]]:
        """Merge bound fields into the call's ``extra`` mapping.

        Parameters
        ----------
        msg : object
            Log message.
        kwargs : MutableMapping[str, Any]
            Keyword arguments from the logging call.

        Returns
        -------
        tuple[object, MutableMapping[str, Any]]
            Message and kwargs with injected fields.
        """
        extra = dict(kwargs.get("extra") or {})
        for key, value in (self.extra or {}).items():
            extra.setdefault(key, value)
        extra.setdefault("operation", "unknown")
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Log ``msg`` at ``level`` with a status inferred from the level."""
        if self.isEnabledFor(level):
            extra = dict(kwargs.get("extra") or {})
            extra.setdefault("status", _status_for_level(level))
            kwargs["extra"] = extra
            msg, kwargs = self.process(msg, kwargs)
            self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log a debug message with structured fields."""
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log an info message with structured fields."""
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log a warning message with structured fields."""
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log an error message with structured fields."""
        self.log(logging.ERROR, msg, *args, **kwargs)


def _status_for_level(level: int) -> str:
    if level >= logging.ERROR:
        return "error"
    if level >= logging.WARNING:
        return "warning"
    return "success"


def get_logger(name: str) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Parameters
    ----------
    name : str
        Logger name (typically __name__ from the calling module).

    Returns
    -------
    LoggerAdapter
        Logger adapter with structured context injection.
    """
    logger = logging.getLogger(name)

    # Library loggers stay silent until the application configures handlers
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return LoggerAdapter(logger, {})


def setup_logging(level: int = logging.INFO, *, json_format: bool = False) -> None:
    """Configure the root logger.

    Diagnostics go to stderr so they never mix with anything a build step
    captures from stdout.

    Parameters
    ----------
    level : int, optional
        Logging level threshold. Defaults to logging.INFO.
    json_format : bool, optional
        Emit one JSON object per line instead of plain text. Defaults to False.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)


class _WithFieldsContext(AbstractContextManager[LoggerAdapter]):
    """Context manager implementation for `with_fields`."""

    def __init__(
        self, logger: logging.Logger | LoggerAdapter, fields: Mapping[str, object]
    ) -> None:
        self._logger = logger
        self._fields = dict(fields)

    def __enter__(self) -> LoggerAdapter:
        if isinstance(self._logger, LoggerAdapter):
            base_logger = self._logger.logger
            fields = {**dict(self._logger.extra or {}), **self._fields}
        else:
            base_logger = self._logger
            fields = self._fields
        return LoggerAdapter(base_logger, fields)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        del exc_type, exc_value, exc_tb
        return None


def with_fields(
    logger: logging.Logger | LoggerAdapter,
    **fields: object,
) -> AbstractContextManager[LoggerAdapter]:
    """Context manager for attaching structured fields to log entries.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger to wrap (may already be an adapter; its fields are kept).
    **fields : object
        Structured fields to inject into all log entries within the block.

    Returns
    -------
    AbstractContextManager[LoggerAdapter]
        Context manager yielding a LoggerAdapter with bound fields.
    """
    return _WithFieldsContext(logger, fields)
