"""
streamnorm - Structured JSON Logging

Every log line written while a session runs carries that session's
correlation fields (session_id, request_id, wire_format) plus the ids of
the active OpenTelemetry span, so a stalled stream can be followed from
the HTTP client span down to individual skipped payloads.

Usage:
    from streamnorm.observability.logging import setup_logging, get_logger

    setup_logging(level="DEBUG")
    logger = get_logger(__name__)
    logger.warning("Skipping malformed event payload", payload_preview=raw[:200])

Output:
    {"timestamp": "2024-01-15T10:30:00.123456+00:00", "level": "WARNING",
     "logger": "streamnorm.streaming.events", "message": "Skipping malformed event payload",
     "session_id": "sess_1f2e3d4c5b6a", "wire_format": "delta_chunk", "payload_preview": "{oops"}
"""

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

from opentelemetry import trace

_current_context: ContextVar[Optional["LogContext"]] = ContextVar(
    "streamnorm_log_context", default=None
)


@dataclass
class LogContext:
    """
    Correlation fields of the session running in the current task.

    Concurrent sessions each run in their own asyncio task and therefore
    see their own context.
    """
    session_id: str = ""
    request_id: str = ""
    wire_format: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def get_current(cls) -> Optional["LogContext"]:
        return _current_context.get()

    @classmethod
    def set_current(cls, ctx: Optional["LogContext"]):
        """Bind ctx to the current task; returns the contextvars reset token."""
        return _current_context.set(ctx)

    @classmethod
    def clear(cls):
        _current_context.set(None)

    def update(self, **fields):
        """Set known fields; anything else lands in `extra`."""
        for key, value in fields.items():
            if key in ("session_id", "request_id", "wire_format"):
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self) -> Dict[str, Any]:
        result = {
            key: value
            for key, value in (
                ("session_id", self.session_id),
                ("request_id", self.request_id),
                ("wire_format", self.wire_format),
            )
            if value
        }
        result.update(self.extra)
        return result


@contextmanager
def session_log_context(**fields) -> Iterator[LogContext]:
    """Bind a fresh LogContext for one session, restoring the previous one after."""
    ctx = LogContext()
    ctx.update(**fields)
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _span_ids() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": format(span_context.trace_id, "032x"),
        "span_id": format(span_context.span_id, "016x"),
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with session and span correlation."""

    # Substrings marking a field as secret
    SENSITIVE_FIELDS = (
        "password", "secret", "token", "api_key", "apikey",
        "authorization", "auth", "credential", "private_key",
    )

    # Attributes every LogRecord has; anything else came in via `extra`
    _RECORD_ATTRIBUTES = frozenset(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__
    ) | {"message", "asctime"}

    def __init__(self, include_location: bool = False, redact_sensitive: bool = True):
        super().__init__()
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_location:
            entry["location"] = f"{record.filename}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(_span_ids())

        ctx = LogContext.get_current()
        if ctx is not None:
            entry.update(ctx.to_dict())

        for key, value in record.__dict__.items():
            if key in self._RECORD_ATTRIBUTES:
                continue
            if self.redact_sensitive and self._is_sensitive(key):
                value = "[REDACTED]"
            entry[key] = value

        return json.dumps(entry, default=str, ensure_ascii=False)

    def _is_sensitive(self, name: str) -> bool:
        lowered = name.lower()
        return any(marker in lowered for marker in self.SENSITIVE_FIELDS)


class StructuredLogger:
    """
    Thin wrapper over logging.Logger taking structured fields as kwargs.

        logger.info("Stream session finished", outcome="completed", events_emitted=12)
    """

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel")

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args, **kwargs):
        if not self._logger.isEnabledFor(level):
            return

        extra = dict(kwargs.pop("extra", None) or {})
        ctx = LogContext.get_current()
        if ctx is not None:
            for key, value in ctx.to_dict().items():
                extra.setdefault(key, value)

        options = {key: kwargs.pop(key) for key in self._PASSTHROUGH if key in kwargs}
        extra.update(kwargs)
        self._logger.log(level, msg, *args, extra=extra, **options)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Error with the current traceback attached."""
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)


_configured = False


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
) -> None:
    """
    Install a stderr handler on the "streamnorm" logger.

    Only the package logger is touched, so the embedding application
    keeps control of the root logger. Calling again replaces the handler.

    Args:
        level: Log level name or number
        json_output: JSONFormatter (True) or a plain text format (False)
        include_location: Add filename:lineno to JSON lines
        redact_sensitive: Mask fields that look like credentials
    """
    global _configured

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    package_logger = logging.getLogger("streamnorm")
    package_logger.setLevel(level)
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if json_output:
        handler.setFormatter(
            JSONFormatter(include_location=include_location, redact_sensitive=redact_sensitive)
        )
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    package_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Structured logger for `name` (usually __name__).

    The first call configures logging from LOG_LEVEL and LOG_FORMAT
    (json|text) unless setup_logging() already ran.
    """
    if not _configured:
        setup_logging(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
        )
    return StructuredLogger(logging.getLogger(name))


class TimedOperation:
    """
    Logs how long a block took, at `log_level` on success and WARNING on failure.

        with TimedOperation("stream_session", logger):
            ...
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        log_level: int = logging.DEBUG,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        self.logger = logger or get_logger("streamnorm.timing")
        self.log_level = log_level
        self.extra = dict(extra or {})
        self.duration_ms: Optional[float] = None
        self._started: Optional[float] = None

    @property
    def duration_seconds(self) -> float:
        return (self.duration_ms or 0.0) / 1000

    def __enter__(self) -> "TimedOperation":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        fields = dict(self.extra, operation=self.operation, duration_ms=round(self.duration_ms, 2))

        if exc_type is None:
            self.logger._log(self.log_level, f"{self.operation} completed", **fields)
        else:
            fields["error"] = str(exc_val) or exc_type.__name__
            self.logger._log(logging.WARNING, f"{self.operation} failed", **fields)
