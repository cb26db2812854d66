"""Logging plumbing shared by stdlib loggers and the event logger.

Everything written by the service goes through one set of handlers built from
``LogSettings``:

- ``LOG_OUTPUT=stdout``: debug/info to stdout, warn/error to stderr
- ``LOG_OUTPUT=file``: a single (optionally rotating) file

Event log lines arrive on the ``apnisec.events`` logger already rendered by
``StructuredLogger`` and are written verbatim. Records from every other logger
(uvicorn, startup messages) are rendered by ``RecordFormatter`` in the same
shape as event entries, so a log reader sees one format.

Request ids travel in a context variable; sensitive keys are redacted both on
stdlib records and on event metadata (``redact_value``).
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from apnisec.core.config import LogSettings, settings

EVENTS_LOGGER_NAME = "apnisec.events"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Keys whose values never reach a log line
SENSITIVE_KEYS_DEFAULT: set[str] = {
    "password",
    "new_password",
    "password_hash",
    "token",
    "access_token",
    "reset_token",
    "secret",
    "jwt_secret",
    "authorization",
    "cookie",
    "set-cookie",
}

# LogRecord attributes that are not caller-supplied extras
_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
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
    "message",
    "asctime",
    "request_id",
}

REDACTED = "[REDACTED]"

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def set_request_id(request_id: str | None) -> None:
    """Store the current request id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def redact_value(value: Any, sensitive_keys: set[str] | None = None) -> Any:
    """Recursively redact sensitive values within mappings and sequences.

    Args:
        value: Arbitrary value (log record extra, event metadata, ...).
        sensitive_keys: Lower-case keys to redact; defaults to
            ``SENSITIVE_KEYS_DEFAULT``.

    Returns:
        The value with sensitive fields replaced by "[REDACTED]".
    """

    keys = SENSITIVE_KEYS_DEFAULT if sensitive_keys is None else sensitive_keys

    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in keys else redact_value(v, keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact_value(v, keys) for v in value)
    return value


def record_extras(record: LogRecord, sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Return the caller-supplied ``extra`` fields of a record, redacted."""

    extras = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }
    return redact_value(extras, sensitive_keys)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a "Z" suffix."""

    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def stdlib_level(name: str) -> int:
    """Map a configured level name (including "warn") to a logging constant."""

    return getattr(logging, name.upper(), logging.INFO)


def level_name(levelno: int) -> str:
    """Map a stdlib level number onto the debug/info/warn/error scale."""

    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warn"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive extras on the record before formatting."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = set(sensitive_keys or SENSITIVE_KEYS_DEFAULT)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in record_extras(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class RecordFormatter(logging.Formatter):
    """Render stdlib records as event-style JSON or as a plain text line.

    Lines from the event logger are already rendered and pass through as-is.

    Args:
        structured: Emit JSON (camelCase keys, extras under ``metadata``).
        service_name: Stamped on JSON lines as ``service``.
        environment: Stamped on JSON lines as ``env``.
    """

    def __init__(
        self,
        *,
        structured: bool,
        service_name: str = "apnisec",
        environment: str = "development",
        sensitive_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(_PLAIN_FORMAT)
        self.structured = structured
        self.service_name = service_name
        self.environment = environment
        self.sensitive_keys = set(sensitive_keys or SENSITIVE_KEYS_DEFAULT)

    def format(self, record: LogRecord) -> str:  # noqa: D401
        if record.name == EVENTS_LOGGER_NAME:
            return record.getMessage()
        if not self.structured:
            return super().format(record)

        payload: dict[str, Any] = {
            "timestamp": utc_timestamp(),
            "level": level_name(record.levelno),
            "message": record.getMessage(),
            "context": record.name,
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["requestId"] = request_id

        extras = record_extras(record, self.sensitive_keys)
        if extras:
            payload["metadata"] = extras

        if record.exc_info and record.exc_info[0] is not None:
            payload["error"] = {
                "name": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stack": self.formatException(record.exc_info),
            }

        payload["service"] = self.service_name
        payload["env"] = self.environment
        return json.dumps(payload, default=str)


class _MaxLevelFilter(logging.Filter):
    """Pass only records strictly below ``level``."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        return record.levelno < self.level


def build_handlers(log_settings: LogSettings) -> list[logging.Handler]:
    """Construct output handlers (stdout/stderr pair, or one file).

    Args:
        log_settings: Resolved logging settings from environment.

    Returns:
        Handlers without formatters or filters attached.
    """

    if log_settings.output.lower() == "file":
        file_path = Path(log_settings.file_path or "logs/apnisec.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            handler: logging.Handler = RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        else:
            handler = logging.FileHandler(file_path, encoding="utf-8")
        return [handler]

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    return [stdout_handler, stderr_handler]


def configure_logging(
    log_settings: LogSettings | None = None,
    environment: str | None = None,
) -> None:
    """Install the shared handlers on the root logger.

    The event logger propagates into them, so ``LOG_OUTPUT``, rotation and
    redaction apply to event lines and stdlib records alike.

    Args:
        log_settings: Optional log settings; defaults to global settings.
        environment: Stamped on JSON lines; defaults to ``APP_ENV``.
    """

    cfg = log_settings or settings.log
    formatter = RecordFormatter(
        structured=cfg.structured,
        service_name=cfg.service_name,
        environment=environment or settings.app_env,
    )

    root_logger = logging.getLogger()
    for old in list(root_logger.handlers):
        root_logger.removeHandler(old)
        old.close()

    for handler in build_handlers(cfg):
        handler.addFilter(RequestIdFilter())
        handler.addFilter(SensitiveDataFilter(SENSITIVE_KEYS_DEFAULT))
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(stdlib_level(cfg.level))

    # Event entries are filtered by StructuredLogger's own minimum level
    events = logging.getLogger(EVENTS_LOGGER_NAME)
    events.setLevel(logging.DEBUG)
    events.propagate = True

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
