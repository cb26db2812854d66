"""Structured event logger with an in-memory ring buffer.

Request handlers record leveled entries (HTTP requests, audit trail, security
events, errors) through ``StructuredLogger``. Every accepted entry is kept in a
bounded buffer for lightweight inspection via ``get_recent_logs`` and mirrored
to the shared log output (see ``configure_logging``), either as JSON or as a
colourised human-readable line.

Logging is best-effort: no public method raises because of formatting or sink
failures, so instrumentation can never fail the request it describes.

The process-wide instance is built lazily by ``get_event_logger()``; the app
factory hands it to request handlers through ``app.state``. Tests construct
isolated ``StructuredLogger`` instances directly.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
import traceback
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from apnisec.core.config import LogSettings, settings
from apnisec.core.logging import EVENTS_LOGGER_NAME, get_request_id, redact_value, utc_timestamp

DEFAULT_CAPACITY = 1000


class LogLevel(str, Enum):
    """Event severity, ordered debug < info < warn < error."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]

    @classmethod
    def parse(cls, value: "LogLevel | str") -> "LogLevel":
        """Accept enum members or level names (case-insensitive, "warning" ok)."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name == "warning":
            name = "warn"
        return cls(name)


_LEVEL_RANKS = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

_LEVEL_COLORS = {
    LogLevel.DEBUG: "\x1b[36m",  # cyan
    LogLevel.INFO: "\x1b[32m",  # green
    LogLevel.WARN: "\x1b[33m",  # yellow
    LogLevel.ERROR: "\x1b[31m",  # red
}
_RESET = "\x1b[0m"


class SecuritySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_ERROR_SEVERITIES = {SecuritySeverity.HIGH.value, SecuritySeverity.CRITICAL.value}


@dataclass(frozen=True)
class ErrorInfo:
    name: str
    message: str
    stack: str | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorInfo":
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(name=type(error).__name__, message=str(error), stack=stack)


@dataclass(frozen=True)
class LogEntry:
    """A single event log entry.

    ``to_dict`` renders the stable wire schema consumed by log readers
    (camelCase keys, unset fields omitted).
    """

    timestamp: str
    level: LogLevel
    message: str
    context: str | None = None
    user_id: str | None = None
    request_id: str | None = None
    method: str | None = None
    path: str | None = None
    status_code: int | None = None
    duration: float | None = None
    ip: str | None = None
    user_agent: str | None = None
    error: ErrorInfo | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
        }
        optional = {
            "context": self.context,
            "userId": self.user_id,
            "requestId": self.request_id,
            "method": self.method,
            "path": self.path,
            "statusCode": self.status_code,
            "duration": self.duration,
            "ip": self.ip,
            "userAgent": self.user_agent,
            "metadata": self.metadata,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.error is not None:
            data["error"] = {
                key: value
                for key, value in dataclasses.asdict(self.error).items()
                if value is not None
            }
        return data


_ENTRY_FIELDS = {f.name for f in dataclasses.fields(LogEntry)} - {
    "timestamp",
    "level",
    "message",
}


@dataclass
class LoggerConfig:
    """Live configuration of a StructuredLogger."""

    min_level: LogLevel = LogLevel.DEBUG
    enable_console: bool = True
    enable_structured: bool = False
    service_name: str = "apnisec"
    environment: str = "development"

    def __post_init__(self) -> None:
        self.min_level = LogLevel.parse(self.min_level)

    @classmethod
    def from_settings(cls, log_settings: LogSettings, environment: str) -> "LoggerConfig":
        return cls(
            min_level=LogLevel.parse(log_settings.level),
            enable_console=log_settings.enable_console,
            enable_structured=log_settings.structured,
            service_name=log_settings.service_name,
            environment=environment,
        )


def _request_level(status_code: Any) -> LogLevel:
    """5xx is error, 4xx is warn; anything else (including no code) is info."""
    try:
        code = int(status_code)
    except (TypeError, ValueError, OverflowError):
        return LogLevel.INFO
    if code >= 500:
        return LogLevel.ERROR
    if code >= 400:
        return LogLevel.WARN
    return LogLevel.INFO


def _security_level(severity: Any) -> LogLevel:
    try:
        is_error = severity in _ERROR_SEVERITIES
    except Exception:  # noqa: BLE001
        is_error = False
    return LogLevel.ERROR if is_error else LogLevel.WARN


def _merge_metadata(base: dict[str, Any], extra: Any) -> dict[str, Any]:
    """Overlay caller metadata on ``base``; a non-mapping is kept under "value"."""
    merged = dict(base)
    if extra is None:
        return merged
    try:
        if isinstance(extra, Mapping):
            merged.update(extra)
        else:
            merged["value"] = extra
    except Exception:  # noqa: BLE001
        merged["value"] = repr(extra)
    return merged


class StructuredLogger:
    """Leveled event logger backed by a bounded in-memory buffer.

    Args:
        config: Initial configuration; defaults to ``LoggerConfig()``.
        capacity: Maximum number of retained entries (oldest dropped first).
        sink: stdlib logger receiving formatted console lines; defaults to
            the ``apnisec.events`` logger, whose output destination is set by
            ``configure_logging()``.
    """

    def __init__(
        self,
        config: LoggerConfig | None = None,
        *,
        capacity: int = DEFAULT_CAPACITY,
        sink: logging.Logger | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._config = config or LoggerConfig()
        self._logs: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._sink = sink if sink is not None else logging.getLogger(EVENTS_LOGGER_NAME)

    @property
    def config(self) -> LoggerConfig:
        return self._config

    @property
    def capacity(self) -> int:
        return self._logs.maxlen or DEFAULT_CAPACITY

    def configure(self, **changes: Any) -> None:
        """Merge the given fields into the live configuration.

        Raises:
            TypeError: If a field name is not part of LoggerConfig.
        """
        self._config = dataclasses.replace(self._config, **changes)

    # Level methods -----------------------------------------------------

    def debug(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.INFO, message, fields)

    def warn(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.WARN, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.ERROR, message, fields)

    # Specialised helpers ------------------------------------------------

    def log_error(self, error: BaseException, message: str, **fields: Any) -> None:
        """Log at error level, capturing the exception's name, message and stack."""
        fields.pop("error", None)
        try:
            fields["error"] = ErrorInfo.from_exception(error)
        except Exception:  # noqa: BLE001
            fields["error"] = ErrorInfo(name=type(error).__name__, message=repr(error))
        self._log(LogLevel.ERROR, message, fields)

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        **fields: Any,
    ) -> None:
        """Log a completed HTTP request; 5xx is error, 4xx is warn, else info."""
        level = _request_level(status_code)

        fields.update(
            context="HTTP",
            method=method,
            path=path,
            status_code=status_code,
            duration=duration_ms,
        )
        self._log(level, f"HTTP {method} {path}", fields)

    def audit(
        self,
        action: str,
        *,
        success: bool,
        user_id: str | None = None,
        ip: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        """Record a security-relevant state change (always at info level)."""
        self._log(
            LogLevel.INFO,
            f"AUDIT: {action}",
            {
                "context": "AUDIT",
                "user_id": user_id,
                "ip": ip,
                "metadata": _merge_metadata({"action": action, "success": success}, metadata),
            },
        )

    def security(
        self,
        event: str,
        *,
        severity: SecuritySeverity | str,
        user_id: str | None = None,
        ip: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        """Record a security event; high/critical severities log as errors."""
        severity_name = getattr(severity, "value", severity)
        level = _security_level(severity_name)
        self._log(
            level,
            f"SECURITY: {event}",
            {
                "context": "SECURITY",
                "user_id": user_id,
                "ip": ip,
                "metadata": _merge_metadata({"event": event, "severity": severity_name}, metadata),
            },
        )

    # Retrieval ----------------------------------------------------------

    def get_recent_logs(
        self,
        count: int = 100,
        min_level: LogLevel | str | None = None,
    ) -> list[LogEntry]:
        """Return up to ``count`` most recent entries, oldest first.

        Args:
            count: Maximum number of entries to return.
            min_level: Only include entries at or above this level.

        Raises:
            ValueError: If ``min_level`` is not a known level name.
        """
        floor = LogLevel.parse(min_level) if min_level is not None else None

        with self._lock:
            entries = list(self._logs)

        if floor is not None:
            entries = [entry for entry in entries if entry.level.rank >= floor.rank]
        if count <= 0:
            return []
        return entries[-count:]

    def clear_logs(self) -> None:
        with self._lock:
            self._logs.clear()

    def __len__(self) -> int:
        return len(self._logs)

    # Internals ----------------------------------------------------------

    def _log(self, level: LogLevel, message: str, fields: dict[str, Any]) -> None:
        config = self._config
        if level.rank < config.min_level.rank:
            return

        try:
            entry = self._build_entry(level, message, fields)
        except Exception:  # noqa: BLE001
            # A malformed field must not break the caller; keep the bare entry.
            entry = LogEntry(timestamp=utc_timestamp(), level=level, message=str(message))

        with self._lock:
            self._logs.append(entry)

        if config.enable_console:
            self._emit(entry, config)

    def _build_entry(self, level: LogLevel, message: str, fields: dict[str, Any]) -> LogEntry:
        known = {key: value for key, value in fields.items() if key in _ENTRY_FIELDS}
        extra = {key: value for key, value in fields.items() if key not in _ENTRY_FIELDS}

        metadata = dict(known.pop("metadata", None) or {})
        metadata.update(extra)
        if metadata:
            known["metadata"] = redact_value(metadata)

        error = known.get("error")
        if isinstance(error, BaseException):
            known["error"] = ErrorInfo.from_exception(error)
        elif isinstance(error, Mapping):
            known["error"] = ErrorInfo(
                name=str(error.get("name", "Error")),
                message=str(error.get("message", "")),
                stack=error.get("stack"),
            )

        if known.get("request_id") is None:
            known["request_id"] = get_request_id()

        return LogEntry(timestamp=utc_timestamp(), level=level, message=str(message), **known)

    def _emit(self, entry: LogEntry, config: LoggerConfig) -> None:
        try:
            line = self._format_entry(entry, config)
            self._sink.log(_STDLIB_LEVELS[entry.level], line)
        except Exception:  # noqa: BLE001
            # Console output is best-effort; a dropped line is simply lost.
            return

    @staticmethod
    def _format_entry(entry: LogEntry, config: LoggerConfig) -> str:
        if config.enable_structured:
            payload = {
                **entry.to_dict(),
                "service": config.service_name,
                "env": config.environment,
            }
            return json.dumps(payload, default=str)

        color = _LEVEL_COLORS[entry.level]
        output = f"{color}[{entry.timestamp}] [{entry.level.value.upper()}]{_RESET}"

        if entry.context:
            output += f" [{entry.context}]"

        output += f" {entry.message}"

        if entry.method and entry.path:
            output += f" | {entry.method} {entry.path}"
        if entry.status_code:
            output += f" | Status: {entry.status_code}"
        if entry.duration is not None:
            output += f" | Duration: {entry.duration}ms"
        if entry.user_id:
            output += f" | User: {entry.user_id}"
        if entry.metadata:
            output += f" | {json.dumps(entry.metadata, default=str)}"

        if entry.error:
            output += f"\n  Error: {entry.error.name}: {entry.error.message}"
            if entry.error.stack and config.environment != "production":
                output += f"\n  Stack: {entry.error.stack}"

        return output


_event_logger: StructuredLogger | None = None
_event_logger_lock = threading.Lock()


def get_event_logger() -> StructuredLogger:
    """Return the process-wide event logger, creating it on first use."""

    global _event_logger

    if _event_logger is None:
        with _event_logger_lock:
            if _event_logger is None:
                _event_logger = StructuredLogger(
                    LoggerConfig.from_settings(settings.log, settings.app_env),
                    capacity=settings.log.buffer_size,
                )
    return _event_logger
