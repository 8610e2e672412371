"""
Audit log of reconciliation passes.

Every decision, registrar mutation and failure the driver sees is written as
one line per entry, as JSON, as human-readable text, or both. Entries below
the configured level are dropped. Values under credential-like keys (API
key, HMAC secret, passwords) are masked before anything is written.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TextIO, Union

from .enums import LogLevel
from .exceptions import ReconcilerError

_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}

SENSITIVE_KEYS = frozenset({
    "apikey", "api_key", "api_secret", "hmac_secret", "secret", "password",
    "token", "auth", "credential", "private_key",
})

MASK_VALUE = "***MASKED***"


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def mask_sensitive(value: Any) -> Any:
    """Copy of value with every credential-like dict entry masked, at any depth."""
    if isinstance(value, dict):
        return {
            key: MASK_VALUE if _is_sensitive(key) else mask_sensitive(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [mask_sensitive(item) for item in value]
    return value


@dataclass
class LogEntry:
    """One audit log line before formatting."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class AuditLogger:
    """Structured logger shared by the driver and the registrar client."""

    MASK_VALUE = MASK_VALUE

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        level: Union[LogLevel, str] = LogLevel.INFO,
    ):
        """
        Args:
            output_format: 'json', 'text' or 'both'
            output_stream: Destination stream, sys.stderr by default
            level: Lowest level that is written
        """
        formatters: dict[str, list[Callable[[LogEntry], str]]] = {
            "json": [self.format_json],
            "text": [self.format_text],
            "both": [self.format_json, self.format_text],
        }
        if output_format not in formatters:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._formatters = formatters[output_format]
        self._stream = output_stream or sys.stderr
        self._level = LogLevel(level.lower()) if isinstance(level, str) else level
        self._entries: list[LogEntry] = []

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def entries(self) -> list[LogEntry]:
        """Entries written so far, oldest first."""
        return list(self._entries)

    def clear_entries(self) -> None:
        self._entries.clear()

    def is_enabled_for(self, level: LogLevel) -> bool:
        return _SEVERITY[level] >= _SEVERITY[self._level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Write one entry.

        Returns:
            The entry as written, or None when its level is filtered out
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=mask_sensitive(data or {}),
        )
        self._entries.append(entry)
        for formatter in self._formatters:
            self._stream.write(formatter(entry) + "\n")
        self._stream.flush()
        return entry

    def debug(self, component: str, message: str, data: Optional[dict] = None):
        return self.log(LogLevel.DEBUG, component, message, data)

    def info(self, component: str, message: str, data: Optional[dict] = None):
        return self.log(LogLevel.INFO, component, message, data)

    def warn(self, component: str, message: str, data: Optional[dict] = None):
        return self.log(LogLevel.WARN, component, message, data)

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        domain: Optional[str] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Write an ERROR entry for a failed step.

        Reconciler errors are attached whole under "error" (code, message
        and registrar details); other exceptions only by type and message.
        """
        data = dict(additional_data or {})
        if domain is not None:
            data["domain"] = domain

        if isinstance(error, ReconcilerError):
            data["error"] = error.to_dict()
        elif error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__

        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        return mask_sensitive(data)

    def format_json(self, entry: LogEntry) -> str:
        return json.dumps(
            {
                "timestamp": entry.timestamp,
                "level": entry.level.value,
                "component": entry.component,
                "message": entry.message,
                "data": entry.data,
            },
            ensure_ascii=False,
            default=str,
        )

    def format_text(self, entry: LogEntry) -> str:
        """[timestamp] LEVEL [component] message {data}"""
        line = f"[{entry.timestamp}] {entry.level.value.upper()} [{entry.component}] {entry.message}"
        if entry.data:
            line += " " + json.dumps(entry.data, ensure_ascii=False, default=str)
        return line
