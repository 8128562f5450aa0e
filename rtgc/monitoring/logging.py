"""
Structured logging for RTGC.

Writes one JSON object per line. Every record has a level and an event
name; everything else is flat key/value data. Loggers bound to a room
stamp its code on every record they write.

Two record shapes come from the core:
    - membership events, one per committed transition (see ActivityLog)
    - membership errors, one per refused join (see Room.admit/move)
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from rtgc.events import MembershipEvent


class LogLevel(Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def numeric(self) -> int:
        return getattr(logging, self.name)


@dataclass
class LogRecord:
    """One line of structured output."""

    level: LogLevel
    event: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_json(self) -> str:
        line = {"level": self.level.value, "event": self.event, "timestamp": self.timestamp}
        line.update(self.data)
        return json.dumps(line, default=str)


class StructuredLogger:
    """
    JSON-lines logger for membership activity.

    Example:
        log = StructuredLogger(output=sys.stdout)
        room_log = log.bind(room_code="K3X9QZ")

        room_log.info("room_created")
        # {"level": "info", "event": "room_created", "timestamp": ..., "room_code": "K3X9QZ"}

        room_log.membership_error(NotInvited("bob", "G00001"), operation="join_group")
        # {"level": "warning", "event": "membership_error", "error_kind": "not_invited", ...}
    """

    def __init__(self, level: LogLevel = LogLevel.INFO, output: TextIO | None = None):
        self._level = level
        self._output = output or sys.stderr
        self._context: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **context: Any) -> StructuredLogger:
        """Logger writing to the same stream with ``context`` on every record."""
        bound = StructuredLogger(level=self._level, output=self._output)
        bound._context = {**self._context, **context}
        # One lock per stream so lines never interleave
        bound._lock = self._lock
        return bound

    def enabled_for(self, level: LogLevel) -> bool:
        return level.numeric >= self._level.numeric

    def log(self, level: LogLevel, event: str, **data: Any) -> None:
        if not self.enabled_for(level):
            return
        record = LogRecord(level=level, event=event, data={**self._context, **data})
        line = record.to_json()
        with self._lock:
            print(line, file=self._output)

    def debug(self, event: str, **data: Any) -> None:
        self.log(LogLevel.DEBUG, event, **data)

    def info(self, event: str, **data: Any) -> None:
        self.log(LogLevel.INFO, event, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log(LogLevel.WARNING, event, **data)

    def error(self, event: str, **data: Any) -> None:
        self.log(LogLevel.ERROR, event, **data)

    # =========================================================================
    # Membership records
    # =========================================================================

    def membership_event(self, event: MembershipEvent) -> None:
        """Log a committed membership transition under its event type."""
        self.info(
            event.event_type.value,
            username=event.participant.user_info.username,
            group_code=event.group_code,
            sequence=event.sequence,
            committed_at=event.timestamp,
        )

    def membership_error(self, error: Exception, **extra: Any) -> None:
        """
        Log a refused membership operation.

        RTGCError details (username, room or group code, ...) become
        fields of the record; ``extra`` is added on top.
        """
        kind = getattr(error, "kind", None)
        details = getattr(error, "details", None) or {}
        data = {k: v for k, v in details.items() if v is not None}
        data.update(extra)
        data["message"] = getattr(error, "message", str(error))
        data["error_type"] = type(error).__name__
        data["error_kind"] = kind.value if kind is not None else None
        data["retryable"] = bool(kind is not None and kind.retryable)
        self.warning("membership_error", **data)


_global_logger: StructuredLogger | None = None


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    output: TextIO | None = None,
) -> StructuredLogger:
    """
    Configure the global structured logger.

    Args:
        level: Minimum level, as a LogLevel or its name ("debug", ...).
        output: Output stream (default: stderr).

    Returns:
        The new global logger.
    """
    global _global_logger

    if isinstance(level, str):
        level = LogLevel(level.lower())
    _global_logger = StructuredLogger(level=level, output=output)
    return _global_logger


def get_logger() -> StructuredLogger:
    """Get the global structured logger, creating it on first use."""
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger()
    return _global_logger
