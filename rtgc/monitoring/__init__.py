"""
Monitoring for RTGC.

Components:
    StructuredLogger - JSON-lines logging of membership events and errors
    ActivityLog      - Per-room record of membership events

Example:
    from rtgc.monitoring import ActivityLog, configure_logging

    log = configure_logging(level="debug")
    manager = RoomManager(audit_log=log)   # refused joins
    activity = ActivityLog(manager.create_room())   # committed transitions
"""

from rtgc.monitoring.logging import (
    StructuredLogger,
    LogLevel,
    LogRecord,
    configure_logging,
    get_logger,
)
from rtgc.monitoring.activity import ActivityLog

__all__ = [
    "StructuredLogger",
    "LogLevel",
    "LogRecord",
    "configure_logging",
    "get_logger",
    "ActivityLog",
]
