"""
Activity log - One structured record per membership event.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

from rtgc.events import EventType, MembershipEvent, Subscription
from rtgc.monitoring.logging import StructuredLogger, get_logger

if TYPE_CHECKING:
    from rtgc.room import Room


class ActivityLog:
    """
    Records a room's membership activity.

    Subscribes to the room's event tap, so records arrive in the same
    order as the room committed them.

    Example:
        activity = ActivityLog(room)
        ...
        activity.records()        # [{"event": "participant_connected", ...}, ...]
        activity.counts()         # {"participant_connected": 3, ...}
        activity.detach()
    """

    def __init__(
        self,
        room: Room,
        logger: StructuredLogger | None = None,
        max_records: int = 1000,
    ):
        self.room_code = room.code
        self._logger = (logger or get_logger()).bind(room_code=room.code)
        self._records: deque[dict[str, Any]] = deque(maxlen=max_records)
        self._counts: dict[EventType, int] = {t: 0 for t in EventType}
        self._subscription: Subscription | None = room.events.subscribe_all(self._on_event)

    @property
    def attached(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def _on_event(self, event: MembershipEvent) -> None:
        self._records.append(event.to_dict())
        self._counts[event.event_type] += 1
        self._logger.membership_event(event)

    def records(self, event_type: EventType | None = None) -> list[dict[str, Any]]:
        if event_type is None:
            return list(self._records)
        return [r for r in self._records if r["event"] == event_type.value]

    def counts(self) -> dict[str, int]:
        return {t.value: n for t, n in self._counts.items()}

    def detach(self) -> bool:
        """Stop recording. Returns False if already detached."""
        if self._subscription is None:
            return False
        sub, self._subscription = self._subscription, None
        return sub.cancel()
