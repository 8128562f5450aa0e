"""
Event Bus - Ordered membership notifications.

Each Room and each Group owns a ListenerRegistry. Mutations record
MembershipEvents while holding the room's critical section and hand
them to the EventBus, which delivers them once the new state is
committed and before the mutating call returns.

Delivery rules:
    - Listeners observe the post-mutation state.
    - Listeners for one event type run in registration order.
    - Events of one room are delivered in sequence order.
    - Late subscribers are not replayed; enumerate the current state
      (e.g. room.participants()) before subscribing.
    - A listener that raises is logged and skipped; delivery continues.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from rtgc.participant import Participant

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Membership notification types."""

    PARTICIPANT_CONNECTED = "participant_connected"
    PARTICIPANT_DISCONNECTED = "participant_disconnected"
    PARTICIPANT_JOINED_GROUP = "participant_joined_group"
    PARTICIPANT_LEFT_GROUP = "participant_left_group"


ParticipantCallback = Callable[["Participant"], Any]
EventCallback = Callable[["MembershipEvent"], Any]


@dataclass(frozen=True)
class MembershipEvent:
    """A single membership change.

    Attributes:
        event_type: What happened.
        participant: Who it happened to.
        room_code: Room the change happened in.
        group_code: Group involved, None for room-level events.
        sequence: Per-room, strictly increasing commit order.
        timestamp: Unix timestamp of the commit.
    """

    event_type: EventType
    participant: Participant
    room_code: str
    group_code: str | None = None
    sequence: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event_type.value,
            "username": self.participant.user_info.username,
            "room_code": self.room_code,
            "group_code": self.group_code,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
        }


class Subscription:
    """Handle returned by every ``on_*`` registration."""

    def __init__(
        self,
        registry: ListenerRegistry,
        event_type: EventType | None,
        callback: Callable[..., Any],
    ):
        self._registry = registry
        self.event_type = event_type
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._registry.is_subscribed(self)

    def cancel(self) -> bool:
        """Stop receiving events. Returns False if already cancelled."""
        return self._registry.unsubscribe(self)


class ListenerRegistry:
    """Listeners for one scope (a room or a group)."""

    def __init__(self, scope: str):
        self.scope = scope
        self._listeners: dict[EventType, list[Subscription]] = {t: [] for t in EventType}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, callback: ParticipantCallback) -> Subscription:
        if not callable(callback):
            raise TypeError("callback must be callable")
        sub = Subscription(self, event_type, callback)
        with self._lock:
            self._listeners[event_type].append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            subs = self._listeners.get(subscription.event_type, [])
            if subscription in subs:
                subs.remove(subscription)
                return True
            return False

    def is_subscribed(self, subscription: Subscription) -> bool:
        with self._lock:
            return subscription in self._listeners.get(subscription.event_type, [])

    def listeners(self, event_type: EventType) -> list[Subscription]:
        """Snapshot of the listeners for ``event_type`` in registration order."""
        with self._lock:
            return list(self._listeners[event_type])

    def count(self, event_type: EventType | None = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._listeners[event_type])
            return sum(len(v) for v in self._listeners.values())

    def clear(self) -> None:
        with self._lock:
            for subs in self._listeners.values():
                subs.clear()

    def deliver(self, event: MembershipEvent) -> None:
        for sub in self.listeners(event.event_type):
            try:
                sub.callback(event.participant)
            except Exception as e:
                logger.error(
                    f"Listener error on {self.scope} for {event.event_type.value}: {e}"
                )


class _TapRegistry(ListenerRegistry):
    """Room registry that also holds callbacks for every MembershipEvent."""

    def __init__(self, scope: str):
        super().__init__(scope)
        self._taps: list[Subscription] = []

    def subscribe_all(self, callback: EventCallback) -> Subscription:
        if not callable(callback):
            raise TypeError("callback must be callable")
        sub = Subscription(self, None, callback)
        with self._lock:
            self._taps.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        if subscription.event_type is not None:
            return super().unsubscribe(subscription)
        with self._lock:
            if subscription in self._taps:
                self._taps.remove(subscription)
                return True
            return False

    def is_subscribed(self, subscription: Subscription) -> bool:
        if subscription.event_type is not None:
            return super().is_subscribed(subscription)
        with self._lock:
            return subscription in self._taps

    def tap(self, event: MembershipEvent) -> None:
        with self._lock:
            taps = list(self._taps)
        for sub in taps:
            try:
                sub.callback(event)
            except Exception as e:
                logger.error(f"Event tap error on {self.scope}: {e}")

    def clear(self) -> None:
        super().clear()
        with self._lock:
            self._taps.clear()


class EventBus:
    """
    Per-room event bus.

    ``record`` is called inside the room's critical section: it stamps
    the event with the next sequence number and queues it. ``flush`` is
    called once the critical section is released and drains the queue
    in sequence order, so events committed by concurrent callers are
    still delivered in commit order. A caller's flush returns only after
    its own events have been delivered, by itself or by whichever caller
    was already draining.

    Example:
        bus = EventBus("ROOM42")
        bus.subscribe_all(lambda event: print(event.to_dict()))
    """

    def __init__(self, room_code: str):
        self.room_code = room_code
        self.room_listeners = _TapRegistry(f"room:{room_code}")
        self._sequence = itertools.count(1)
        self._last_sequence = 0
        self._queue: deque[tuple[ListenerRegistry, MembershipEvent]] = deque()
        self._queue_lock = threading.Lock()
        self._dispatch_lock = threading.RLock()

    @property
    def last_sequence(self) -> int:
        """Sequence number of the most recently recorded event."""
        return self._last_sequence

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def subscribe_all(self, callback: EventCallback) -> Subscription:
        """Receive every MembershipEvent of this room, in sequence order."""
        return self.room_listeners.subscribe_all(callback)

    def record(
        self,
        registry: ListenerRegistry,
        event_type: EventType,
        participant: Participant,
        group_code: str | None = None,
    ) -> MembershipEvent:
        with self._queue_lock:
            seq = next(self._sequence)
            self._last_sequence = seq
            event = MembershipEvent(
                event_type=event_type,
                participant=participant,
                room_code=self.room_code,
                group_code=group_code,
                sequence=seq,
            )
            self._queue.append((registry, event))
        return event

    def flush(self) -> int:
        """Deliver every queued event. Returns the number delivered."""
        delivered = 0
        with self._dispatch_lock:
            while True:
                with self._queue_lock:
                    if not self._queue:
                        break
                    registry, event = self._queue.popleft()
                registry.deliver(event)
                self.room_listeners.tap(event)
                delivered += 1
        return delivered

    def close(self) -> None:
        """Drop all room-level listeners. Queued events are discarded."""
        with self._queue_lock:
            self._queue.clear()
        self.room_listeners.clear()
