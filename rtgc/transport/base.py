"""
Transport Base - Boundary contract with the media transport.

The core decides *who* should hear and see whom; the transport moves
the media. The core calls into the transport at these points:

    connect          awaited before a room join commits
    reroute          awaited before a group switch commits
    disconnect       after a participant leaves a room
    routes_changed   after every membership mutation
    mute_changed     after a mute flag flips
    enumerate_sources / set_stream / attach
                     on behalf of a Participant

TRANSPORT CONTRACT:
    Transports MUST:
        - Read routing from rtgc.routing (never cache a table across
          routes_changed calls)
        - Raise PermissionDenied from enumerate_sources when capture
          permission is refused
        - Treat MediaSource values as their own opaque handles

    Transports MUST NOT:
        - Mutate room or group membership
        - Call back into a room while a routes_changed call is running
          on another thread for the same room
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from rtgc.models import MediaKind, MediaSource

if TYPE_CHECKING:
    from rtgc.group import Group
    from rtgc.participant import Participant
    from rtgc.room import Room


@runtime_checkable
class Transport(Protocol):
    """Protocol for media transports."""

    @property
    def name(self) -> str:
        """Transport identifier (e.g., 'loopback')."""
        ...

    async def connect(self, participant: Participant, room: Room) -> None:
        """Negotiate the participant's media session for ``room``."""
        ...

    async def reroute(self, participant: Participant, group: Group) -> None:
        """Prepare subscriptions for the participant's move into ``group``."""
        ...

    def disconnect(self, participant: Participant, room: Room) -> None:
        ...

    def routes_changed(self, room: Room) -> None:
        """Membership changed; re-read routing for ``room``."""
        ...

    def mute_changed(self, participant: Participant, kind: MediaKind) -> None:
        ...

    async def enumerate_sources(
        self, participant: Participant, kind: MediaKind
    ) -> list[MediaSource]:
        """List capture sources.

        Raises:
            PermissionDenied: If capture permission was refused.
        """
        ...

    def set_stream(self, participant: Participant, source: MediaSource) -> bool:
        """Publish ``source`` as the participant's stream. True on success."""
        ...

    def attach(self, participant: Participant, target: Any) -> None:
        """Render the participant's negotiated tracks into ``target``."""
        ...


class BaseTransport(ABC):
    """Base class for transports with no-op lifecycle hooks.

    Subclasses must provide ``name`` and ``enumerate_sources``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    async def connect(self, participant: Participant, room: Room) -> None:
        return None

    async def reroute(self, participant: Participant, group: Group) -> None:
        return None

    def disconnect(self, participant: Participant, room: Room) -> None:
        return None

    def routes_changed(self, room: Room) -> None:
        return None

    def mute_changed(self, participant: Participant, kind: MediaKind) -> None:
        return None

    @abstractmethod
    async def enumerate_sources(
        self, participant: Participant, kind: MediaKind
    ) -> list[MediaSource]:
        ...

    def set_stream(self, participant: Participant, source: MediaSource) -> bool:
        return True

    def attach(self, participant: Participant, target: Any) -> None:
        return None


class NullTransport(BaseTransport):
    """Transport that moves no media and offers no sources."""

    @property
    def name(self) -> str:
        return "null"

    async def enumerate_sources(
        self, participant: Participant, kind: MediaKind
    ) -> list[MediaSource]:
        return []
