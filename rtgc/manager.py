"""
Room Manager - Directory of live rooms.

Owns the code issuer shared by every room and group it creates, so
codes never collide, and resolves room codes and share URLs back to
rooms.
"""

from __future__ import annotations

import logging
import threading
from typing import Any
from urllib.parse import urlparse

from rtgc.config import RoomConfig, RTGCConfig
from rtgc.identifiers import CodeIssuer, CodeRegistry
from rtgc.models import User
from rtgc.monitoring.logging import StructuredLogger
from rtgc.participant import Participant
from rtgc.room import Room
from rtgc.transport.base import NullTransport, Transport

logger = logging.getLogger(__name__)


class RoomManager:
    """
    Manager for rooms.

    Example:
        manager = RoomManager()

        room = manager.create_room()
        alice = manager.create_participant("alice")
        await alice.try_join_room(room.get_room_code())

        manager.get_room(room.get_room_code())          # room
        manager.resolve_share_url(room.get_share_url())  # room

        manager.close_all()
    """

    def __init__(
        self,
        config: RTGCConfig | None = None,
        transport: Transport | None = None,
        audit_log: StructuredLogger | None = None,
    ):
        """
        Initialize room manager.

        Args:
            config: Manager configuration (codes, share URLs, checks)
            transport: Media transport shared by all rooms
            audit_log: Structured logger that records refused joins
        """
        self.config = config or RTGCConfig()
        self.transport = transport or NullTransport()
        self.audit_log = audit_log
        self._issuer = CodeIssuer(
            length=self.config.code_length,
            alphabet=self.config.code_alphabet,
            max_attempts=self.config.max_issue_attempts,
        )
        self._rooms: CodeRegistry[Room] = CodeRegistry(self._issuer)
        self._lock = threading.RLock()

    @property
    def issuer(self) -> CodeIssuer:
        return self._issuer

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def create_room(self, config: RoomConfig | None = None) -> Room:
        """
        Create a room and register it in the directory.

        Args:
            config: Room policy. Defaults to ``config.room_defaults``.

        Returns:
            The new, open room.
        """
        room = Room(
            issuer=self._issuer,
            config=config or RoomConfig(
                name=self.config.room_defaults.name,
                require_invitation=self.config.room_defaults.require_invitation,
                metadata=dict(self.config.room_defaults.metadata),
            ),
            transport=self.transport,
            share_url_base=self.config.share_url_base,
            check_invariants=self.config.check_invariants,
            audit_log=self.audit_log,
        )
        with self._lock:
            self._rooms.bind(room.code, room)
        room.on_closed(self._forget)
        return room

    def create_participant(self, user: User | str) -> Participant:
        """Create a participant that resolves room codes through this manager."""
        return Participant(user, directory=self, transport=self.transport)

    def get_room(self, room_code: str) -> Room | None:
        """
        Get an open room by code.

        Args:
            room_code: Room code

        Returns:
            Room or None
        """
        return self._rooms.resolve(room_code.strip())

    def resolve_share_url(self, url: str) -> Room | None:
        """Get the room a share URL (from ``Room.get_share_url``) points at."""
        path = urlparse(url).path.rstrip("/")
        head, _, code = path.rpartition("/")
        if not code or not head.endswith("/join"):
            return None
        return self.get_room(code)

    def rooms(self) -> list[Room]:
        return self._rooms.values()

    def close_room(self, room_code: str) -> bool:
        """
        Close a room.

        Args:
            room_code: Room code

        Returns:
            True if a room was closed
        """
        room = self.get_room(room_code)
        if room is None:
            return False
        room.close()
        return True

    def close_all(self) -> int:
        """Close every room. Returns the number closed."""
        rooms = self.rooms()
        for room in rooms:
            room.close()
        if rooms:
            logger.info(f"Closed {len(rooms)} rooms")
        return len(rooms)

    def _forget(self, room: Room) -> None:
        # The room already released its own code
        with self._lock:
            self._rooms.unbind(room.code)

    def get_stats(self) -> dict[str, Any]:
        """
        Get directory statistics.

        Returns:
            Statistics dictionary
        """
        with self._lock:
            rooms = self._rooms.values()
            return {
                "total_rooms": len(rooms),
                "total_participants": sum(len(r.participants()) for r in rooms),
                "total_groups": sum(len(r.groups()) for r in rooms),
                "codes_in_use": self._issuer.in_use_count,
                "code_capacity": self._issuer.capacity,
            }
