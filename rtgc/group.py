"""
Group - A side conversation inside a Room.

Members of a group hear each other (plus the room's hosts). A group
holds two disjoint sets: accepted members and pending invitees.
Invitation is advisory unless the room's policy requires it.

All state changes go through the owning Room's critical section; the
Group only exposes snapshots and delegates mutations to the Room.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rtgc.errors import GroupClosed, NotInRoom
from rtgc.events import EventType, ListenerRegistry, ParticipantCallback, Subscription
from rtgc.locks import LoopLock
from rtgc.models import GroupInfo

if TYPE_CHECKING:
    from rtgc.participant import Participant
    from rtgc.room import Room

logger = logging.getLogger(__name__)


class Group:
    """
    A group of participants within a room.

    Groups are created by ``Participant.create_group()`` or in batch by
    ``Room.add_groups()``; they are never constructed directly by
    applications.

    Example:
        group = alice.create_group()
        group.invite_participant(bob)
        group.on_participant_joined_group(render_tile)
        await bob.try_join_group(group.get_group_code())
    """

    def __init__(
        self,
        code: str,
        room: Room,
        info: GroupInfo | None = None,
        is_default: bool = False,
    ):
        self._code = code
        self._room = room
        self.info = info or GroupInfo()
        self._is_default = is_default
        self.creator: Participant | None = None
        self._closed = False

        # username -> participant, insertion ordered
        self._members: dict[str, Participant] = {}
        self._invited: dict[str, Participant] = {}

        self.listeners = ListenerRegistry(f"group:{code}")
        # Orders concurrent joins into this group across their await point
        self._join_lock = LoopLock()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        kind = "default " if self._is_default else ""
        return f"<{kind}Group {self._code} {state} members={len(self._members)}>"

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def code(self) -> str:
        return self._code

    def get_group_code(self) -> str:
        """Unique code of this group, stable for its lifetime."""
        return self._code

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def room(self) -> Room:
        return self._room

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_default(self) -> bool:
        return self._is_default

    def participants(self) -> list[Participant]:
        """Accepted members. Invitees who have not joined are excluded."""
        with self._room.lock:
            return list(self._members.values())

    def invited_participants(self) -> list[Participant]:
        """Snapshot of pending invitees."""
        with self._room.lock:
            return list(self._invited.values())

    def is_member(self, participant: Participant) -> bool:
        with self._room.lock:
            return self._members.get(participant.user_info.username) is participant

    def is_invited(self, participant: Participant) -> bool:
        with self._room.lock:
            return participant.user_info.username in self._invited

    def __len__(self) -> int:
        return len(self._members)

    # =========================================================================
    # Invitations
    # =========================================================================

    def invite_participant(self, participant: Participant) -> Group:
        """
        Invite ``participant`` to this group.

        No-op if the participant is already invited or already a member.
        Does not move the participant.

        Args:
            participant: A participant currently in this group's room.

        Returns:
            This group, for chaining.

        Raises:
            GroupClosed: If the group has been closed.
            NotInRoom: If the participant is not in this group's room.
        """
        with self._room.lock:
            if self._closed:
                raise GroupClosed(self._code)
            if participant.current_room is not self._room:
                raise NotInRoom(participant.user_info.username, self._room.code)

            username = participant.user_info.username
            if username in self._members or username in self._invited:
                return self

            self._invited[username] = participant
            logger.debug(f"Invited {username} to group {self._code}")
        return self

    # =========================================================================
    # Listeners
    # =========================================================================

    def on_participant_joined_group(self, callback: ParticipantCallback) -> Subscription:
        """Call ``callback(participant)`` whenever someone joins this group.

        Current members are not replayed; iterate ``participants()``
        first if you need them.

        Raises:
            GroupClosed: If the group has been closed.
        """
        return self._subscribe(EventType.PARTICIPANT_JOINED_GROUP, callback)

    def on_participant_left_group(self, callback: ParticipantCallback) -> Subscription:
        """Call ``callback(participant)`` whenever someone leaves this group.

        Raises:
            GroupClosed: If the group has been closed.
        """
        return self._subscribe(EventType.PARTICIPANT_LEFT_GROUP, callback)

    def _subscribe(self, event_type: EventType, callback: ParticipantCallback) -> Subscription:
        with self._room.lock:
            if self._closed:
                raise GroupClosed(self._code)
            return self.listeners.subscribe(event_type, callback)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """
        Close the group.

        Every member is returned to the group on top of their own history
        (or the default group), pending invitations are dropped, and the
        code is released. Closing an already closed group does nothing.

        Raises:
            DefaultGroupProtected: If this is the room's default group.
        """
        self._room.close_group(self)
