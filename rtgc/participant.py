"""
Participant - A user's session view.

A participant is either nowhere (NoSession) or in a room and one of its
groups (InRoom). It owns its previous-group history: a LIFO stack,
most recent first, that is pushed when the participant joins another
group and popped when it leaves or its group closes.

Example:
    alice = manager.create_participant("alice")
    outcome = await alice.try_join_room(room.get_room_code())
    group = alice.create_group()
    await alice.try_join_group(group.get_group_code())
    alice.previous_groups      # [room.default_group]
    alice.try_leave_group(group.get_group_code())   # True
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from rtgc.errors import GroupNotFound, NotInRoom, RoomNotFound, RTGCError
from rtgc.locks import LoopLock
from rtgc.models import (
    NO_SESSION,
    GroupInfo,
    InRoom,
    MediaKind,
    MediaSource,
    Placement,
    User,
)
from rtgc.outcome import Outcome
from rtgc.transport.base import NullTransport, Transport

if TYPE_CHECKING:
    from rtgc.group import Group
    from rtgc.room import Room

logger = logging.getLogger(__name__)


class RoomDirectory(Protocol):
    """Anything that can resolve a room code (e.g. RoomManager)."""

    def get_room(self, room_code: str) -> Room | None:
        ...


def _code_of(target: Any) -> str:
    if isinstance(target, str):
        return target
    return target.code


class Participant:
    """
    A user taking part in rooms and groups.

    Args:
        user: The user (or bare username) this participant represents.
        directory: Resolves room codes for ``try_join_room``.
        transport: Media transport used outside of a room; inside a
            room the room's transport is used.
    """

    def __init__(
        self,
        user: User | str,
        directory: RoomDirectory | None = None,
        transport: Transport | None = None,
    ):
        self._user = User.coerce(user)
        self._directory = directory
        self._transport = transport

        self._placement: Placement = NO_SESSION
        self._history: list[Group] = []

        self._muted: dict[MediaKind, bool] = {MediaKind.AUDIO: False, MediaKind.VIDEO: False}
        self._streams: dict[MediaKind, MediaSource | None] = {
            MediaKind.AUDIO: None,
            MediaKind.VIDEO: None,
        }

        # Serialises this participant's own join attempts
        self._session_lock = LoopLock()

    def __repr__(self) -> str:
        where = "nowhere"
        if isinstance(self._placement, InRoom):
            where = f"{self._placement.room.code}/{self._placement.group.code}"
        return f"<Participant {self._user.username} @ {where}>"

    # =========================================================================
    # Identity & placement
    # =========================================================================

    @property
    def user_info(self) -> User:
        return self._user

    @property
    def username(self) -> str:
        return self._user.username

    @property
    def placement(self) -> Placement:
        """NoSession, or InRoom(room, group)."""
        return self._placement

    @property
    def current_room(self) -> Room | None:
        placement = self._placement
        return placement.room if isinstance(placement, InRoom) else None

    @property
    def current_group(self) -> Group | None:
        placement = self._placement
        return placement.group if isinstance(placement, InRoom) else None

    @property
    def previous_groups(self) -> list[Group]:
        """Groups this participant came from, most recent first.

        Reset on every room join.
        """
        return list(self._history)

    @property
    def is_host(self) -> bool:
        room = self.current_room
        return room is not None and room.is_host(self)

    # =========================================================================
    # Rooms
    # =========================================================================

    async def try_join_room(self, room: Room | str) -> Outcome[Room]:
        """
        Join a room by code (or Room).

        Resolves to the joined room, or fails with RoomNotFound,
        RoomClosed, AccessDenied or AlreadyInRoom.
        """
        async with self._session_lock:
            if isinstance(room, str):
                resolved = self._directory.get_room(room) if self._directory else None
                if resolved is None:
                    return Outcome.failure(RoomNotFound(room))
                room = resolved
            return await room.admit(self)

    def try_leave_room(self, room_code: Room | str) -> bool:
        """Leave the room. False if not in the room with ``room_code``."""
        room = self.current_room
        if room is None or room.code != _code_of(room_code):
            return False
        return room.evict(self)

    # =========================================================================
    # Groups
    # =========================================================================

    def create_group(self, info: GroupInfo | None = None) -> Group:
        """
        Create a new group in the current room.

        The participant is not moved into it; call ``try_join_group``.

        Raises:
            NotInRoom: If the participant is not in a room.
            RoomClosed: If the room has closed.
        """
        room = self.current_room
        if room is None:
            raise NotInRoom(self.username)
        return room.create_group(info, creator=self)

    async def try_join_group(self, group_code: Group | str) -> Outcome[Group]:
        """
        Join a group of the current room by code.

        Resolves to the joined group, or fails with GroupNotFound,
        GroupClosed, RoomClosed or NotInvited (when the room requires
        invitations).
        """
        code = _code_of(group_code)
        async with self._session_lock:
            room = self.current_room
            if room is None:
                return Outcome.failure(GroupNotFound(code))
            return await room.move(self, code)

    def try_leave_group(self, group_code: Group | str) -> bool:
        """
        Leave the current group.

        Lands on the most recent open group in the history, or the
        default group. False if not currently in the group.
        """
        room = self.current_room
        if room is None:
            return False
        return room.withdraw(self, _code_of(group_code))

    # =========================================================================
    # Mute
    # =========================================================================

    def is_muted(self, kind: MediaKind) -> bool:
        return self._muted[kind]

    @property
    def audio_muted(self) -> bool:
        return self._muted[MediaKind.AUDIO]

    @property
    def video_muted(self) -> bool:
        return self._muted[MediaKind.VIDEO]

    def mute_audio_for_all(self) -> None:
        """Mute this participant's audio for every listener."""
        self._change_mute(MediaKind.AUDIO, True)

    def unmute_audio_for_all(self) -> None:
        self._change_mute(MediaKind.AUDIO, False)

    def mute_video_for_all(self) -> None:
        """Mute this participant's video for every viewer."""
        self._change_mute(MediaKind.VIDEO, True)

    def unmute_video_for_all(self) -> None:
        self._change_mute(MediaKind.VIDEO, False)

    def _change_mute(self, kind: MediaKind, muted: bool) -> None:
        if not self._set_muted(kind, muted):
            return
        room = self.current_room
        if room is not None:
            room._notify_transport("mute_changed", self, kind)
        else:
            self.transport.mute_changed(self, kind)

    # =========================================================================
    # Media (delegated to the transport)
    # =========================================================================

    @property
    def transport(self) -> Transport:
        room = self.current_room
        if room is not None:
            return room.transport
        return self._transport or NullTransport()

    @property
    def audio_stream(self) -> MediaSource | None:
        """The audio source set with ``set_audio_stream``, or None."""
        return self._streams[MediaKind.AUDIO]

    @property
    def video_stream(self) -> MediaSource | None:
        """The video source set with ``set_video_stream``, or None."""
        return self._streams[MediaKind.VIDEO]

    async def request_audio_sources(self) -> Outcome[list[MediaSource]]:
        """Available audio sources, or a PermissionDenied failure."""
        return await self._request_sources(MediaKind.AUDIO)

    async def request_video_sources(self) -> Outcome[list[MediaSource]]:
        """Available video sources, or a PermissionDenied failure."""
        return await self._request_sources(MediaKind.VIDEO)

    async def _request_sources(self, kind: MediaKind) -> Outcome[list[MediaSource]]:
        try:
            sources = await self.transport.enumerate_sources(self, kind)
        except RTGCError as e:
            logger.info(f"{kind.value} sources unavailable for {self.username}: {e.message}")
            return Outcome.failure(e)
        return Outcome.success(list(sources))

    def set_audio_stream(self, source: MediaSource) -> bool:
        """Publish ``source`` as this participant's audio. True on success."""
        return self._set_stream(MediaKind.AUDIO, source)

    def set_video_stream(self, source: MediaSource) -> bool:
        """Publish ``source`` as this participant's video. True on success."""
        return self._set_stream(MediaKind.VIDEO, source)

    def _set_stream(self, kind: MediaKind, source: MediaSource) -> bool:
        if source.kind is not kind:
            return False
        if not self.transport.set_stream(self, source):
            return False
        self._streams[kind] = source
        return True

    def attach(self, target: Any) -> None:
        """
        Render this participant's tracks into ``target``.

        Audio and video must have been set first; the transport decides
        what to show for missing or muted media.
        """
        self.transport.attach(self, target)

    # =========================================================================
    # Internals (called by Room with its lock held)
    # =========================================================================

    def _enter(self, room: Room, group: Group) -> None:
        self._placement = InRoom(room=room, group=group)
        self._history.clear()

    def _place(self, room: Room, group: Group) -> None:
        self._placement = InRoom(room=room, group=group)

    def _exit(self) -> None:
        self._placement = NO_SESSION
        self._history.clear()

    def _push_history(self, group: Group) -> None:
        self._history.insert(0, group)

    def _drop_history(self, count: int) -> None:
        del self._history[:count]

    def _forget_group(self, group: Group) -> None:
        self._history = [g for g in self._history if g is not group]

    def _set_muted(self, kind: MediaKind, muted: bool) -> bool:
        """Set a mute flag. Returns True if it changed."""
        if self._muted[kind] == muted:
            return False
        self._muted[kind] = muted
        return True
