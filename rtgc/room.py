"""
Room - The top-level communication session.

The Room is the single authority for membership. Every transition
(room join/leave, group join/leave, group close, room close) is applied
inside the room's critical section, after which:

    1. the transport is told that routing changed
    2. queued membership events are delivered to listeners
    3. the operation returns to its caller

so a caller that gets a result back can rely on its listeners having
already run.

State machine:
    OPEN ──close()──▶ CLOSED (terminal)

While open, the host set and the allow-list only grow; the group
collection grows and shrinks as groups are created and closed.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

from rtgc.access import AllowList
from rtgc.config import RoomConfig
from rtgc.errors import (
    AccessDenied,
    AlreadyInRoom,
    DefaultGroupProtected,
    GroupClosed,
    GroupNotFound,
    InvariantViolationError,
    NotInRoom,
    NotInvited,
    RoomClosed,
    RTGCError,
)
from rtgc.events import EventBus, EventType, ParticipantCallback, Subscription
from rtgc.group import Group
from rtgc.identifiers import CodeIssuer, CodeRegistry
from rtgc.invariants import check_room
from rtgc.models import GroupInfo, MediaKind, User
from rtgc.outcome import Outcome
from rtgc.transport.base import NullTransport, Transport

if TYPE_CHECKING:
    from rtgc.monitoring.logging import StructuredLogger
    from rtgc.participant import Participant

logger = logging.getLogger(__name__)


class RoomState(Enum):
    """Room lifecycle states."""

    OPEN = "open"
    CLOSED = "closed"


class Room:
    """
    A place for participants to communicate.

    Rooms are normally created through ``RoomManager.create_room()``,
    which also makes the room resolvable by code.

    Example:
        room = manager.create_room()
        room.add_host("moderator")
        room.add_groups([GroupInfo(name="table 1"), GroupInfo(name="table 2")])

        for p in room.participants():
            render(p)
        room.on_participant_connected(render)
        room.on_participant_disconnected(unrender)
    """

    def __init__(
        self,
        issuer: CodeIssuer,
        config: RoomConfig | None = None,
        transport: Transport | None = None,
        share_url_base: str = "https://rtgc.local",
        check_invariants: bool = False,
        audit_log: StructuredLogger | None = None,
    ):
        self.config = config or RoomConfig()
        self._issuer = issuer
        self._transport = transport or NullTransport()
        self._share_url_base = share_url_base.rstrip("/")
        self._check_invariants = check_invariants

        self._lock = threading.RLock()
        self._state = RoomState.OPEN
        self._code = issuer.issue()
        # Structured record of refused joins, stamped with this room's code
        self._audit_log = (
            audit_log.bind(room_code=self._code) if audit_log is not None else None
        )

        self._allow_list = AllowList()
        self._host_usernames: dict[str, None] = {}
        self._roster: dict[str, Participant] = {}
        self._groups: CodeRegistry[Group] = CodeRegistry(issuer)
        # Released codes of closed groups, so joins report GroupClosed
        self._closed_groups: dict[str, Group] = {}
        self._close_callbacks: list[Callable[[Room], Any]] = []

        self.events = EventBus(self._code)
        self._default_group = self._new_group(GroupInfo(name="default"), is_default=True)

        logger.info(f"Created room {self._code}")

    def __repr__(self) -> str:
        return (
            f"<Room {self._code} {self._state.value} "
            f"participants={len(self._roster)} groups={len(self._groups)}>"
        )

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def code(self) -> str:
        return self._code

    def get_room_code(self) -> str:
        """Unique room code, stable for the room's lifetime."""
        return self._code

    def get_share_url(self) -> str:
        """Sharable URL that lets users join this room."""
        return f"{self._share_url_base}/join/{self._code}"

    @property
    def lock(self) -> threading.RLock:
        """The room's critical section. Reentrant."""
        return self._lock

    @property
    def state(self) -> RoomState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is RoomState.CLOSED

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def default_group(self) -> Group:
        """The group every participant is placed in on joining."""
        return self._default_group

    def participants(self) -> list[Participant]:
        """Everyone currently in the room."""
        with self._lock:
            return list(self._roster.values())

    def groups(self) -> list[Group]:
        """All open groups, default group first."""
        with self._lock:
            return self._groups.values()

    def get_group(self, group_code: str) -> Group | None:
        with self._lock:
            return self._groups.resolve(group_code)

    @property
    def hosts(self) -> list[Participant]:
        """Current participants whose username is registered as a host."""
        with self._lock:
            return [
                p for name, p in self._roster.items()
                if name in self._host_usernames
            ]

    def host_usernames(self) -> list[str]:
        with self._lock:
            return list(self._host_usernames)

    def is_host(self, participant: Participant) -> bool:
        username = participant.user_info.username
        with self._lock:
            return (
                username in self._host_usernames
                and self._roster.get(username) is participant
            )

    def allowed_users(self) -> list[User]:
        """Users allowed in the room. Empty means anyone may join."""
        return self._allow_list.users()

    def is_allowed(self, user: User | str) -> bool:
        return self._allow_list.is_allowed(user)

    def has_participant(self, participant: Participant) -> bool:
        with self._lock:
            return self._roster.get(participant.user_info.username) is participant

    # =========================================================================
    # Configuration (monotonic)
    # =========================================================================

    def add_host(self, username: User | str) -> None:
        """
        Register ``username`` as a host.

        A participant with that username, now or later, is heard and seen
        by everyone in the room while staying an ordinary group member.
        """
        username = User.coerce(username).username
        with self._lock:
            self._ensure_open("add_host")
            if username in self._host_usernames:
                return
            self._host_usernames[username] = None
            self._verify()
        logger.info(f"Registered host {username} in room {self._code}")
        self._after_commit()

    def add_users_to_allowed_users(self, users: Iterable[User | str]) -> list[User]:
        """
        Add ``users`` to the allow-list.

        Already-admitted participants are never evicted.

        Returns:
            Every allowed user after the update.
        """
        with self._lock:
            self._ensure_open("add_users_to_allowed_users")
            return self._allow_list.add_users(users)

    def add_groups(self, group_infos: Iterable[GroupInfo | str]) -> list[Group]:
        """
        Create a group per descriptor.

        Args:
            group_infos: GroupInfo descriptors (or bare names).

        Returns:
            All groups of the room, including pre-existing ones.
        """
        with self._lock:
            self._ensure_open("add_groups")
            for info in group_infos:
                if isinstance(info, str):
                    info = GroupInfo(name=info)
                self._new_group(info)
            return self._groups.values()

    def create_group(
        self,
        info: GroupInfo | None = None,
        creator: Participant | None = None,
    ) -> Group:
        """Create a single empty group. Nobody is moved into it."""
        with self._lock:
            self._ensure_open("create_group")
            if creator is not None and not self.has_participant(creator):
                raise NotInRoom(creator.user_info.username, self._code)
            group = self._new_group(info or GroupInfo())
            group.creator = creator
            return group

    def mute_participants(self) -> None:
        """Mute the audio of every participant except the hosts."""
        with self._lock:
            self._ensure_open("mute_participants")
            muted = []
            for name, p in self._roster.items():
                if name in self._host_usernames:
                    continue
                if p._set_muted(MediaKind.AUDIO, True):
                    muted.append(p)
        for p in muted:
            self._notify_transport("mute_changed", p, MediaKind.AUDIO)
        logger.info(f"Muted {len(muted)} participants in room {self._code}")

    # =========================================================================
    # Listeners
    # =========================================================================

    def on_participant_connected(self, callback: ParticipantCallback) -> Subscription:
        """Call ``callback(participant)`` for every participant that joins.

        Participants already in the room are not replayed; iterate
        ``participants()`` first.
        """
        with self._lock:
            self._ensure_open("on_participant_connected")
            return self.events.room_listeners.subscribe(
                EventType.PARTICIPANT_CONNECTED, callback
            )

    def on_participant_disconnected(self, callback: ParticipantCallback) -> Subscription:
        """Call ``callback(participant)`` for every participant that leaves."""
        with self._lock:
            self._ensure_open("on_participant_disconnected")
            return self.events.room_listeners.subscribe(
                EventType.PARTICIPANT_DISCONNECTED, callback
            )

    def on_closed(self, callback: Callable[[Room], Any]) -> None:
        """Call ``callback(room)`` once, after the room has closed."""
        with self._lock:
            self._ensure_open("on_closed")
            self._close_callbacks.append(callback)

    # =========================================================================
    # Membership transitions (driven by Participant)
    # =========================================================================

    async def admit(self, participant: Participant) -> Outcome[Room]:
        """
        Admit ``participant`` into the default group.

        Fails with AccessDenied, AlreadyInRoom or RoomClosed.
        """
        username = participant.user_info.username
        try:
            with self._lock:
                self._check_admission(participant)
            await self._transport.connect(participant, self)
        except InvariantViolationError:
            raise
        except RTGCError as e:
            logger.info(f"Room {self._code} refused {username}: {e.message}")
            self._audit_refusal("join_room", participant, e)
            return Outcome.failure(e)

        try:
            with self._lock:
                # State may have moved while the transport was negotiating
                self._check_admission(participant)
                self._roster[username] = participant
                self._default_group._members[username] = participant
                participant._enter(self, self._default_group)
                self.events.record(
                    self.events.room_listeners, EventType.PARTICIPANT_CONNECTED, participant
                )
                self.events.record(
                    self._default_group.listeners,
                    EventType.PARTICIPANT_JOINED_GROUP,
                    participant,
                    self._default_group.code,
                )
                self._verify()
        except InvariantViolationError:
            raise
        except RTGCError as e:
            logger.info(f"Room {self._code} refused {username}: {e.message}")
            self._audit_refusal("join_room", participant, e)
            self._notify_transport("disconnect", participant, self)
            return Outcome.failure(e)

        logger.info(f"{username} joined room {self._code}")
        self._after_commit()
        return Outcome.success(self)

    async def move(self, participant: Participant, group_code: str) -> Outcome[Group]:
        """
        Move ``participant`` into the group with ``group_code``.

        The current group is pushed onto the participant's history.
        Concurrent moves into the same group are applied one at a time.
        """
        try:
            with self._lock:
                group = self._check_move(participant, group_code)
                if group is participant.current_group:
                    return Outcome.success(group)

            async with group._join_lock:
                await self._transport.reroute(participant, group)
                with self._lock:
                    group = self._check_move(participant, group_code)
                    source = participant.current_group
                    if group is source:
                        return Outcome.success(group)
                    participant._push_history(source)
                    self._relocate(participant, source, group)
                    self._verify()
        except InvariantViolationError:
            raise
        except RTGCError as e:
            logger.info(
                f"{participant.user_info.username} could not join group "
                f"{group_code}: {e.message}"
            )
            self._audit_refusal("join_group", participant, e)
            return Outcome.failure(e)

        self._after_commit()
        return Outcome.success(group)

    def withdraw(self, participant: Participant, group_code: str) -> bool:
        """
        Take ``participant`` out of its current group.

        The participant lands on the most recent still-open group in its
        history, or the default group. Returns False if the participant
        is not in the group, or if it is in the default group with
        nowhere else to go.
        """
        with self._lock:
            if self.closed or not self.has_participant(participant):
                return False
            group = participant.current_group
            if group is None or group.code != group_code:
                return False
            landing, consumed = self._landing_for(participant, leaving=group)
            if landing is group:
                return False
            participant._drop_history(consumed)
            self._relocate(participant, group, landing)
            self._verify()
        self._after_commit()
        return True

    def evict(self, participant: Participant) -> bool:
        """Remove ``participant`` from the room. False if not present."""
        with self._lock:
            if not self.has_participant(participant):
                return False
            self._evict_locked(participant)
            self._verify()
        logger.info(f"{participant.user_info.username} left room {self._code}")
        self._notify_transport("disconnect", participant, self)
        self._after_commit()
        return True

    def close_group(self, group: Group) -> None:
        """Close ``group``; see ``Group.close``."""
        with self._lock:
            if group.closed:
                return
            if group.room is not self:
                raise GroupNotFound(group.code, self._code)
            if group.is_default:
                raise DefaultGroupProtected(group.code)
            self._close_group_locked(group)
            self._verify()
        self._after_commit()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """
        Close the room.

        Every participant is removed (as if each had left), every group
        including the default one is closed, and the room code is
        released. Closing twice does nothing.
        """
        with self._lock:
            if self.closed:
                return
            evicted = list(self._roster.values())
            for p in evicted:
                self._evict_locked(p)
            groups = self._groups.values()
            for g in groups:
                g._invited.clear()
                g._closed = True
                self._groups.release(g.code)
            self._closed_groups.clear()
            self._state = RoomState.CLOSED
            self._issuer.release(self._code)
            callbacks = list(self._close_callbacks)
            self._close_callbacks.clear()

        for p in evicted:
            self._notify_transport("disconnect", p, self)
        self._after_commit()

        for g in groups:
            g.listeners.clear()
        self.events.close()

        for cb in callbacks:
            try:
                cb(self)
            except Exception as e:
                logger.error(f"Room close callback error for {self._code}: {e}")

        logger.info(f"Closed room {self._code} ({len(evicted)} participants evicted)")

    # =========================================================================
    # Internals (call with self._lock held)
    # =========================================================================

    def _ensure_open(self, operation: str) -> None:
        if self._state is RoomState.CLOSED:
            raise RoomClosed(self._code, operation)

    def _new_group(self, info: GroupInfo, is_default: bool = False) -> Group:
        code = self._groups.reserve()
        self._closed_groups.pop(code, None)
        group = Group(code, self, info, is_default=is_default)
        self._groups.bind(code, group)
        logger.debug(f"Created group {code} in room {self._code}")
        return group

    def _check_admission(self, participant: Participant) -> None:
        username = participant.user_info.username
        self._ensure_open("join")
        current = participant.current_room
        if current is not None:
            raise AlreadyInRoom(username, current.code)
        if username in self._roster:
            raise AlreadyInRoom(username, self._code)
        if not self._allow_list.is_allowed(participant.user_info):
            raise AccessDenied(username, self._code)

    def _check_move(self, participant: Participant, group_code: str) -> Group:
        username = participant.user_info.username
        self._ensure_open("join_group")
        if not self.has_participant(participant):
            raise NotInRoom(username, self._code)
        if group_code in self._closed_groups:
            raise GroupClosed(group_code)
        group = self._groups.resolve(group_code)
        if group is None:
            raise GroupNotFound(group_code, self._code)
        if group.closed:
            raise GroupClosed(group_code)
        if (
            self.config.require_invitation
            and not group.is_default
            and group is not participant.current_group
            and group.creator is not participant
            and username not in group._invited
        ):
            raise NotInvited(username, group_code)
        return group

    def _landing_for(self, participant: Participant, leaving: Group) -> tuple[Group, int]:
        """
        Where ``participant`` lands when it leaves ``leaving``.

        Returns the first open group of this room in the history other
        than ``leaving`` (or the default group), and how many history
        entries the move consumes. The history itself is not touched.
        """
        history = participant.previous_groups
        for depth, candidate in enumerate(history, start=1):
            if candidate is leaving or candidate.closed or candidate.room is not self:
                continue
            return candidate, depth
        return self._default_group, len(history)

    def _relocate(self, participant: Participant, source: Group, target: Group) -> None:
        username = participant.user_info.username
        source._members.pop(username, None)
        target._invited.pop(username, None)
        target._members[username] = participant
        participant._place(self, target)
        self.events.record(
            source.listeners, EventType.PARTICIPANT_LEFT_GROUP, participant, source.code
        )
        self.events.record(
            target.listeners, EventType.PARTICIPANT_JOINED_GROUP, participant, target.code
        )
        logger.debug(f"{username} moved {source.code} -> {target.code} in room {self._code}")

    def _evict_locked(self, participant: Participant) -> None:
        username = participant.user_info.username
        group = participant.current_group
        if group is None:
            raise InvariantViolationError(
                "room.membership.single_group",
                f"{username} is in room {self._code} without a group",
            )
        group._members.pop(username, None)
        del self._roster[username]
        for g in self._groups.values():
            g._invited.pop(username, None)
        participant._exit()
        self.events.record(
            group.listeners, EventType.PARTICIPANT_LEFT_GROUP, participant, group.code
        )
        self.events.record(
            self.events.room_listeners, EventType.PARTICIPANT_DISCONNECTED, participant
        )

    def _close_group_locked(self, group: Group) -> None:
        members = list(group._members.values())
        for p in members:
            landing, consumed = self._landing_for(p, leaving=group)
            p._drop_history(consumed)
            self._relocate(p, group, landing)
        group._invited.clear()
        group._closed = True
        for p in self._roster.values():
            p._forget_group(group)
        self._groups.release(group.code)
        self._closed_groups[group.code] = group
        logger.info(
            f"Closed group {group.code} in room {self._code} "
            f"({len(members)} members returned)"
        )

    def _audit_refusal(self, operation: str, participant: Participant, error: RTGCError) -> None:
        if self._audit_log is not None:
            self._audit_log.membership_error(
                error, operation=operation, username=participant.user_info.username
            )

    def _verify(self) -> None:
        if not self._check_invariants:
            return
        violations = check_room(self)
        if violations:
            first = violations[0]
            raise InvariantViolationError(
                first.invariant_id,
                first.message,
                {"room_code": self._code, "violations": [v.message for v in violations]},
            )

    # =========================================================================
    # Post-commit (call without self._lock held)
    # =========================================================================

    def _notify_transport(self, method: str, *args: Any) -> None:
        try:
            getattr(self._transport, method)(*args)
        except Exception as e:
            logger.error(f"Transport {self._transport.name}.{method} failed: {e}")

    def _after_commit(self) -> None:
        self._notify_transport("routes_changed", self)
        self.events.flush()
