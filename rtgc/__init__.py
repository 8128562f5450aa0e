"""
RTGC - Real Time Group Communication.

Rooms hold participants; every participant in a room sits in exactly
one of its groups. Group membership decides who hears and sees whom,
hosts are heard everywhere, and a media transport carries the actual
audio and video.

Public API (stable):
    RoomManager     - Creates rooms and participants, resolves room codes.
    Room            - A session: allow-list, hosts, groups, listeners.
    Group           - A sub-space of a room: members, invitations, listeners.
    Participant     - A user's handle: join/leave, mute, media sources.
    Outcome         - Returned by async operations. Check .ok / .error.
    RTGCConfig      - Code length, share URL base, invariant checks.

Components:
    transport       - Transport protocol, NullTransport, LoopbackTransport
    routing         - Audible/visible sets and routing tables
    invariants      - Structural checks run after every commit (opt-in)
    monitoring      - StructuredLogger, ActivityLog

Example:
    from rtgc import RoomManager, GroupInfo

    manager = RoomManager()
    room = manager.create_room()
    room.add_host("moderator")
    table = room.add_groups([GroupInfo(name="table 1")])[-1]

    alice = manager.create_participant("alice")
    outcome = await alice.try_join_room(room.get_room_code())
    if not outcome.ok:
        print(outcome.error, outcome.message)

    await alice.try_join_group(table.get_group_code())
    alice.try_leave_group(table.get_group_code())   # back to the default group
"""

from rtgc.config import RoomConfig, RTGCConfig
from rtgc.errors import (
    ErrorKind,
    RTGCError,
    AccessDenied,
    AlreadyInRoom,
    RoomClosed,
    RoomNotFound,
    GroupNotFound,
    GroupClosed,
    NotInvited,
    NotInRoom,
    NotAMember,
    PermissionDenied,
    DefaultGroupProtected,
    CodeSpaceExhausted,
    InvariantViolationError,
)
from rtgc.events import EventType, MembershipEvent, Subscription
from rtgc.group import Group
from rtgc.manager import RoomManager
from rtgc.models import (
    User,
    GroupInfo,
    MediaKind,
    MediaSource,
    NoSession,
    InRoom,
    NO_SESSION,
)
from rtgc.outcome import Outcome, OutcomeKind
from rtgc.participant import Participant
from rtgc.room import Room, RoomState
from rtgc.transport import BaseTransport, LoopbackTransport, NullTransport, Transport

__version__ = "0.1.0"

__all__ = [
    # Core
    "RoomManager",
    "Room",
    "RoomState",
    "Group",
    "Participant",
    "Outcome",
    "OutcomeKind",
    # Models
    "User",
    "GroupInfo",
    "MediaKind",
    "MediaSource",
    "NoSession",
    "InRoom",
    "NO_SESSION",
    # Events
    "EventType",
    "MembershipEvent",
    "Subscription",
    # Config
    "RoomConfig",
    "RTGCConfig",
    # Transport
    "Transport",
    "BaseTransport",
    "NullTransport",
    "LoopbackTransport",
    # Errors
    "ErrorKind",
    "RTGCError",
    "AccessDenied",
    "AlreadyInRoom",
    "RoomClosed",
    "RoomNotFound",
    "GroupNotFound",
    "GroupClosed",
    "NotInvited",
    "NotInRoom",
    "NotAMember",
    "PermissionDenied",
    "DefaultGroupProtected",
    "CodeSpaceExhausted",
    "InvariantViolationError",
    "__version__",
]
