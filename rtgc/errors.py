"""
RTGC Errors - Membership and media error types.

Error hierarchy:
    RTGCError (base)
    ├── AccessDenied           (allow-list rejection)
    ├── AlreadyInRoom
    ├── RoomClosed
    ├── RoomNotFound
    ├── GroupNotFound
    ├── GroupClosed
    ├── NotInvited             (only with require_invitation)
    ├── NotInRoom
    ├── NotAMember             (surfaced as False by leave operations)
    ├── PermissionDenied       (media source request)
    ├── DefaultGroupProtected
    ├── CodeSpaceExhausted     (fatal configuration error)
    └── InvariantViolationError (fatal, programming error)

Every error carries an ErrorKind so that asynchronous operations can
report it through an Outcome instead of raising.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Enumerated failure kinds."""

    ACCESS_DENIED = "access_denied"
    ALREADY_IN_ROOM = "already_in_room"
    ROOM_CLOSED = "room_closed"
    ROOM_NOT_FOUND = "room_not_found"
    GROUP_NOT_FOUND = "group_not_found"
    GROUP_CLOSED = "group_closed"
    NOT_INVITED = "not_invited"
    NOT_IN_ROOM = "not_in_room"
    NOT_A_MEMBER = "not_a_member"
    PERMISSION_DENIED = "permission_denied"
    DEFAULT_GROUP_PROTECTED = "default_group_protected"
    CODE_SPACE_EXHAUSTED = "code_space_exhausted"
    INVARIANT_VIOLATION = "invariant_violation"

    @property
    def retryable(self) -> bool:
        """Whether a caller may reasonably retry after this failure."""
        return self in (ErrorKind.PERMISSION_DENIED, ErrorKind.NOT_INVITED)


class RTGCError(Exception):
    """Base error for all RTGC errors."""

    kind: ErrorKind = ErrorKind.INVARIANT_VIOLATION

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AccessDenied(RTGCError):
    """Raised when a user is not on a room's allow-list."""

    kind = ErrorKind.ACCESS_DENIED

    def __init__(self, username: str, room_code: str):
        super().__init__(
            f"User {username!r} is not allowed in room {room_code}",
            {"username": username, "room_code": room_code},
        )
        self.username = username
        self.room_code = room_code


class AlreadyInRoom(RTGCError):
    """Raised when a participant tries to join while already in a room."""

    kind = ErrorKind.ALREADY_IN_ROOM

    def __init__(self, username: str, room_code: str):
        super().__init__(
            f"Participant {username!r} is already in room {room_code}",
            {"username": username, "room_code": room_code},
        )
        self.username = username
        self.room_code = room_code


class RoomClosed(RTGCError):
    """Raised for any mutation on a closed room."""

    kind = ErrorKind.ROOM_CLOSED

    def __init__(self, room_code: str, operation: str = ""):
        msg = f"Room {room_code} is closed"
        if operation:
            msg = f"{msg} (attempted {operation})"
        super().__init__(msg, {"room_code": room_code, "operation": operation})
        self.room_code = room_code
        self.operation = operation


class RoomNotFound(RTGCError):
    """Raised when a room code does not resolve."""

    kind = ErrorKind.ROOM_NOT_FOUND

    def __init__(self, room_code: str):
        super().__init__(f"No room with code {room_code!r}", {"room_code": room_code})
        self.room_code = room_code


class GroupNotFound(RTGCError):
    """Raised when a group code does not resolve in the participant's room."""

    kind = ErrorKind.GROUP_NOT_FOUND

    def __init__(self, group_code: str, room_code: str | None = None):
        where = f" in room {room_code}" if room_code else ""
        super().__init__(
            f"No group with code {group_code!r}{where}",
            {"group_code": group_code, "room_code": room_code},
        )
        self.group_code = group_code
        self.room_code = room_code


class GroupClosed(RTGCError):
    """Raised when joining or inviting into a closed group."""

    kind = ErrorKind.GROUP_CLOSED

    def __init__(self, group_code: str):
        super().__init__(f"Group {group_code} is closed", {"group_code": group_code})
        self.group_code = group_code


class NotInvited(RTGCError):
    """Raised when a room gates group joins on invitation and none exists."""

    kind = ErrorKind.NOT_INVITED

    def __init__(self, username: str, group_code: str):
        super().__init__(
            f"Participant {username!r} has not been invited to group {group_code}",
            {"username": username, "group_code": group_code},
        )
        self.username = username
        self.group_code = group_code


class NotInRoom(RTGCError):
    """Raised when an operation needs the participant to be in a room."""

    kind = ErrorKind.NOT_IN_ROOM

    def __init__(self, username: str, room_code: str | None = None):
        where = f"room {room_code}" if room_code else "any room"
        super().__init__(
            f"Participant {username!r} is not in {where}",
            {"username": username, "room_code": room_code},
        )
        self.username = username
        self.room_code = room_code


class NotAMember(RTGCError):
    """
    Participant is not a member of the given scope.

    Exported as an error kind for transports and callers. The core
    itself never raises it: leave operations report a non-member as
    ``False``.
    """

    kind = ErrorKind.NOT_A_MEMBER

    def __init__(self, username: str, scope_code: str):
        super().__init__(
            f"Participant {username!r} is not a member of {scope_code}",
            {"username": username, "scope_code": scope_code},
        )
        self.username = username
        self.scope_code = scope_code


class PermissionDenied(RTGCError):
    """Raised by the transport when media capture permission is refused."""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, username: str, media_kind: str):
        super().__init__(
            f"Permission denied for {media_kind} sources of {username!r}",
            {"username": username, "media_kind": media_kind},
        )
        self.username = username
        self.media_kind = media_kind


class DefaultGroupProtected(RTGCError):
    """Raised when closing a room's default group directly."""

    kind = ErrorKind.DEFAULT_GROUP_PROTECTED

    def __init__(self, group_code: str):
        super().__init__(
            f"Group {group_code} is the default group and cannot be closed",
            {"group_code": group_code},
        )
        self.group_code = group_code


class CodeSpaceExhausted(RTGCError):
    """
    Raised when no free code can be issued.

    This is a configuration error: the code length or alphabet is too
    small for the number of live rooms and groups.
    """

    kind = ErrorKind.CODE_SPACE_EXHAUSTED

    def __init__(self, in_use: int, capacity: int):
        super().__init__(
            f"Code space exhausted ({in_use} of {capacity} codes in use)",
            {"in_use": in_use, "capacity": capacity},
        )
        self.in_use = in_use
        self.capacity = capacity


class InvariantViolationError(RTGCError):
    """
    Raised when a structural membership invariant is broken.

    This indicates a programming error and is never converted into an
    Outcome.
    """

    kind = ErrorKind.INVARIANT_VIOLATION

    def __init__(
        self,
        invariant_id: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(f"[{invariant_id}] {message}", details)
        self.invariant_id = invariant_id


ERRORS_BY_KIND: dict[ErrorKind, type[RTGCError]] = {
    cls.kind: cls
    for cls in (
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
}
