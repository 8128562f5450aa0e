"""
Value types shared across RTGC.

User and GroupInfo come from the caller, MediaSource values from the
transport. Placement is the tagged variant describing where a
participant currently is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from rtgc.group import Group
    from rtgc.room import Room


@dataclass(frozen=True)
class User:
    """Opaque user identity. Equality is by username."""

    username: str

    def __post_init__(self) -> None:
        if not self.username:
            raise ValueError("username must be a non-empty string")

    @classmethod
    def coerce(cls, value: User | str) -> User:
        """Accept either a User or a bare username."""
        if isinstance(value, User):
            return value
        return cls(value)


@dataclass(frozen=True)
class GroupInfo:
    """Descriptor for batch group creation (Room.add_groups).

    Attributes:
        name: Display name for the group.
        metadata: Free-form application data carried on the group.
    """

    name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


class MediaKind(Enum):
    """Kinds of media a participant can publish."""

    AUDIO = "audio"
    VIDEO = "video"


@dataclass(frozen=True)
class MediaSource:
    """A capture source enumerated by the transport.

    The core never looks inside a source; it only records whether the
    participant has one set.
    """

    source_id: str
    kind: MediaKind
    label: str = ""


# =============================================================================
# Placement
# =============================================================================

@dataclass(frozen=True)
class NoSession:
    """Participant is not in any room."""

    @property
    def in_room(self) -> bool:
        return False


@dataclass(frozen=True)
class InRoom:
    """Participant is in ``room`` and resides in ``group``.

    A participant in a room always has a group, so both fields are
    required.
    """

    room: Room
    group: Group

    @property
    def in_room(self) -> bool:
        return True


Placement = Union[NoSession, InRoom]

NO_SESSION = NoSession()
