"""
Membership Invariants - structural rules every room must satisfy.

    Membership:
        - room.membership.single_group
        - room.membership.roster_consistent
        - room.default_group.present
    Groups:
        - group.invited.disjoint
    History:
        - participant.history.open_groups
    Routing:
        - room.hosts.audible

A violation is a programming error. Rooms created with
``check_invariants=True`` evaluate these after every commit and raise
InvariantViolationError; tests call ``check_room`` directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from rtgc import routing

if TYPE_CHECKING:
    from rtgc.room import Room


@dataclass
class InvariantViolation:
    """Record of an invariant violation."""

    invariant_id: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"invariant_id": self.invariant_id, "message": self.message}


@runtime_checkable
class RoomInvariant(Protocol):
    """
    Protocol for room invariants.

    Each invariant:
    - Has a unique, namespaced ID
    - Has a description
    - Returns violations (empty when it holds)
    """

    @property
    def id(self) -> str:
        ...

    @property
    def description(self) -> str:
        ...

    def check(self, room: Room) -> list[InvariantViolation]:
        ...


class BaseInvariant(ABC):
    """Base class for room invariants."""

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    def check(self, room: Room) -> list[InvariantViolation]:
        ...

    def _violation(self, message: str) -> InvariantViolation:
        return InvariantViolation(invariant_id=self.id, message=message)


# =============================================================================
# Membership
# =============================================================================

class SingleGroupInvariant(BaseInvariant):
    """Every in-room participant is a member of exactly one open group of the room."""

    @property
    def id(self) -> str:
        return "room.membership.single_group"

    @property
    def description(self) -> str:
        return "Every participant in a room belongs to exactly one of its groups"

    def check(self, room: Room) -> list[InvariantViolation]:
        violations = []
        groups = room.groups()
        for p in room.participants():
            containing = [g for g in groups if g.is_member(p)]
            if len(containing) != 1:
                violations.append(self._violation(
                    f"{p.username} is a member of {len(containing)} groups"
                ))
                continue
            if p.current_group is not containing[0]:
                violations.append(self._violation(
                    f"{p.username} resides in {containing[0].code} "
                    f"but reports {p.current_group!r}"
                ))
        return violations


class RosterConsistencyInvariant(BaseInvariant):
    """Group members are exactly the room roster, and point back at the room."""

    @property
    def id(self) -> str:
        return "room.membership.roster_consistent"

    @property
    def description(self) -> str:
        return "Group members and the room roster agree"

    def check(self, room: Room) -> list[InvariantViolation]:
        violations = []
        roster = {id(p) for p in room.participants()}
        members = set()
        for g in room.groups():
            for p in g.participants():
                members.add(id(p))
                if id(p) not in roster:
                    violations.append(self._violation(
                        f"{p.username} is in group {g.code} but not in room {room.code}"
                    ))
        for p in room.participants():
            if p.current_room is not room:
                violations.append(self._violation(
                    f"{p.username} is on the roster of {room.code} but reports "
                    f"{p.current_room!r}"
                ))
            if id(p) not in members:
                violations.append(self._violation(
                    f"{p.username} is in room {room.code} without a group"
                ))
        return violations


class DefaultGroupInvariant(BaseInvariant):
    """An open room always has its open default group."""

    @property
    def id(self) -> str:
        return "room.default_group.present"

    @property
    def description(self) -> str:
        return "An open room keeps its default group open"

    def check(self, room: Room) -> list[InvariantViolation]:
        if room.closed:
            return []
        default = room.default_group
        if default.closed or default not in room.groups():
            return [self._violation(f"Room {room.code} lost its default group")]
        return []


# =============================================================================
# Groups & history
# =============================================================================

class InvitedDisjointInvariant(BaseInvariant):
    """No participant is both invited to and a member of a group."""

    @property
    def id(self) -> str:
        return "group.invited.disjoint"

    @property
    def description(self) -> str:
        return "Invited and member sets of a group are disjoint"

    def check(self, room: Room) -> list[InvariantViolation]:
        violations = []
        for g in room.groups():
            members = {p.username for p in g.participants()}
            for p in g.invited_participants():
                if p.username in members:
                    violations.append(self._violation(
                        f"{p.username} is both invited to and a member of {g.code}"
                    ))
        return violations


class OpenHistoryInvariant(BaseInvariant):
    """Previous-group history never refers to a closed group."""

    @property
    def id(self) -> str:
        return "participant.history.open_groups"

    @property
    def description(self) -> str:
        return "History entries refer to open groups of the current room"

    def check(self, room: Room) -> list[InvariantViolation]:
        violations = []
        for p in room.participants():
            for g in p.previous_groups:
                if g.closed or g.room is not room:
                    violations.append(self._violation(
                        f"{p.username} history holds {g.code} which is closed or foreign"
                    ))
        return violations


# =============================================================================
# Routing
# =============================================================================

class HostsAudibleInvariant(BaseInvariant):
    """Every host is in every participant's audible set."""

    @property
    def id(self) -> str:
        return "room.hosts.audible"

    @property
    def description(self) -> str:
        return "Hosts are audible to every participant regardless of group"

    def check(self, room: Room) -> list[InvariantViolation]:
        violations = []
        hosts = room.hosts
        if not hosts:
            return violations
        for p in room.participants():
            audible = {id(a) for a in routing.audible_set(p)}
            for h in hosts:
                if id(h) not in audible:
                    violations.append(self._violation(
                        f"Host {h.username} is not audible to {p.username}"
                    ))
        return violations


ROOM_INVARIANTS: list[BaseInvariant] = [
    SingleGroupInvariant(),
    RosterConsistencyInvariant(),
    DefaultGroupInvariant(),
    InvitedDisjointInvariant(),
    OpenHistoryInvariant(),
    HostsAudibleInvariant(),
]


def check_room(
    room: Room,
    invariants: list[BaseInvariant] | None = None,
) -> list[InvariantViolation]:
    """Evaluate ``invariants`` (default: all) against ``room``."""
    violations = []
    with room.lock:
        for invariant in invariants or ROOM_INVARIANTS:
            violations.extend(invariant.check(room))
    return violations


def list_invariants() -> list[dict[str, str]]:
    return [{"id": inv.id, "description": inv.description} for inv in ROOM_INVARIANTS]
