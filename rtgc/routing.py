"""
Routing Overlay - Derive who hears and sees whom.

    audible_set(p) = members(p.current_group) ∪ hosts(p.current_room)

Host media reaches every participant of the room regardless of group;
non-host media stays inside its group. Nothing here is stored: every
call reads the live room and group state, so a transport that re-reads
routing after ``routes_changed`` never sees a stale table.

Mute flags do not change the audible set. They are applied by the
transport when it mixes (see ``effective_sources``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rtgc.models import MediaKind

if TYPE_CHECKING:
    from rtgc.participant import Participant
    from rtgc.room import Room


def _dedupe(participants: list[Participant]) -> list[Participant]:
    seen: set[int] = set()
    result = []
    for p in participants:
        if id(p) not in seen:
            seen.add(id(p))
            result.append(p)
    return result


def audible_set(participant: Participant) -> list[Participant]:
    """Participants whose media ``participant`` should receive.

    Includes the participant itself (it is a member of its own group).
    Empty when the participant is not in a room.
    """
    room = participant.current_room
    if room is None:
        return []
    with room.lock:
        group = participant.current_group
        if group is None:
            return []
        return _dedupe(group.participants() + room.hosts)


def visible_set(participant: Participant) -> list[Participant]:
    """Video follows the same rule as audio."""
    return audible_set(participant)


def listeners_of(speaker: Participant) -> list[Participant]:
    """Participants that receive ``speaker``'s outbound media.

    A host is heard by the whole room; anyone else by its group.
    """
    room = speaker.current_room
    if room is None:
        return []
    with room.lock:
        if room.is_host(speaker):
            return room.participants()
        group = speaker.current_group
        return group.participants() if group is not None else []


def effective_sources(
    listener: Participant,
    kind: MediaKind = MediaKind.AUDIO,
) -> list[Participant]:
    """Audible (or visible) set minus the listener and muted speakers."""
    result = []
    for speaker in audible_set(listener):
        if speaker is listener:
            continue
        if speaker.is_muted(kind):
            continue
        result.append(speaker)
    return result


@dataclass(frozen=True)
class Route:
    """One listener's routing entry."""

    listener: str
    group_code: str
    sources: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "listener": self.listener,
            "group_code": self.group_code,
            "sources": list(self.sources),
        }


def routing_table(room: Room) -> dict[str, Route]:
    """Snapshot of every listener's audible set, keyed by username."""
    with room.lock:
        table = {}
        for p in room.participants():
            group = p.current_group
            table[p.user_info.username] = Route(
                listener=p.user_info.username,
                group_code=group.get_group_code() if group is not None else "",
                sources=tuple(
                    s.user_info.username for s in audible_set(p) if s is not p
                ),
            )
        return table
