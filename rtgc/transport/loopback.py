"""
Loopback Transport - In-process transport for tests and local demos.

Features:
    - Per-listener mixing of pushed PCM frames along the routing overlay
    - Configurable capture sources
    - Call recording
    - Permission-denial and latency injection
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, MutableMapping

import numpy as np

from rtgc import routing
from rtgc.errors import PermissionDenied
from rtgc.models import MediaKind, MediaSource
from rtgc.transport.base import BaseTransport

if TYPE_CHECKING:
    from rtgc.group import Group
    from rtgc.participant import Participant
    from rtgc.room import Room


@dataclass
class CallRecord:
    """Record of a transport call."""

    method: str
    username: str | None = None
    args: tuple = field(default_factory=tuple)
    timestamp: float = field(default_factory=time.time)


@dataclass
class LoopbackConfig:
    """Configuration for the loopback transport."""

    # Samples per silent frame returned by mix_for
    frame_size: int = 480

    # Sources offered to every participant
    audio_sources: tuple[str, ...] = ("Default Microphone",)
    video_sources: tuple[str, ...] = ("Default Camera",)

    # Latency simulation for connect/reroute
    latency_ms: float = 0.0

    def __post_init__(self):
        if self.frame_size <= 0:
            raise ValueError(f"frame_size must be > 0, got {self.frame_size}")
        if self.latency_ms < 0:
            raise ValueError(f"latency_ms must be >= 0, got {self.latency_ms}")


class LoopbackTransport(BaseTransport):
    """
    Transport that keeps all media in memory.

    Example:
        transport = LoopbackTransport()
        manager = RoomManager(transport=transport)
        ...
        transport.push_audio(alice, np.full(480, 0.1, dtype=np.float32))
        mixed = transport.mix_for(bob)   # alice's frame if bob can hear her

        # Failure injection
        transport.deny_permission("bob", MediaKind.VIDEO)
    """

    def __init__(self, config: LoopbackConfig | None = None):
        self.config = config or LoopbackConfig()
        self._calls: list[CallRecord] = []
        self._denied: set[tuple[str, MediaKind]] = set()
        self._frames: dict[str, np.ndarray] = {}
        self._published: dict[tuple[str, MediaKind], MediaSource] = {}
        self._routes: dict[str, dict[str, routing.Route]] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "loopback"

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def calls(self) -> list[CallRecord]:
        with self._lock:
            return list(self._calls)

    def calls_to(self, method: str) -> list[CallRecord]:
        return [c for c in self.calls if c.method == method]

    def last_routes(self, room_code: str) -> dict[str, routing.Route]:
        """Routing table captured at the most recent ``routes_changed``."""
        with self._lock:
            return dict(self._routes.get(room_code, {}))

    def published(self, participant: Participant, kind: MediaKind) -> MediaSource | None:
        with self._lock:
            return self._published.get((participant.username, kind))

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
            self._denied.clear()
            self._frames.clear()
            self._published.clear()
            self._routes.clear()

    # =========================================================================
    # Failure injection
    # =========================================================================

    def deny_permission(self, username: str, kind: MediaKind | None = None) -> None:
        """Make source enumeration for ``username`` fail with PermissionDenied."""
        kinds = [kind] if kind else list(MediaKind)
        with self._lock:
            for k in kinds:
                self._denied.add((username, k))

    def grant_permission(self, username: str, kind: MediaKind | None = None) -> None:
        kinds = [kind] if kind else list(MediaKind)
        with self._lock:
            for k in kinds:
                self._denied.discard((username, k))

    # =========================================================================
    # Transport contract
    # =========================================================================

    def _record(self, method: str, participant: Participant | None, *args: Any) -> None:
        with self._lock:
            self._calls.append(CallRecord(
                method=method,
                username=participant.username if participant is not None else None,
                args=args,
            ))

    async def _simulate_latency(self) -> None:
        if self.config.latency_ms > 0:
            await asyncio.sleep(self.config.latency_ms / 1000)

    async def connect(self, participant: Participant, room: Room) -> None:
        self._record("connect", participant, room.code)
        await self._simulate_latency()

    async def reroute(self, participant: Participant, group: Group) -> None:
        self._record("reroute", participant, group.code)
        await self._simulate_latency()

    def disconnect(self, participant: Participant, room: Room) -> None:
        self._record("disconnect", participant, room.code)
        with self._lock:
            self._frames.pop(participant.username, None)

    def routes_changed(self, room: Room) -> None:
        table = routing.routing_table(room)
        self._record("routes_changed", None, room.code)
        with self._lock:
            if room.closed:
                self._routes.pop(room.code, None)
            else:
                self._routes[room.code] = table

    def mute_changed(self, participant: Participant, kind: MediaKind) -> None:
        self._record("mute_changed", participant, kind.value, participant.is_muted(kind))

    async def enumerate_sources(
        self, participant: Participant, kind: MediaKind
    ) -> list[MediaSource]:
        self._record("enumerate_sources", participant, kind.value)
        with self._lock:
            denied = (participant.username, kind) in self._denied
        if denied:
            raise PermissionDenied(participant.username, kind.value)

        labels = (
            self.config.audio_sources if kind is MediaKind.AUDIO else self.config.video_sources
        )
        return [
            MediaSource(source_id=f"{kind.value}-{i}", kind=kind, label=label)
            for i, label in enumerate(labels)
        ]

    def set_stream(self, participant: Participant, source: MediaSource) -> bool:
        self._record("set_stream", participant, source.source_id)
        with self._lock:
            if (participant.username, source.kind) in self._denied:
                return False
            self._published[(participant.username, source.kind)] = source
        return True

    def attach(self, participant: Participant, target: Any) -> None:
        """Describe the participant's tracks into a mapping (a render tile)."""
        self._record("attach", participant)
        if not isinstance(target, MutableMapping):
            raise TypeError("loopback attach target must be a mutable mapping")
        target["id"] = participant.username
        target["audio"] = self.published(participant, MediaKind.AUDIO)
        target["video"] = self.published(participant, MediaKind.VIDEO)
        target["audio_muted"] = participant.audio_muted or target["audio"] is None
        target["video_muted"] = participant.video_muted or target["video"] is None

    # =========================================================================
    # Media
    # =========================================================================

    def push_audio(self, participant: Participant, pcm: np.ndarray) -> bool:
        """
        Publish one frame of audio for ``participant``.

        Returns False if the participant has no audio stream set.
        """
        if participant.audio_stream is None:
            return False
        frame = np.asarray(pcm, dtype=np.float32).reshape(-1)
        with self._lock:
            self._frames[participant.username] = frame
        return True

    def mix_for(self, listener: Participant) -> np.ndarray:
        """
        Mix what ``listener`` should hear right now.

        Sums the latest frames of every unmuted speaker in the listener's
        audible set (excluding the listener), zero-padded to the longest
        frame and clipped to [-1, 1].
        """
        speakers = routing.effective_sources(listener, MediaKind.AUDIO)
        with self._lock:
            frames = [
                self._frames[s.username] for s in speakers if s.username in self._frames
            ]
        if not frames:
            return np.zeros(self.config.frame_size, dtype=np.float32)

        length = max(len(f) for f in frames)
        mixed = np.zeros(length, dtype=np.float32)
        for frame in frames:
            mixed[:len(frame)] += frame
        return np.clip(mixed, -1.0, 1.0)
