"""
Tests for Participant: placement, mute, media sources and concurrency.
"""

import asyncio

import pytest

from rtgc import (
    ErrorKind,
    InRoom,
    LoopbackTransport,
    MediaKind,
    MediaSource,
    NO_SESSION,
    Participant,
    RoomManager,
    RTGCConfig,
    User,
)
from rtgc.transport import LoopbackConfig


class TestIdentity:
    """Tests for participant identity and placement."""

    def test_user_info(self):
        p = Participant("alice")
        assert p.user_info == User("alice")
        assert p.username == "alice"

    def test_empty_username_rejected(self):
        with pytest.raises(ValueError):
            User("")

    def test_users_equal_by_username(self):
        assert User("alice") == User("alice")
        assert User("alice") != User("bob")

    def test_placement_variants(self, room, join, manager):
        outsider = manager.create_participant("outsider")
        alice, = join(room, "alice")

        assert outsider.placement is NO_SESSION
        assert not outsider.placement.in_room
        assert outsider.current_room is None
        assert outsider.current_group is None

        assert isinstance(alice.placement, InRoom)
        assert alice.placement.room is room
        assert alice.placement.group is room.default_group

    def test_join_by_code_without_directory(self, room):
        p = Participant("alice")
        outcome = asyncio.run(p.try_join_room(room.get_room_code()))
        assert outcome.error is ErrorKind.ROOM_NOT_FOUND


class TestMute:
    """Tests for mute/unmute for all."""

    def test_mute_and_unmute_audio(self, room, join, transport):
        alice, = join(room, "alice")

        alice.mute_audio_for_all()
        assert alice.audio_muted
        assert alice.is_muted(MediaKind.AUDIO)
        assert not alice.video_muted

        alice.unmute_audio_for_all()
        assert not alice.audio_muted

        calls = transport.calls_to("mute_changed")
        assert [c.args for c in calls] == [("audio", True), ("audio", False)]

    def test_mute_video(self, room, join):
        alice, = join(room, "alice")

        alice.mute_video_for_all()
        assert alice.video_muted
        alice.unmute_video_for_all()
        assert not alice.video_muted

    def test_repeated_mute_notifies_once(self, room, join, transport):
        alice, = join(room, "alice")

        alice.mute_audio_for_all()
        alice.mute_audio_for_all()

        assert len(transport.calls_to("mute_changed")) == 1

    def test_mute_outside_room(self, manager, transport):
        alice = manager.create_participant("alice")
        alice.mute_audio_for_all()

        assert alice.audio_muted
        assert len(transport.calls_to("mute_changed")) == 1


class TestMediaSources:
    """Tests for source enumeration and stream selection."""

    def test_request_audio_sources(self, room, join):
        alice, = join(room, "alice")
        outcome = asyncio.run(alice.request_audio_sources())

        assert outcome.ok
        assert [s.kind for s in outcome.value] == [MediaKind.AUDIO]

    def test_request_video_sources(self, room, join):
        alice, = join(room, "alice")
        outcome = asyncio.run(alice.request_video_sources())

        assert outcome.ok
        assert outcome.value[0].label == "Default Camera"

    def test_permission_denied(self, room, join, transport):
        alice, = join(room, "alice")
        transport.deny_permission("alice", MediaKind.VIDEO)

        video = asyncio.run(alice.request_video_sources())
        audio = asyncio.run(alice.request_audio_sources())

        assert video.error is ErrorKind.PERMISSION_DENIED
        assert video.error.retryable
        assert audio.ok

    def test_set_streams(self, room, join):
        alice, = join(room, "alice")
        mic = asyncio.run(alice.request_audio_sources()).unwrap()[0]
        cam = asyncio.run(alice.request_video_sources()).unwrap()[0]

        assert alice.set_audio_stream(mic) is True
        assert alice.set_video_stream(cam) is True
        assert alice.audio_stream == mic
        assert alice.video_stream == cam

    def test_set_stream_with_wrong_kind_fails(self, room, join):
        alice, = join(room, "alice")
        cam = MediaSource(source_id="video-0", kind=MediaKind.VIDEO)

        assert alice.set_audio_stream(cam) is False
        assert alice.audio_stream is None

    def test_set_stream_refused_by_transport(self, room, join, transport):
        alice, = join(room, "alice")
        transport.deny_permission("alice", MediaKind.AUDIO)
        mic = MediaSource(source_id="audio-0", kind=MediaKind.AUDIO)

        assert alice.set_audio_stream(mic) is False
        assert alice.audio_stream is None

    def test_attach_describes_tracks(self, room, join):
        alice, = join(room, "alice")
        mic = asyncio.run(alice.request_audio_sources()).unwrap()[0]
        alice.set_audio_stream(mic)
        alice.mute_audio_for_all()

        tile = {}
        alice.attach(tile)

        assert tile["id"] == "alice"
        assert tile["audio"] == mic
        assert tile["audio_muted"] is True
        assert tile["video"] is None
        assert tile["video_muted"] is True

    def test_transport_outside_room_defaults_to_null(self):
        p = Participant("alice")
        assert p.transport.name == "null"
        outcome = asyncio.run(p.request_audio_sources())
        assert outcome.ok and outcome.value == []


class TestConcurrentJoins:
    """Tests for ordering of concurrent group joins."""

    def test_joins_into_same_group_are_ordered(self):
        transport = LoopbackTransport(LoopbackConfig(latency_ms=5))
        manager = RoomManager(config=RTGCConfig(check_invariants=True), transport=transport)
        room = manager.create_room()

        async def scenario():
            alice = manager.create_participant("alice")
            bob = manager.create_participant("bob")
            await alice.try_join_room(room)
            await bob.try_join_room(room)
            group = alice.create_group()

            results = await asyncio.gather(
                alice.try_join_group(group.code),
                bob.try_join_group(group.code),
            )
            return group, alice, bob, results

        group, alice, bob, results = asyncio.run(scenario())

        assert all(r.ok for r in results)
        assert group.participants() == [alice, bob]
        assert room.default_group.participants() == []
        manager.close_all()

    def test_own_joins_are_serialised(self, manager, room):
        async def scenario():
            alice = manager.create_participant("alice")
            await alice.try_join_room(room)
            g1, g2 = alice.create_group(), alice.create_group()

            await asyncio.gather(
                alice.try_join_group(g1.code),
                alice.try_join_group(g2.code),
            )
            return alice, g1, g2

        alice, g1, g2 = asyncio.run(scenario())

        assert alice.current_group is g2
        assert alice.previous_groups == [g1, room.default_group]

    def test_group_join_races_on_successive_event_loops(self):
        transport = LoopbackTransport(LoopbackConfig(latency_ms=5))
        manager = RoomManager(config=RTGCConfig(check_invariants=True), transport=transport)
        room = manager.create_room()

        async def enter(*names):
            people = [manager.create_participant(name) for name in names]
            for p in people:
                (await p.try_join_room(room)).unwrap()
            return people

        alice, bob, carol, dave = asyncio.run(enter("alice", "bob", "carol", "dave"))
        group = alice.create_group()

        async def race(first, second):
            return await asyncio.gather(
                first.try_join_group(group.code),
                second.try_join_group(group.code),
            )

        first_results = asyncio.run(race(alice, bob))
        second_results = asyncio.run(race(carol, dave))

        assert all(r.ok for r in first_results + second_results)
        assert group.participants() == [alice, bob, carol, dave]
        assert room.default_group.participants() == []
        manager.close_all()

    def test_own_joins_serialised_on_successive_event_loops(self):
        transport = LoopbackTransport(LoopbackConfig(latency_ms=5))
        manager = RoomManager(config=RTGCConfig(check_invariants=True), transport=transport)
        room = manager.create_room()
        alice = manager.create_participant("alice")
        asyncio.run(alice.try_join_room(room))
        g1, g2 = alice.create_group(), alice.create_group()

        async def hop(*groups):
            return await asyncio.gather(*(alice.try_join_group(g.code) for g in groups))

        first_results = asyncio.run(hop(g1, g2))
        assert alice.current_group is g2
        second_results = asyncio.run(hop(g1, room.default_group))

        assert all(r.ok for r in first_results + second_results)
        assert alice.current_group is room.default_group
        manager.close_all()

    def test_concurrent_room_joins_with_same_username(self):
        transport = LoopbackTransport(LoopbackConfig(latency_ms=5))
        manager = RoomManager(transport=transport)
        room = manager.create_room()

        async def scenario():
            first = manager.create_participant("alice")
            second = manager.create_participant("alice")
            return await asyncio.gather(
                first.try_join_room(room), second.try_join_room(room)
            )

        results = asyncio.run(scenario())

        assert sorted(r.ok for r in results) == [False, True]
        failed = next(r for r in results if not r.ok)
        assert failed.error is ErrorKind.ALREADY_IN_ROOM
        assert len(room.participants()) == 1
        manager.close_all()
