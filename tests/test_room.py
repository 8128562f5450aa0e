"""
Tests for Room: lifecycle, admission, allow-list, hosts and close.
"""

import asyncio

import pytest

from rtgc import (
    EventType,
    ErrorKind,
    GroupInfo,
    NO_SESSION,
    RoomClosed,
    RoomState,
    User,
)


class TestRoomBasics:
    """Tests for a freshly created room."""

    def test_new_room_has_only_default_group(self, room):
        assert room.groups() == [room.default_group]
        assert room.default_group.is_default
        assert not room.default_group.closed
        assert room.participants() == []
        assert room.state is RoomState.OPEN

    def test_room_code_and_share_url(self, manager, room):
        code = room.get_room_code()
        assert len(code) == manager.config.code_length
        assert room.get_share_url() == f"{manager.config.share_url_base}/join/{code}"

    def test_add_groups_returns_all_groups(self, room):
        groups = room.add_groups([GroupInfo(name="table 1"), "table 2"])

        assert len(groups) == 3
        assert groups[0] is room.default_group
        assert [g.name for g in groups[1:]] == ["table 1", "table 2"]
        assert all(len(g) == 0 for g in groups)

    def test_add_groups_keeps_metadata(self, room):
        groups = room.add_groups([GroupInfo(name="quiet", metadata={"topic": "algebra"})])
        assert groups[-1].info.metadata == {"topic": "algebra"}

    def test_add_host_is_idempotent(self, room):
        room.add_host("moderator")
        room.add_host(User("moderator"))
        assert room.host_usernames() == ["moderator"]

    def test_hosts_are_only_present_participants(self, room, join):
        room.add_host("moderator")
        assert room.hosts == []

        moderator, = join(room, "moderator")
        assert room.hosts == [moderator]
        assert moderator.is_host


class TestRoomJoin:
    """Tests for participants joining a room."""

    def test_join_places_participant_in_default_group(self, room, join):
        alice, = join(room, "alice")

        assert alice.current_room is room
        assert alice.current_group is room.default_group
        assert alice.previous_groups == []
        assert room.participants() == [alice]
        assert room.default_group.participants() == [alice]

    def test_join_with_room_object(self, manager, room):
        alice = manager.create_participant("alice")
        outcome = asyncio.run(alice.try_join_room(room))

        assert outcome.ok
        assert outcome.value is room

    def test_join_unknown_code_fails(self, manager):
        alice = manager.create_participant("alice")
        outcome = asyncio.run(alice.try_join_room("NOSUCH"))

        assert not outcome.ok
        assert outcome.error is ErrorKind.ROOM_NOT_FOUND
        assert alice.placement is NO_SESSION

    def test_join_twice_fails(self, room, join):
        alice, = join(room, "alice")
        outcome = asyncio.run(alice.try_join_room(room.get_room_code()))

        assert outcome.error is ErrorKind.ALREADY_IN_ROOM
        assert room.participants() == [alice]

    def test_join_another_room_while_in_room_fails(self, manager, room, join):
        other = manager.create_room()
        alice, = join(room, "alice")

        outcome = asyncio.run(alice.try_join_room(other.get_room_code()))

        assert outcome.error is ErrorKind.ALREADY_IN_ROOM
        assert alice.current_room is room
        assert other.participants() == []

    def test_second_participant_with_same_username_rejected(self, manager, room, join):
        join(room, "alice")
        impostor = manager.create_participant("alice")

        outcome = asyncio.run(impostor.try_join_room(room.get_room_code()))

        assert outcome.error is ErrorKind.ALREADY_IN_ROOM
        assert impostor.current_room is None

    def test_rejoin_clears_history(self, room, join):
        alice, = join(room, "alice")
        group = alice.create_group()
        asyncio.run(alice.try_join_group(group.get_group_code()))
        assert alice.previous_groups == [room.default_group]

        assert alice.try_leave_room(room.get_room_code())
        asyncio.run(alice.try_join_room(room.get_room_code()))

        assert alice.current_group is room.default_group
        assert alice.previous_groups == []

    def test_connected_fires_before_joined_default(self, room, join):
        seen = []
        room.events.subscribe_all(lambda e: seen.append((e.event_type, e.group_code)))

        join(room, "alice")

        assert seen == [
            (EventType.PARTICIPANT_CONNECTED, None),
            (EventType.PARTICIPANT_JOINED_GROUP, room.default_group.code),
        ]

    def test_connected_listener_sees_committed_state(self, room, join):
        observed = []

        def on_connected(p):
            observed.append((p.username, p in room.participants(), p.current_group))

        room.on_participant_connected(on_connected)
        join(room, "alice")

        assert observed == [("alice", True, room.default_group)]


class TestAllowList:
    """Tests for room access control."""

    def test_empty_allow_list_admits_anyone(self, room, join):
        assert room.allowed_users() == []
        alice, bob = join(room, "alice", "bob")
        assert room.participants() == [alice, bob]

    def test_allow_list_gates_admission(self, manager, room):
        room.add_users_to_allowed_users(["u1"])
        u1 = manager.create_participant("u1")
        u2 = manager.create_participant("u2")

        denied = asyncio.run(u2.try_join_room(room.get_room_code()))
        admitted = asyncio.run(u1.try_join_room(room.get_room_code()))

        assert denied.error is ErrorKind.ACCESS_DENIED
        assert admitted.ok
        assert room.participants() == [u1]

    def test_add_users_is_idempotent_union(self, room):
        room.add_users_to_allowed_users(["alice", "bob"])
        allowed = room.add_users_to_allowed_users([User("bob"), "carol"])

        assert [u.username for u in allowed] == ["alice", "bob", "carol"]
        assert room.is_allowed("carol")
        assert not room.is_allowed("mallory")

    def test_allow_list_never_evicts_admitted(self, room, join):
        bob, = join(room, "bob")
        room.add_users_to_allowed_users(["alice"])

        assert room.participants() == [bob]
        assert not room.is_allowed("bob")


class TestRoomLeave:
    """Tests for try_leave_room."""

    def test_leave_with_wrong_code_returns_false(self, room, join):
        alice, = join(room, "alice")
        assert alice.try_leave_room("WRONG1") is False
        assert alice.current_room is room

    def test_leave_then_leave_again(self, room, join):
        alice, = join(room, "alice")

        assert alice.try_leave_room(room.get_room_code()) is True
        assert alice.try_leave_room(room.get_room_code()) is False
        assert alice.placement is NO_SESSION
        assert room.participants() == []
        assert room.default_group.participants() == []

    def test_leave_fires_left_group_then_disconnected(self, room, join):
        alice, = join(room, "alice")
        group = alice.create_group()
        asyncio.run(alice.try_join_group(group.get_group_code()))

        seen = []
        room.events.subscribe_all(lambda e: seen.append((e.event_type, e.group_code)))
        disconnected = []
        room.on_participant_disconnected(disconnected.append)

        alice.try_leave_room(room)

        assert seen == [
            (EventType.PARTICIPANT_LEFT_GROUP, group.code),
            (EventType.PARTICIPANT_DISCONNECTED, None),
        ]
        assert disconnected == [alice]

    def test_leave_drops_pending_invitations(self, room, join):
        alice, bob = join(room, "alice", "bob")
        group = alice.create_group().invite_participant(bob)

        bob.try_leave_room(room)

        assert group.invited_participants() == []


class TestRoomClose:
    """Tests for closing a room."""

    def test_close_with_participants_across_groups(self, room, join):
        alice, bob, carol = join(room, "alice", "bob", "carol")
        group = alice.create_group()
        asyncio.run(alice.try_join_group(group.get_group_code()))
        asyncio.run(bob.try_join_group(group.get_group_code()))

        disconnected = []
        room.on_participant_disconnected(disconnected.append)

        room.close()

        assert sorted(p.username for p in disconnected) == ["alice", "bob", "carol"]
        assert room.participants() == []
        assert room.groups() == []
        assert all(p.placement is NO_SESSION for p in (alice, bob, carol))
        with pytest.raises(RoomClosed):
            room.add_groups([GroupInfo(name="late")])

    def test_close_closes_every_group(self, room):
        extra = room.add_groups(["a", "b"])
        room.close()

        assert room.closed
        assert all(g.closed for g in extra)
        assert room.default_group.closed

    def test_close_is_idempotent(self, room):
        closed = []
        room.on_closed(closed.append)

        room.close()
        room.close()

        assert closed == [room]

    def test_close_releases_codes(self, manager, room):
        group_codes = [g.code for g in room.add_groups(["a"])]
        code = room.get_room_code()

        room.close()

        assert not manager.issuer.is_in_use(code)
        assert not any(manager.issuer.is_in_use(c) for c in group_codes)
        assert manager.get_room(code) is None

    def test_mutations_after_close_raise(self, manager, room):
        room.close()

        with pytest.raises(RoomClosed):
            room.add_host("moderator")
        with pytest.raises(RoomClosed):
            room.add_users_to_allowed_users(["alice"])
        with pytest.raises(RoomClosed):
            room.mute_participants()
        with pytest.raises(RoomClosed):
            room.on_participant_connected(print)

    def test_join_after_close_fails(self, manager, room):
        room.close()
        alice = manager.create_participant("alice")

        outcome = asyncio.run(alice.try_join_room(room))

        assert outcome.error is ErrorKind.ROOM_CLOSED
        assert alice.current_room is None

    def test_close_callback_error_does_not_stop_close(self, room, caplog):
        def broken(_room):
            raise RuntimeError("boom")

        called = []
        room.on_closed(broken)
        room.on_closed(called.append)

        room.close()

        assert called == [room]
        assert "boom" in caplog.text


class TestMuteParticipants:
    """Tests for muting everyone but the hosts."""

    def test_mute_spares_hosts(self, room, join, transport):
        room.add_host("moderator")
        moderator, alice, bob = join(room, "moderator", "alice", "bob")

        room.mute_participants()

        assert not moderator.audio_muted
        assert alice.audio_muted and bob.audio_muted
        assert not alice.video_muted
        muted = [c.username for c in transport.calls_to("mute_changed")]
        assert muted == ["alice", "bob"]

    def test_mute_twice_notifies_once(self, room, join, transport):
        join(room, "alice")

        room.mute_participants()
        room.mute_participants()

        assert len(transport.calls_to("mute_changed")) == 1
