"""
RTGC Test Fixtures - Shared infrastructure for the test suite.

Provides:
    - A loopback transport that records every call
    - A room manager with invariant checking switched on
    - A helper that creates participants and joins them to a room
"""

from __future__ import annotations

import asyncio

import pytest

from rtgc import LoopbackTransport, RoomManager, RTGCConfig


@pytest.fixture
def transport():
    return LoopbackTransport()


@pytest.fixture
def manager(transport):
    manager = RoomManager(config=RTGCConfig(check_invariants=True), transport=transport)
    yield manager
    manager.close_all()


@pytest.fixture
def room(manager):
    return manager.create_room()


@pytest.fixture
def join(manager):
    """Create participants by username and join them to ``room`` in order."""

    def _join(room, *usernames):
        async def go():
            joined = []
            for name in usernames:
                p = manager.create_participant(name)
                (await p.try_join_room(room.get_room_code())).unwrap()
                joined.append(p)
            return joined

        return asyncio.run(go())

    return _join
