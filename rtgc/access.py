"""
Access Control - Room allow-list.

An empty allow-list means the room is open to everyone. The list only
grows; it is consulted at room-join time and never evicts participants
who were already admitted.
"""

from __future__ import annotations

import threading
from typing import Iterable

from rtgc.models import User


class AllowList:
    """Append-only set of users allowed into a room.

    Insertion order is kept so that ``users()`` is stable.
    """

    def __init__(self, users: Iterable[User | str] = ()):
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()
        if users:
            self.add_users(users)

    def add_users(self, users: Iterable[User | str]) -> list[User]:
        """Union ``users`` into the list. Duplicates are ignored.

        Returns:
            Every allowed user after the update.
        """
        with self._lock:
            for user in users:
                user = User.coerce(user)
                self._users.setdefault(user.username, user)
            return list(self._users.values())

    def users(self) -> list[User]:
        with self._lock:
            return list(self._users.values())

    @property
    def is_open(self) -> bool:
        return not self._users

    def is_allowed(self, user: User | str) -> bool:
        """True if the list is empty, otherwise a membership test."""
        username = User.coerce(user).username
        with self._lock:
            return not self._users or username in self._users

    def __len__(self) -> int:
        return len(self._users)
