"""
Identifier Service - Issue and release room/group codes.

Codes are short random strings drawn from the configured alphabet.
A code is never handed out while it is in use; releasing it makes it
available again once its room or group is gone.
"""

from __future__ import annotations

import logging
import secrets
import threading
from typing import Generic, Iterator, TypeVar

from rtgc.errors import CodeSpaceExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CodeIssuer:
    """
    Issues collision-free codes.

    Example:
        issuer = CodeIssuer(length=6)
        code = issuer.issue()
        ...
        issuer.release(code)
    """

    def __init__(
        self,
        length: int = 6,
        alphabet: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789",
        max_attempts: int = 64,
    ):
        self._length = length
        self._alphabet = "".join(sorted(set(alphabet)))
        self._max_attempts = max_attempts
        self._in_use: set[str] = set()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return len(self._alphabet) ** self._length

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    def is_in_use(self, code: str) -> bool:
        return code in self._in_use

    def _draw(self) -> str:
        return "".join(secrets.choice(self._alphabet) for _ in range(self._length))

    def issue(self) -> str:
        """
        Issue a code not currently in use.

        Raises:
            CodeSpaceExhausted: If every code is taken, or no free code
                was found within the attempt budget.
        """
        with self._lock:
            if len(self._in_use) >= self.capacity:
                raise CodeSpaceExhausted(len(self._in_use), self.capacity)

            for _ in range(self._max_attempts):
                code = self._draw()
                if code not in self._in_use:
                    self._in_use.add(code)
                    return code

            logger.critical(
                f"No free code after {self._max_attempts} attempts "
                f"({len(self._in_use)}/{self.capacity} in use)"
            )
            raise CodeSpaceExhausted(len(self._in_use), self.capacity)

    def release(self, code: str) -> bool:
        """Free a code for reuse. Returns False if it was not in use."""
        with self._lock:
            if code not in self._in_use:
                return False
            self._in_use.discard(code)
            return True


class CodeRegistry(Generic[T]):
    """
    Maps issued codes to the entities that own them.

    Codes are issued and released through the shared CodeIssuer so that
    rooms and groups never collide.
    """

    def __init__(self, issuer: CodeIssuer):
        self._issuer = issuer
        self._entries: dict[str, T] = {}
        self._lock = threading.RLock()

    @property
    def issuer(self) -> CodeIssuer:
        return self._issuer

    def reserve(self) -> str:
        """Issue a code ahead of the entity that will own it."""
        return self._issuer.issue()

    def bind(self, code: str, entity: T) -> None:
        with self._lock:
            self._entries[code] = entity

    def resolve(self, code: str) -> T | None:
        with self._lock:
            return self._entries.get(code)

    def release(self, code: str) -> T | None:
        """Forget the entity behind ``code`` and free the code."""
        with self._lock:
            entity = self._entries.pop(code, None)
        self._issuer.release(code)
        return entity

    def unbind(self, code: str) -> T | None:
        """Forget the entity behind ``code`` without freeing the code."""
        with self._lock:
            return self._entries.pop(code, None)

    def values(self) -> list[T]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, code: object) -> bool:
        return code in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._entries))
