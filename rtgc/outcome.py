"""
Outcome - result type for asynchronous membership and media operations.

Async operations (try_join_room, try_join_group, request_*_sources)
never raise for the enumerated error kinds. They resolve to an Outcome
that either carries a value or the error that stopped them, so callers
branch on ``outcome.error`` to decide between retrying and giving up.

Example:
    outcome = await participant.try_join_room(code)
    if outcome.ok:
        room = outcome.value
    elif outcome.error is ErrorKind.ACCESS_DENIED:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

from rtgc.errors import ErrorKind, RTGCError

T = TypeVar("T")


class OutcomeKind(Enum):
    """Outcome of an operation."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Outcome(Generic[T]):
    """
    Result of a fallible asynchronous operation.

    Exactly one of ``value`` (on success) and ``exception`` (on failure)
    is meaningful.
    """
    kind: OutcomeKind
    value: T | None = None
    exception: RTGCError | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(kind=OutcomeKind.SUCCEEDED, value=value)

    @classmethod
    def failure(cls, exception: RTGCError) -> Outcome[T]:
        return cls(kind=OutcomeKind.FAILED, exception=exception)

    @property
    def ok(self) -> bool:
        """Convenience property for checking success."""
        return self.kind == OutcomeKind.SUCCEEDED

    @property
    def error(self) -> ErrorKind | None:
        """Error kind on failure, None on success."""
        return self.exception.kind if self.exception is not None else None

    @property
    def message(self) -> str:
        """Human-readable description of the outcome."""
        if self.ok:
            return "ok"
        return self.exception.message if self.exception else "failed"

    def unwrap(self) -> T:
        """
        Return the value, or raise the failure.

        Raises:
            RTGCError: The exception the operation failed with.
        """
        if not self.ok:
            assert self.exception is not None
            raise self.exception
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.ok
