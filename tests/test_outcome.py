"""
Tests for Outcome and the error hierarchy.
"""

import pytest

from rtgc import (
    AccessDenied,
    ErrorKind,
    GroupNotFound,
    InvariantViolationError,
    Outcome,
    OutcomeKind,
    RTGCError,
)
from rtgc.errors import ERRORS_BY_KIND


class TestOutcome:
    """Tests for Outcome."""

    def test_success(self):
        outcome = Outcome.success(42)

        assert outcome.ok
        assert bool(outcome)
        assert outcome.kind is OutcomeKind.SUCCEEDED
        assert outcome.error is None
        assert outcome.message == "ok"
        assert outcome.unwrap() == 42

    def test_failure(self):
        outcome = Outcome.failure(AccessDenied("mallory", "ROOM01"))

        assert not outcome.ok
        assert not outcome
        assert outcome.error is ErrorKind.ACCESS_DENIED
        assert "mallory" in outcome.message
        assert outcome.value is None

    def test_unwrap_failure_raises(self):
        outcome = Outcome.failure(GroupNotFound("G00000", "ROOM01"))

        with pytest.raises(GroupNotFound) as exc_info:
            outcome.unwrap()
        assert exc_info.value.details == {"group_code": "G00000", "room_code": "ROOM01"}


class TestErrors:
    """Tests for the error hierarchy."""

    def test_every_kind_has_an_error(self):
        assert set(ERRORS_BY_KIND) == set(ErrorKind)
        assert all(issubclass(cls, RTGCError) for cls in ERRORS_BY_KIND.values())

    def test_retryable_kinds(self):
        assert ErrorKind.PERMISSION_DENIED.retryable
        assert ErrorKind.NOT_INVITED.retryable
        assert not ErrorKind.ACCESS_DENIED.retryable
        assert not ErrorKind.ROOM_CLOSED.retryable

    def test_invariant_error_message(self):
        error = InvariantViolationError("room.membership.single_group", "alice is lost")

        assert error.kind is ErrorKind.INVARIANT_VIOLATION
        assert error.invariant_id == "room.membership.single_group"
        assert str(error) == "[room.membership.single_group] alice is lost"
