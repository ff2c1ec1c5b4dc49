"""Tests for the booking lifecycle transition table."""

import pytest

from scheduling_engine.errors import StateError
from scheduling_engine.scheduling.lifecycle import BookingLifecycle, BookingTrigger
from scheduling_engine.schemas.booking_schema import BookingStatus


class TestValidTransitions:
    @pytest.mark.parametrize("status, trigger, expected", [
        (BookingStatus.PENDING, BookingTrigger.CONFIRM, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingTrigger.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.PENDING, BookingTrigger.RESCHEDULE, BookingStatus.PENDING),
        (BookingStatus.CONFIRMED, BookingTrigger.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingTrigger.COMPLETE, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingTrigger.RESCHEDULE, BookingStatus.CONFIRMED),
    ])
    def test_transition(self, status, trigger, expected):
        assert BookingLifecycle.next_status(status, trigger) == expected


class TestInvalidTransitions:
    def test_cannot_complete_pending(self):
        with pytest.raises(StateError) as exc_info:
            BookingLifecycle.next_status(BookingStatus.PENDING, BookingTrigger.COMPLETE)
        assert "complete" not in exc_info.value.valid_triggers
        assert "confirm" in exc_info.value.valid_triggers

    def test_cannot_cancel_completed(self):
        with pytest.raises(StateError, match="completed"):
            BookingLifecycle.next_status(BookingStatus.COMPLETED, BookingTrigger.CANCEL)

    def test_cannot_reschedule_cancelled(self):
        with pytest.raises(StateError):
            BookingLifecycle.next_status(BookingStatus.CANCELLED, BookingTrigger.RESCHEDULE)

    def test_error_code(self):
        with pytest.raises(StateError) as exc_info:
            BookingLifecycle.next_status(BookingStatus.CANCELLED, BookingTrigger.CONFIRM)
        assert exc_info.value.code == "INVALID_STATE"


class TestTerminalStates:
    def test_completed_and_cancelled_are_terminal(self):
        assert BookingLifecycle.is_terminal(BookingStatus.COMPLETED)
        assert BookingLifecycle.is_terminal(BookingStatus.CANCELLED)

    def test_active_states_are_not_terminal(self):
        assert not BookingLifecycle.is_terminal(BookingStatus.PENDING)
        assert not BookingLifecycle.is_terminal(BookingStatus.CONFIRMED)

    def test_valid_triggers_from_confirmed(self):
        assert set(BookingLifecycle.valid_triggers(BookingStatus.CONFIRMED)) == {
            BookingTrigger.CANCEL, BookingTrigger.COMPLETE, BookingTrigger.RESCHEDULE,
        }
