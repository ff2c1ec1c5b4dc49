"""
Finite state machine for the booking lifecycle.

Every status change on a booking or appointment goes through an explicit
transition table. Anything not in the table is rejected with a
StateError that lists what is allowed from the current status.

    pending   --confirm-->    confirmed
    pending   --cancel-->     cancelled
    confirmed --cancel-->     cancelled
    confirmed --complete-->   completed
    pending   --reschedule--> pending
    confirmed --reschedule--> confirmed

Usage:
    new_status = BookingLifecycle.next_status(BookingStatus.PENDING, BookingTrigger.CONFIRM)
    assert new_status == BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from enum import Enum

from scheduling_engine.errors import StateError
from scheduling_engine.schemas.booking_schema import BookingStatus

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Events that move a booking between statuses."""
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"
    RESCHEDULE = "reschedule"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    trigger: BookingTrigger


class BookingLifecycle:
    """Transition table shared by bookings and appointments."""

    TRANSITIONS: list[Transition] = [
        Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingTrigger.CONFIRM),
        Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.PENDING, BookingStatus.PENDING, BookingTrigger.RESCHEDULE),

        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingTrigger.COMPLETE),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CONFIRMED, BookingTrigger.RESCHEDULE),
    ]

    @classmethod
    def valid_triggers(cls, status: BookingStatus) -> list[BookingTrigger]:
        """Return all triggers valid from ``status``."""
        return [t.trigger for t in cls.TRANSITIONS if t.from_status == status]

    @classmethod
    def next_status(cls, status: BookingStatus, trigger: BookingTrigger) -> BookingStatus:
        """
        Resolve a transition.

        Raises:
            StateError: If no transition exists for ``trigger`` from ``status``.
        """
        for t in cls.TRANSITIONS:
            if t.from_status == status and t.trigger == trigger:
                logger.debug(
                    "Booking transition: %s -> %s (trigger: %s)",
                    status.value, t.to_status.value, trigger.value,
                )
                return t.to_status

        valid = [t.value for t in cls.valid_triggers(status)]
        raise StateError(
            f"Cannot {trigger.value} a booking that is '{status.value}'. "
            f"Valid triggers: {valid}",
            valid_triggers=valid,
        )

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return not cls.valid_triggers(status)
