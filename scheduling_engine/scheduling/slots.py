"""
Slot generation and booking-window validation.

``generate_day_slots`` is pure: same inputs, same slots, no I/O. The
``SlotGenerator`` wraps it with the firm's configuration and a clock for
the date checks that depend on "today".
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Union

from scheduling_engine.config import AppConfig
from scheduling_engine.errors import ValidationError
from scheduling_engine.schemas.booking_schema import TimeSlot
from scheduling_engine.utils import localize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkingHours:
    """Daily bookable window, whole hours, ``start_hour`` inclusive."""

    start_hour: int
    end_hour: int

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValidationError(
                f"Working hours must satisfy 0 <= start < end <= 24, "
                f"got {self.start_hour}-{self.end_hour}"
            )


def generate_day_slots(
    day: date,
    working_hours: WorkingHours,
    slot_duration: int,
    buffer_time: int,
    tz: tzinfo,
) -> list[TimeSlot]:
    """
    Generate candidate slots for one day.

    Starts at ``day@start_hour`` and advances by ``slot_duration +
    buffer_time`` minutes. A slot whose end would pass ``end_hour`` is
    not emitted, so there is never a partial trailing slot.

    Raises:
        ValidationError: If duration is not positive or buffer is negative.
    """
    if slot_duration <= 0:
        raise ValidationError(f"Slot duration must be positive, got {slot_duration}")
    if buffer_time < 0:
        raise ValidationError(f"Buffer time must not be negative, got {buffer_time}")

    day_start = datetime.combine(day, time.min, tzinfo=tz)
    current = day_start + timedelta(hours=working_hours.start_hour)
    limit = day_start + timedelta(hours=working_hours.end_hour)
    length = timedelta(minutes=slot_duration)
    step = timedelta(minutes=slot_duration + buffer_time)

    slots = []
    while current + length <= limit:
        slots.append(TimeSlot(start=current, end=current + length))
        current += step
    return slots


class SlotGenerator:
    """Firm-configured slot generation plus the date/slot validity rules."""

    def __init__(self, config: AppConfig, clock) -> None:
        sched = config.scheduling
        self.tz = sched.tzinfo
        self.working_hours = WorkingHours(sched.working_hours_start, sched.working_hours_end)
        self.slot_duration = sched.slot_duration_minutes
        self.buffer_time = sched.buffer_minutes
        self.max_advance_days = sched.max_advance_days
        self.clock = clock

    def generate(self, day: date) -> list[TimeSlot]:
        return generate_day_slots(
            day, self.working_hours, self.slot_duration, self.buffer_time, self.tz
        )

    def is_valid_date(self, value: Union[date, datetime]) -> bool:
        """Whether ``value`` falls on a day from today to today + max advance days.

        Datetimes are judged by their local calendar day, so every slot
        offered for the last bookable day can also be booked.
        """
        if isinstance(value, datetime):
            value = localize(value, self.tz).date()
        today = self.clock.now().astimezone(self.tz).date()
        return today <= value <= today + timedelta(days=self.max_advance_days)

    def validate_date(self, value: Union[date, datetime]) -> None:
        """Raise ValidationError unless ``value`` is inside the booking window."""
        if not self.is_valid_date(value):
            raise ValidationError(
                f"Invalid date selected: {value.isoformat()} is outside the "
                f"{self.max_advance_days}-day booking window"
            )

    def is_valid_slot(self, slot_start: datetime) -> bool:
        """A slot is valid on a valid date, starting within working hours."""
        local = localize(slot_start, self.tz)
        return (
            self.working_hours.start_hour <= local.hour < self.working_hours.end_hour
            and self.is_valid_date(local)
        )

    def validate_slot(self, slot_start: datetime) -> None:
        if not self.is_valid_slot(slot_start):
            raise ValidationError(f"Invalid time slot: {slot_start.isoformat()}")
