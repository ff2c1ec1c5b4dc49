"""Bookable resources and their weekly availability windows."""

from datetime import date, datetime, time, tzinfo
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ResourceType(str, Enum):
    LAWYER = "lawyer"
    ROOM = "room"
    EQUIPMENT = "equipment"


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OUT_OF_OFFICE = "out_of_office"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"


# Statuses an operator may set by hand; the others are derived from bookings.
SETTABLE_STATUSES = frozenset({
    ResourceStatus.AVAILABLE,
    ResourceStatus.OUT_OF_OFFICE,
    ResourceStatus.MAINTENANCE,
})


class AvailabilityWindow(BaseModel):
    """A recurring weekly window, e.g. Monday-Friday 09:00-17:00.

    ``days`` uses Python weekday numbers: 0 is Monday, 6 is Sunday.
    """

    days: list[int]
    start_time: time
    end_time: time

    @field_validator("days")
    @classmethod
    def _check_days(cls, value: list[int]) -> list[int]:
        if not value or any(d < 0 or d > 6 for d in value):
            raise ValueError("days must be a non-empty list of weekday numbers 0-6")
        return sorted(set(value))

    @model_validator(mode="after")
    def _check_order(self) -> "AvailabilityWindow":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    def covers(self, start: datetime, end: datetime) -> bool:
        """True when ``[start, end)`` lies entirely inside this window."""
        return (
            start.weekday() in self.days
            and start.date() == end.date()
            and self.start_time <= start.time()
            and end.time() <= self.end_time
        )

    def interval_on(self, day: date, tz: tzinfo) -> Optional[tuple[datetime, datetime]]:
        """The window's concrete interval on ``day``, or None if it does not apply."""
        if day.weekday() not in self.days:
            return None
        return (
            datetime.combine(day, self.start_time, tzinfo=tz),
            datetime.combine(day, self.end_time, tzinfo=tz),
        )


class Resource(BaseModel):
    """A lawyer, meeting room or piece of equipment that can be booked.

    ``status`` only carries the operator-set part of the state
    (maintenance / out of office). Busy and reserved are derived from
    bookings at read time.
    """

    id: str
    name: str
    type: ResourceType
    capacity: int = Field(default=1, ge=1)
    features: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    email: Optional[str] = None
    availability: list[AvailabilityWindow] = Field(default_factory=list)
    status: ResourceStatus = ResourceStatus.AVAILABLE

    def windows_for(self, day: date) -> list[AvailabilityWindow]:
        return [w for w in self.availability if day.weekday() in w.days]

    @property
    def contact(self) -> str:
        """Recipient used for notifications addressed to the resource."""
        return self.email or self.id
