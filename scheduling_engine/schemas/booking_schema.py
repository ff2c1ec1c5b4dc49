"""Booking, appointment and hearing records plus the views built from them."""

from datetime import datetime, timedelta
from enum import Enum
from typing import ClassVar, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from scheduling_engine.schemas.resource_schema import Resource
from scheduling_engine.utils import normalize_phone

MAX_MESSAGE_LENGTH = 500


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class HearingStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ADJOURNED = "adjourned"
    CANCELLED = "cancelled"


ACTIVE_HEARING_STATUSES = frozenset({HearingStatus.SCHEDULED, HearingStatus.IN_PROGRESS})


class TimeSlot(BaseModel):
    """A candidate half-open interval ``[start, end)``."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


class ScheduledSlot(TimeSlot):
    """A generated slot annotated with whether it can still be booked."""

    available: bool


class _Commitment(BaseModel):
    """Fields shared by bookings and appointments."""

    kind: ClassVar[str] = "commitment"

    id: str
    start: datetime
    end: datetime
    status: BookingStatus = BookingStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    outcome: Optional[str] = None
    rescheduled: bool = False
    deleted_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_interval(self):
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self

    @property
    def occupies(self) -> bool:
        """Whether this record blocks its resource for ``[start, end)``."""
        return self.deleted_at is None and self.status in ACTIVE_BOOKING_STATUSES

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class Booking(_Commitment):
    """A committed reservation of a resource."""

    kind: ClassVar[str] = "booking"

    resource_id: str
    purpose: str = ""
    requester: str


class Appointment(_Commitment):
    """A client-facing booking of a service with a lawyer."""

    kind: ClassVar[str] = "appointment"

    lawyer_id: str
    service_id: str
    client_name: str
    email: EmailStr
    phone: str
    message: Optional[str] = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    confirmation_code: str

    @field_validator("client_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Client name is required")
        return value

    @field_validator("email", mode="after")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        normalized = normalize_phone(value)
        if len(normalized.lstrip("+")) < 7:
            raise ValueError("Phone number is required")
        return normalized

    @property
    def resource_id(self) -> str:
        return self.lawyer_id


class Hearing(BaseModel):
    """A court hearing; it occupies the lawyer appearing at it."""

    kind: ClassVar[str] = "hearing"

    id: str
    case_id: str
    lawyer_id: str
    date: datetime
    duration_minutes: int = Field(default=60, ge=1)
    court: Optional[str] = None
    purpose: str = ""
    status: HearingStatus = HearingStatus.SCHEDULED
    outcome: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def start(self) -> datetime:
        return self.date

    @property
    def end(self) -> datetime:
        return self.date + timedelta(minutes=self.duration_minutes)

    @property
    def resource_id(self) -> str:
        return self.lawyer_id

    @property
    def occupies(self) -> bool:
        return self.deleted_at is None and self.status in ACTIVE_HEARING_STATUSES


Record = Union[Booking, Appointment, Hearing]


class OccupiedInterval(TimeSlot):
    """An interval blocked on a resource, tagged with the record that blocks it."""

    source_kind: str
    source_id: str


class AvailabilityResult(BaseModel):
    """Outcome of checking one interval against a resource."""

    available: bool
    conflicts: list[OccupiedInterval] = Field(default_factory=list)
    schedule_conflict: bool = False


class ResourceSchedule(BaseModel):
    """Everything on a resource's calendar within a range."""

    resource: Resource
    bookings: list[Booking] = Field(default_factory=list)
    appointments: list[Appointment] = Field(default_factory=list)
    hearings: list[Hearing] = Field(default_factory=list)
    availability: list[ScheduledSlot] = Field(default_factory=list)


class UtilizationReport(BaseModel):
    """Utilization of one resource over a range."""

    resource_id: str
    start: datetime
    end: datetime
    utilization: float
    total_bookings: int
    total_hours: float
    working_hours: float
