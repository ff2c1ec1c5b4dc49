"""Recurrence rules, recurring task state and reminder jobs."""

from datetime import datetime
from enum import Enum
from typing import Optional

from dateutil import rrule
from pydantic import BaseModel, Field


class Frequency(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


_RRULE_FREQ = {
    Frequency.HOURLY: rrule.HOURLY,
    Frequency.DAILY: rrule.DAILY,
    Frequency.WEEKLY: rrule.WEEKLY,
    Frequency.MONTHLY: rrule.MONTHLY,
}


class RecurrenceRule(BaseModel):
    """How to compute the next occurrence of a periodic task.

    Anchor fields that do not apply to the frequency are ignored: an
    hourly rule only uses ``minute``, a daily rule ``hour``/``minute``,
    weekly adds ``weekday`` (0=Monday) and monthly adds ``day_of_month``.
    """

    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    hour: int = Field(default=0, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    weekday: int = Field(default=0, ge=0, le=6)
    day_of_month: int = Field(default=1, ge=1, le=31)
    anchor: Optional[datetime] = None

    @classmethod
    def hourly(cls, minute: int = 0) -> "RecurrenceRule":
        return cls(frequency=Frequency.HOURLY, minute=minute)

    @classmethod
    def daily(cls, hour: int = 0, minute: int = 0) -> "RecurrenceRule":
        return cls(frequency=Frequency.DAILY, hour=hour, minute=minute)

    @classmethod
    def weekly(cls, weekday: int, hour: int = 0, minute: int = 0) -> "RecurrenceRule":
        return cls(frequency=Frequency.WEEKLY, weekday=weekday, hour=hour, minute=minute)

    @classmethod
    def monthly(cls, day_of_month: int = 1, hour: int = 0, minute: int = 0) -> "RecurrenceRule":
        return cls(
            frequency=Frequency.MONTHLY, day_of_month=day_of_month, hour=hour, minute=minute
        )

    def _build(self, moment: datetime) -> rrule.rrule:
        dtstart = self.anchor or moment.replace(second=0, microsecond=0)
        if dtstart.tzinfo is None and moment.tzinfo is not None:
            dtstart = dtstart.replace(tzinfo=moment.tzinfo)
        kwargs: dict = {
            "dtstart": dtstart,
            "interval": self.interval,
            "byminute": self.minute,
            "bysecond": 0,
        }
        if self.frequency != Frequency.HOURLY:
            kwargs["byhour"] = self.hour
        if self.frequency == Frequency.WEEKLY:
            kwargs["byweekday"] = self.weekday
        if self.frequency == Frequency.MONTHLY:
            kwargs["bymonthday"] = self.day_of_month
        return rrule.rrule(_RRULE_FREQ[self.frequency], **kwargs)

    def next_after(self, moment: datetime) -> Optional[datetime]:
        """First occurrence strictly after ``moment``."""
        return self._build(moment).after(moment, inc=False)


class RecurringTaskState(BaseModel):
    """Persisted due-time row for a recurring task."""

    name: str
    rule: RecurrenceRule
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    run_count: int = 0
    skipped_count: int = 0


class ReminderStatus(str, Enum):
    PENDING = "pending"
    DISPATCHING = "dispatching"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"


class ReminderJob(BaseModel):
    """One reminder for one booking at one offset."""

    id: str
    target_booking_id: str
    recipient: str
    fire_at: datetime
    offset_minutes: int
    message: str
    status: ReminderStatus = ReminderStatus.PENDING
    dispatched_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == ReminderStatus.DELIVERED

    @property
    def cancelled(self) -> bool:
        return self.status == ReminderStatus.CANCELLED
