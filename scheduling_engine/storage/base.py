"""
Storage contracts the engine depends on.

The engine never talks to a database directly. A ``RecordStore`` holds
resources and the three kinds of records that occupy them; a
``JobStore`` holds the due times of recurring tasks and reminders so
scheduled work survives a restart.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from scheduling_engine.schemas.booking_schema import Appointment, Record
from scheduling_engine.schemas.job_schema import RecurringTaskState, ReminderJob, ReminderStatus
from scheduling_engine.schemas.resource_schema import Resource, ResourceType


class RecordStore(ABC):
    """Persistence for resources, bookings, appointments and hearings.

    Every method is atomic on its own and returns copies, so a caller
    never observes a half-applied update.
    """

    @abstractmethod
    def add_resource(self, resource: Resource) -> str:
        """Store a resource and return its id."""

    @abstractmethod
    def get_resource(self, resource_id: str) -> Optional[Resource]:
        """Return the resource or None."""

    @abstractmethod
    def list_resources(self, resource_type: Optional[ResourceType] = None) -> list[Resource]:
        """List resources, optionally of one type."""

    @abstractmethod
    def update_resource(self, resource_id: str, fields: dict[str, Any]) -> Resource:
        """Replace the given fields and return the updated resource."""

    @abstractmethod
    def insert(self, record: Record) -> str:
        """Store a new record and return its id."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[Record]:
        """Return a record by id (soft-deleted records included)."""

    @abstractmethod
    def find_by_code(self, confirmation_code: str) -> Optional[Appointment]:
        """Return the appointment carrying this confirmation code."""

    @abstractmethod
    def find_overlapping(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> list[Record]:
        """Records currently occupying ``resource_id`` that overlap ``[start, end)``."""

    @abstractmethod
    def find(
        self,
        resource_id: Optional[str] = None,
        kinds: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_deleted: bool = False,
    ) -> list[Record]:
        """Filtered query sorted by start.

        When ``start``/``end`` are given, only records whose interval
        overlaps ``[start, end)`` are returned.
        """

    @abstractmethod
    def update(self, record_id: str, fields: dict[str, Any]) -> Record:
        """Replace the given fields atomically and return the updated record."""

    @abstractmethod
    def soft_delete(self, record_id: str, deleted_at: datetime) -> None:
        """Hide a record from every query except ``get``."""


class JobStore(ABC):
    """Durable due-time table for recurring tasks and reminders."""

    @abstractmethod
    def save_task(self, state: RecurringTaskState) -> None:
        """Insert or replace a recurring task row."""

    @abstractmethod
    def load_task(self, name: str) -> Optional[RecurringTaskState]:
        """Return a recurring task row or None."""

    @abstractmethod
    def delete_task(self, name: str) -> None:
        """Remove a recurring task row."""

    @abstractmethod
    def list_tasks(self) -> list[RecurringTaskState]:
        """All recurring task rows."""

    @abstractmethod
    def save_reminder(self, job: ReminderJob) -> None:
        """Insert or replace a reminder row."""

    @abstractmethod
    def get_reminder(self, reminder_id: str) -> Optional[ReminderJob]:
        """Return a reminder row or None."""

    @abstractmethod
    def load_reminders(
        self,
        booking_id: Optional[str] = None,
        statuses: Optional[Iterable[ReminderStatus]] = None,
    ) -> list[ReminderJob]:
        """Reminder rows ordered by fire time."""
