"""
In-memory implementations of the storage contracts.

Suitable for a single process and for tests. Each store guards its maps
with one lock, so every call is atomic, and hands out deep copies so
callers can never mutate stored state in place.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Iterable, Optional

from scheduling_engine.errors import NotFoundError, StorageError
from scheduling_engine.scheduling.overlap import overlaps
from scheduling_engine.schemas.booking_schema import Appointment, Record
from scheduling_engine.schemas.job_schema import RecurringTaskState, ReminderJob, ReminderStatus
from scheduling_engine.schemas.resource_schema import Resource, ResourceType
from scheduling_engine.storage.base import JobStore, RecordStore

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """Dict-backed record store."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._resources: dict[str, Resource] = {}
        self._records: dict[str, Record] = {}
        self._codes: dict[str, str] = {}

    # =========================================================================
    # Resources
    # =========================================================================

    def add_resource(self, resource: Resource) -> str:
        with self._lock:
            if resource.id in self._resources:
                raise StorageError(f"Resource {resource.id} already exists")
            self._resources[resource.id] = resource.model_copy(deep=True)
            return resource.id

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        with self._lock:
            resource = self._resources.get(resource_id)
            return resource.model_copy(deep=True) if resource else None

    def list_resources(self, resource_type: Optional[ResourceType] = None) -> list[Resource]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in sorted(self._resources.values(), key=lambda r: r.id)
                if resource_type is None or r.type == resource_type
            ]

    def update_resource(self, resource_id: str, fields: dict[str, Any]) -> Resource:
        with self._lock:
            if resource_id not in self._resources:
                raise NotFoundError(f"Resource {resource_id} not found")
            updated = self._resources[resource_id].model_copy(update=fields, deep=True)
            self._resources[resource_id] = updated
            return updated.model_copy(deep=True)

    # =========================================================================
    # Records
    # =========================================================================

    def insert(self, record: Record) -> str:
        with self._lock:
            if record.id in self._records:
                raise StorageError(f"Record {record.id} already exists")
            if isinstance(record, Appointment):
                if record.confirmation_code in self._codes:
                    raise StorageError("Confirmation code already in use")
                self._codes[record.confirmation_code] = record.id
            self._records[record.id] = record.model_copy(deep=True)
            return record.id

    def get(self, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def find_by_code(self, confirmation_code: str) -> Optional[Appointment]:
        with self._lock:
            record_id = self._codes.get(confirmation_code)
            if record_id is None:
                return None
            record = self._records[record_id]
            if record.deleted_at is not None:
                return None
            return record.model_copy(deep=True)

    def find_overlapping(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> list[Record]:
        window = (start, end)
        with self._lock:
            matches = [
                r
                for r in self._records.values()
                if r.resource_id == resource_id
                and r.occupies
                and r.id != exclude_id
                and overlaps(window, r)
            ]
            return [r.model_copy(deep=True) for r in sorted(matches, key=lambda r: r.start)]

    def find(
        self,
        resource_id: Optional[str] = None,
        kinds: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_deleted: bool = False,
    ) -> list[Record]:
        kind_set = set(kinds) if kinds is not None else None
        status_set = {str(getattr(s, "value", s)) for s in statuses} if statuses is not None else None
        with self._lock:
            matches = []
            for record in self._records.values():
                if not include_deleted and record.deleted_at is not None:
                    continue
                if resource_id is not None and record.resource_id != resource_id:
                    continue
                if kind_set is not None and record.kind not in kind_set:
                    continue
                if status_set is not None and record.status.value not in status_set:
                    continue
                if start is not None and record.end <= start:
                    continue
                if end is not None and record.start >= end:
                    continue
                matches.append(record)
            return [r.model_copy(deep=True) for r in sorted(matches, key=lambda r: r.start)]

    def update(self, record_id: str, fields: dict[str, Any]) -> Record:
        with self._lock:
            if record_id not in self._records:
                raise NotFoundError(f"Record {record_id} not found")
            updated = self._records[record_id].model_copy(update=fields, deep=True)
            self._records[record_id] = updated
            return updated.model_copy(deep=True)

    def soft_delete(self, record_id: str, deleted_at: datetime) -> None:
        self.update(record_id, {"deleted_at": deleted_at})
        logger.debug("Record soft-deleted: %s", record_id)


class InMemoryJobStore(JobStore):
    """Dict-backed job store. Jobs do not survive the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[str, RecurringTaskState] = {}
        self._reminders: dict[str, ReminderJob] = {}

    def save_task(self, state: RecurringTaskState) -> None:
        with self._lock:
            self._tasks[state.name] = state.model_copy(deep=True)

    def load_task(self, name: str) -> Optional[RecurringTaskState]:
        with self._lock:
            state = self._tasks.get(name)
            return state.model_copy(deep=True) if state else None

    def delete_task(self, name: str) -> None:
        with self._lock:
            self._tasks.pop(name, None)

    def list_tasks(self) -> list[RecurringTaskState]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._tasks.values()]

    def save_reminder(self, job: ReminderJob) -> None:
        with self._lock:
            self._reminders[job.id] = job.model_copy(deep=True)

    def get_reminder(self, reminder_id: str) -> Optional[ReminderJob]:
        with self._lock:
            job = self._reminders.get(reminder_id)
            return job.model_copy(deep=True) if job else None

    def load_reminders(
        self,
        booking_id: Optional[str] = None,
        statuses: Optional[Iterable[ReminderStatus]] = None,
    ) -> list[ReminderJob]:
        status_set = set(statuses) if statuses is not None else None
        with self._lock:
            jobs = [
                j
                for j in self._reminders.values()
                if (booking_id is None or j.target_booking_id == booking_id)
                and (status_set is None or j.status in status_set)
            ]
            return [j.model_copy(deep=True) for j in sorted(jobs, key=lambda j: j.fire_at)]
