"""
Availability checking across every kind of commitment.

A lawyer is consumed by resource bookings, client appointments and court
hearings alike, so "is this resource free?" is a merge across all three
record kinds plus the resource's own weekly windows. Every overlap test
goes through ``overlaps``.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from scheduling_engine.errors import NotFoundError
from scheduling_engine.scheduling.overlap import overlaps
from scheduling_engine.scheduling.slots import SlotGenerator
from scheduling_engine.schemas.booking_schema import (
    AvailabilityResult,
    BookingStatus,
    OccupiedInterval,
    Record,
    ScheduledSlot,
    TimeSlot,
)
from scheduling_engine.schemas.resource_schema import Resource, ResourceStatus, ResourceType
from scheduling_engine.storage.base import RecordStore
from scheduling_engine.utils import day_bounds, localize

logger = logging.getLogger(__name__)

# Operator-set statuses that take a resource out of service entirely
BLOCKING_STATUSES = frozenset({ResourceStatus.MAINTENANCE, ResourceStatus.OUT_OF_OFFICE})


def _to_interval(record: Record) -> OccupiedInterval:
    return OccupiedInterval(
        start=record.start,
        end=record.end,
        source_kind=record.kind,
        source_id=record.id,
    )


def check_schedule_conflict(resource: Resource, start: datetime, end: datetime) -> bool:
    """True when ``[start, end)`` is not inside any of the resource's weekly windows.

    A resource with no windows configured has no working time at all.
    """
    return not any(window.covers(start, end) for window in resource.availability)


class AvailabilityChecker:
    """Read-only availability queries over a ``RecordStore``."""

    def __init__(self, store: RecordStore, slot_generator: SlotGenerator, clock) -> None:
        self.store = store
        self.slots = slot_generator
        self.clock = clock
        self.tz = slot_generator.tz

    def _require_resource(self, resource_id: str) -> Resource:
        resource = self.store.get_resource(resource_id)
        if resource is None:
            raise NotFoundError(f"Resource {resource_id} not found")
        return resource

    def get_occupied_intervals(self, resource_id: str, day: date) -> list[OccupiedInterval]:
        """Every active booking, appointment and hearing on ``resource_id`` that touches ``day``."""
        start, end = day_bounds(day, self.tz)
        records = self.store.find(resource_id=resource_id, start=start, end=end)
        intervals = [_to_interval(r) for r in records if r.occupies]
        return sorted(intervals, key=lambda i: (i.start, i.end))

    def day_availability(self, resource: Resource, day: date) -> list[ScheduledSlot]:
        """All generated slots for ``day``, each flagged open or taken."""
        occupied = self.get_occupied_intervals(resource.id, day)
        blocked = resource.status in BLOCKING_STATUSES
        return [
            ScheduledSlot(
                start=slot.start,
                end=slot.end,
                available=not blocked
                and not check_schedule_conflict(resource, slot.start, slot.end)
                and not any(overlaps(slot, busy) for busy in occupied),
            )
            for slot in self.slots.generate(day)
        ]

    def get_available_slots(self, day: date, resource_id: str) -> list[TimeSlot]:
        """
        Open slots for a resource on a date.

        Raises:
            ValidationError: If ``day`` is outside the booking window.
            NotFoundError: If the resource does not exist.
        """
        resource = self._require_resource(resource_id)
        self.slots.validate_date(day)
        open_slots = [
            TimeSlot(start=s.start, end=s.end)
            for s in self.day_availability(resource, day)
            if s.available
        ]
        logger.debug(
            "Resource %s on %s: %d open slot(s)", resource_id, day.isoformat(), len(open_slots)
        )
        return open_slots

    def check_availability(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """Check one interval against commitments, weekly windows and resource status."""
        resource = self._require_resource(resource_id)
        start = localize(start, self.tz)
        end = localize(end, self.tz)
        conflicts = [
            _to_interval(r)
            for r in self.store.find_overlapping(resource_id, start, end, exclude_id=exclude_id)
        ]
        schedule_conflict = (
            resource.status in BLOCKING_STATUSES
            or check_schedule_conflict(resource, start, end)
        )
        return AvailabilityResult(
            available=not conflicts and not schedule_conflict,
            conflicts=conflicts,
            schedule_conflict=schedule_conflict,
        )

    def find_available_resources(
        self,
        resource_type: ResourceType,
        start: datetime,
        end: datetime,
        capacity: int = 0,
        features: Iterable[str] = (),
    ) -> list[Resource]:
        """Resources of a type with enough capacity and every feature, free for the interval."""
        wanted = set(features)
        candidates = [
            r
            for r in self.store.list_resources(resource_type)
            if r.capacity >= capacity
            and wanted.issubset(r.features)
            and r.status not in BLOCKING_STATUSES
        ]
        return [r for r in candidates if self.check_availability(r.id, start, end).available]

    def derive_resource_status(self, resource: Resource, now: Optional[datetime] = None) -> ResourceStatus:
        """
        Current status computed from bookings.

        Maintenance and out-of-office are honoured as set; otherwise a
        confirmed commitment covering ``now`` means busy, a pending one
        means reserved, and anything else is available.
        """
        if resource.status in BLOCKING_STATUSES:
            return resource.status
        now = now or self.clock.now()
        current = self.store.find_overlapping(
            resource.id, now, now + timedelta(microseconds=1)
        )
        if any(r.status != BookingStatus.PENDING for r in current):
            return ResourceStatus.BUSY
        if current:
            return ResourceStatus.RESERVED
        return ResourceStatus.AVAILABLE
