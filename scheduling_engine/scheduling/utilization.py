"""Resource utilization metrics over completed bookings."""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from scheduling_engine.errors import NotFoundError, ValidationError
from scheduling_engine.schemas.booking_schema import (
    ACTIVE_BOOKING_STATUSES,
    ACTIVE_HEARING_STATUSES,
    BookingStatus,
    UtilizationReport,
)
from scheduling_engine.schemas.resource_schema import Resource
from scheduling_engine.storage.base import RecordStore
from scheduling_engine.utils import iter_days, localize

logger = logging.getLogger(__name__)

COUNTED_KINDS = ("booking", "appointment")


def _merge(intervals: list[tuple[datetime, datetime]]) -> list[tuple[datetime, datetime]]:
    merged: list[tuple[datetime, datetime]] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _clipped_minutes(start: datetime, end: datetime, lo: datetime, hi: datetime) -> float:
    overlap = min(end, hi) - max(start, lo)
    return max(overlap.total_seconds(), 0.0) / 60


class ResourceUtilizationAnalyzer:
    """Read-only analytics over a RecordStore."""

    def __init__(self, store: RecordStore, clock, tz) -> None:
        self.store = store
        self.clock = clock
        self.tz = tz

    def _require_resource(self, resource_id: str) -> Resource:
        resource = self.store.get_resource(resource_id)
        if resource is None:
            raise NotFoundError(f"Resource {resource_id} not found")
        return resource

    def _range(self, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        start = localize(start, self.tz)
        end = localize(end, self.tz)
        if end <= start:
            raise ValidationError("Range end must be after start")
        return start, end

    def working_minutes(self, resource: Resource, start: datetime, end: datetime) -> float:
        """Minutes of the resource's weekly windows that fall inside ``[start, end)``."""
        total = 0.0
        last_day = (end - timedelta(microseconds=1)).date()
        for day in iter_days(start.date(), last_day):
            windows = [w.interval_on(day, self.tz) for w in resource.windows_for(day)]
            for w_start, w_end in _merge([w for w in windows if w is not None]):
                total += _clipped_minutes(w_start, w_end, start, end)
        return total

    def booked_minutes(self, resource_id: str, start: datetime, end: datetime) -> tuple[float, int]:
        """Completed booking/appointment minutes clipped to the range, and how many records."""
        records = self.store.find(
            resource_id=resource_id,
            kinds=COUNTED_KINDS,
            statuses=[BookingStatus.COMPLETED],
            start=start,
            end=end,
        )
        minutes = sum(_clipped_minutes(r.start, r.end, start, end) for r in records)
        return minutes, len(records)

    def calculate_utilization(self, resource_id: str, start: datetime, end: datetime) -> float:
        """
        Percentage of working time in ``[start, end)`` used by completed bookings.

        Returns 0.0 when the resource has no working time in the range.
        """
        return self.utilization_report(resource_id, start, end).utilization

    def utilization_report(self, resource_id: str, start: datetime, end: datetime) -> UtilizationReport:
        start, end = self._range(start, end)
        resource = self._require_resource(resource_id)
        available = self.working_minutes(resource, start, end)
        booked, count = self.booked_minutes(resource_id, start, end)
        utilization = round(booked / available * 100, 2) if available > 0 else 0.0
        logger.debug(
            "Utilization %s %s-%s: %.2f%% (%d booking(s))",
            resource_id, start.isoformat(), end.isoformat(), utilization, count,
        )
        return UtilizationReport(
            resource_id=resource_id,
            start=start,
            end=end,
            utilization=utilization,
            total_bookings=count,
            total_hours=round(booked / 60, 2),
            working_hours=round(available / 60, 2),
        )

    def status_breakdown(self, resource_id: Optional[str] = None) -> dict:
        """Counts of records by kind and status, plus how many active ones are still ahead."""
        now = self.clock.now()
        records = self.store.find(resource_id=resource_id)
        by_status: dict[str, Counter] = {}
        upcoming = 0
        for record in records:
            by_status.setdefault(record.kind, Counter())[record.status.value] += 1
            active = ACTIVE_HEARING_STATUSES if record.kind == "hearing" else ACTIVE_BOOKING_STATUSES
            if record.status in active and record.start > now:
                upcoming += 1
        return {
            "total": len(records),
            "by_kind": {kind: dict(counts) for kind, counts in by_status.items()},
            "upcoming": upcoming,
        }
