"""
Booking commit, cancel and reschedule with a per-resource critical section.

Availability is re-checked inside the resource's lock at commit time, so
two concurrent requests for the same resource and overlapping interval
can never both succeed. Different resources use different locks and
proceed in parallel. Once a call holds the lock it runs to completion:
the record is either fully written or not written at all.
"""

import threading
from datetime import datetime, timedelta
from typing import Any, Optional

import pydantic

from scheduling_engine.config import AppConfig
from scheduling_engine.errors import (
    ConflictError,
    NotFoundError,
    SchedulingError,
    StateError,
    StorageError,
    ValidationError,
)
from scheduling_engine.logging_context import get_request_logger
from scheduling_engine.scheduling.availability import AvailabilityChecker
from scheduling_engine.scheduling.lifecycle import BookingLifecycle, BookingTrigger
from scheduling_engine.scheduling.slots import SlotGenerator
from scheduling_engine.schemas.booking_schema import (
    Appointment,
    Booking,
    BookingStatus,
    Hearing,
    HearingStatus,
    OccupiedInterval,
    Record,
    ResourceSchedule,
)
from scheduling_engine.schemas.resource_schema import (
    SETTABLE_STATUSES,
    AvailabilityWindow,
    Resource,
    ResourceStatus,
)
from scheduling_engine.storage.base import RecordStore
from scheduling_engine.utils import generate_confirmation_code, generate_id, iter_days, localize

logger = get_request_logger(__name__)

MAX_CODE_ATTEMPTS = 5


class ResourceLocks:
    """Lazily created re-entrant lock per resource id.

    Re-entrant so the engine can hold a resource's lock across a commit
    and the reminder bookkeeping that goes with it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def for_resource(self, resource_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = self._locks[resource_id] = threading.RLock()
            return lock


def _build(model: type, **fields: Any):
    """Construct a record, reporting pydantic failures as our ValidationError."""
    try:
        return model(**fields)
    except pydantic.ValidationError as exc:
        errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
        raise ValidationError(f"Invalid {model.__name__.lower()}: {'; '.join(errors)}", errors) from None


class BookingManager:
    """
    Commits, cancels and reschedules bookings and appointments.

    All mutations of a resource's commitments run inside that resource's
    lock, so the availability check and the write are a single atomic
    unit with respect to other commits on the same resource.
    """

    def __init__(
        self,
        store: RecordStore,
        availability: AvailabilityChecker,
        slot_generator: SlotGenerator,
        clock,
        config: AppConfig,
    ) -> None:
        self.store = store
        self.availability = availability
        self.slots = slot_generator
        self.clock = clock
        self.config = config
        self.tz = config.scheduling.tzinfo
        self._locks = ResourceLocks()

    def resource_lock(self, resource_id: str) -> threading.RLock:
        """The lock every commit and transition on ``resource_id`` runs under."""
        return self._locks.for_resource(resource_id)

    # =========================================================================
    # Resources
    # =========================================================================

    def add_resource(self, resource: Resource) -> Resource:
        self.store.add_resource(resource)
        logger.info("Resource registered: %s (%s)", resource.id, resource.type.value)
        return resource

    def get_resource(self, resource_id: str) -> Resource:
        resource = self.store.get_resource(resource_id)
        if resource is None:
            raise NotFoundError(f"Resource {resource_id} not found")
        return resource

    def update_resource_availability(
        self, resource_id: str, windows: list[AvailabilityWindow]
    ) -> tuple[Resource, list[Record]]:
        """Replace a resource's weekly windows.

        Returns the updated resource and the active future commitments that
        now fall outside the new windows, so the caller can follow up.
        """
        with self._locks.for_resource(resource_id):
            self.get_resource(resource_id)
            updated = self.store.update_resource(resource_id, {"availability": windows})
            now = self.clock.now()
            stranded = [
                r
                for r in self.store.find(resource_id=resource_id, start=now)
                if r.occupies
                and not isinstance(r, Hearing)
                and not any(w.covers(localize(r.start, self.tz), localize(r.end, self.tz)) for w in windows)
            ]
        if stranded:
            logger.warning(
                "Resource %s availability changed; %d booking(s) now outside working windows",
                resource_id, len(stranded),
            )
        return updated, stranded

    def set_resource_status(self, resource_id: str, status: ResourceStatus) -> Resource:
        """Set an operator status. Busy/reserved are derived and cannot be set."""
        if status not in SETTABLE_STATUSES:
            raise ValidationError(
                f"Status '{status.value}' is derived from bookings and cannot be set directly"
            )
        self.get_resource(resource_id)
        return self.store.update_resource(resource_id, {"status": status})

    # =========================================================================
    # Queries
    # =========================================================================

    def get_booking(self, record_id: str) -> Record:
        """Return a booking, appointment or hearing by id."""
        record = self.store.get(record_id)
        if record is None or record.deleted_at is not None:
            raise NotFoundError(f"Booking {record_id} not found")
        return record

    def get_appointment_by_code(self, confirmation_code: str) -> Appointment:
        appointment = self.store.find_by_code(confirmation_code)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    def get_resource_schedule(self, resource_id: str, start: datetime, end: datetime) -> ResourceSchedule:
        """Commitments on a resource inside ``[start, end)`` plus the per-slot open/taken map."""
        start = localize(start, self.tz)
        end = localize(end, self.tz)
        if end <= start:
            raise ValidationError("Schedule range end must be after start")
        resource = self.get_resource(resource_id)
        records = [
            r
            for r in self.store.find(resource_id=resource_id, start=start, end=end)
            if r.status not in (BookingStatus.CANCELLED, HearingStatus.CANCELLED)
        ]
        availability = [
            slot
            for day in iter_days(start.date(), (end - timedelta(microseconds=1)).date())
            for slot in self.availability.day_availability(resource, day)
            if slot.start >= start and slot.end <= end
        ]
        return ResourceSchedule(
            resource=resource,
            bookings=[r for r in records if isinstance(r, Booking)],
            appointments=[r for r in records if isinstance(r, Appointment)],
            hearings=[r for r in records if isinstance(r, Hearing)],
            availability=availability,
        )

    # =========================================================================
    # Commit
    # =========================================================================

    def _normalize_interval(self, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        if not isinstance(start, datetime) or not isinstance(end, datetime):
            raise ValidationError("start and end must be datetimes")
        start = localize(start, self.tz)
        end = localize(end, self.tz)
        if end <= start:
            raise ValidationError(
                f"End {end.isoformat()} must be after start {start.isoformat()}"
            )
        return start, end

    def _insert(self, record: Record) -> None:
        try:
            self.store.insert(record)
        except SchedulingError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to store {record.kind} {record.id}: {exc}") from exc

    def _update(self, record_id: str, fields: dict[str, Any]) -> Record:
        try:
            return self.store.update(record_id, fields)
        except SchedulingError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to update {record_id}: {exc}") from exc

    def _commit(self, record: Record) -> Record:
        """Check availability and insert, atomically for the record's resource."""
        with self._locks.for_resource(record.resource_id):
            result = self.availability.check_availability(record.resource_id, record.start, record.end)
            if not result.available:
                logger.info(
                    "Conflict on %s for %s-%s (%d overlapping, outside hours: %s)",
                    record.resource_id, record.start.isoformat(), record.end.isoformat(),
                    len(result.conflicts), result.schedule_conflict,
                )
                raise ConflictError(
                    "Resource not available for the requested time period",
                    conflicts=result.conflicts,
                    schedule_conflict=result.schedule_conflict,
                )
            self._insert(record)
        return record

    def book_resource(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        requester: str,
        purpose: str = "",
        trusted: bool = True,
    ) -> Booking:
        """
        Book a resource for ``[start, end)``.

        Trusted callers get a confirmed booking straight away; others get
        a pending one that still blocks the interval.

        Raises:
            ValidationError: Bad interval, or start outside the booking window.
            NotFoundError: Unknown resource.
            ConflictError: Interval taken or outside the resource's windows.
        """
        start, end = self._normalize_interval(start, end)
        if not requester or not requester.strip():
            raise ValidationError("requester is required")
        self.slots.validate_date(start)
        self.get_resource(resource_id)

        now = self.clock.now()
        booking = _build(
            Booking,
            id=generate_id("bk"),
            resource_id=resource_id,
            start=start,
            end=end,
            purpose=purpose,
            requester=requester.strip(),
            status=BookingStatus.CONFIRMED if trusted else BookingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._commit(booking)
        logger.info(
            "Booking created: %s on %s %s-%s (%s)",
            booking.id, resource_id, start.isoformat(), end.isoformat(), booking.status.value,
        )
        return booking

    def book_appointment(
        self,
        lawyer_id: str,
        service_id: str,
        client_name: str,
        email: str,
        phone: str,
        start: datetime,
        duration_minutes: Optional[int] = None,
        message: Optional[str] = None,
        trusted: bool = False,
    ) -> Appointment:
        """Book a client appointment with a lawyer. Public callers get a pending appointment."""
        duration = duration_minutes or self.config.scheduling.slot_duration_minutes
        if duration <= 0:
            raise ValidationError(f"Duration must be positive, got {duration}")
        start, end = self._normalize_interval(start, start + timedelta(minutes=duration))
        self.slots.validate_slot(start)
        self.get_resource(lawyer_id)

        now = self.clock.now()
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_confirmation_code()
            if self.store.find_by_code(code) is None:
                break
        else:
            raise StorageError("Could not allocate a unique confirmation code")

        appointment = _build(
            Appointment,
            id=generate_id("apt"),
            lawyer_id=lawyer_id,
            service_id=service_id,
            client_name=client_name,
            email=email,
            phone=phone,
            start=start,
            end=end,
            message=message,
            confirmation_code=code,
            status=BookingStatus.CONFIRMED if trusted else BookingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._commit(appointment)
        logger.info(
            "Appointment booked: %s with %s at %s (%s)",
            appointment.id, lawyer_id, start.isoformat(), appointment.status.value,
        )
        return appointment

    def schedule_hearing(
        self,
        case_id: str,
        lawyer_id: str,
        date: datetime,
        duration_minutes: Optional[int] = None,
        court: Optional[str] = None,
        purpose: str = "",
    ) -> tuple[Hearing, list[OccupiedInterval]]:
        """
        Record a court hearing against a lawyer.

        Hearing dates are set by the court, so the hearing is always
        recorded; any commitments it collides with are returned and
        logged so they can be moved.
        """
        if not isinstance(date, datetime):
            raise ValidationError("Hearing date must be a datetime")
        self.get_resource(lawyer_id)
        now = self.clock.now()
        hearing = _build(
            Hearing,
            id=generate_id("hr"),
            case_id=case_id,
            lawyer_id=lawyer_id,
            date=localize(date, self.tz),
            duration_minutes=duration_minutes or self.config.scheduling.hearing_duration_minutes,
            court=court,
            purpose=purpose,
            created_at=now,
            updated_at=now,
        )
        with self._locks.for_resource(lawyer_id):
            result = self.availability.check_availability(lawyer_id, hearing.start, hearing.end)
            self._insert(hearing)
        if result.conflicts:
            logger.warning(
                "Hearing %s for case %s overlaps %d commitment(s) of %s",
                hearing.id, case_id, len(result.conflicts), lawyer_id,
            )
        logger.info("Hearing scheduled: %s (case %s) at %s", hearing.id, case_id, hearing.start.isoformat())
        return hearing, result.conflicts

    # =========================================================================
    # Transitions
    # =========================================================================

    def _require_commitment(self, record_id: str) -> Record:
        record = self.get_booking(record_id)
        if isinstance(record, Hearing):
            raise StateError(f"{record_id} is a hearing; use the hearing operations")
        return record

    def _transition(self, record_id: str, trigger: BookingTrigger, **fields: Any) -> Record:
        record = self._require_commitment(record_id)
        with self._locks.for_resource(record.resource_id):
            current = self._require_commitment(record_id)
            new_status = BookingLifecycle.next_status(current.status, trigger)
            return self._update(
                record_id, {"status": new_status, "updated_at": self.clock.now(), **fields}
            )

    def confirm_booking(self, record_id: str) -> Record:
        updated = self._transition(record_id, BookingTrigger.CONFIRM)
        logger.info("Booking confirmed: %s", record_id)
        return updated

    def cancel_booking(self, record_id: str, reason: Optional[str] = None) -> Record:
        """
        Cancel a booking or appointment, releasing its interval.

        Cancelling an already cancelled record returns it unchanged.

        Raises:
            NotFoundError: Unknown id.
            StateError: The record is completed.
        """
        record, _ = self.cancel(record_id, reason)
        return record

    def cancel(self, record_id: str, reason: Optional[str] = None) -> tuple[Record, bool]:
        """Cancel and report whether this call made the change.

        The flag is decided under the resource lock, so of several
        concurrent cancels exactly one sees ``True``.
        """
        record = self._require_commitment(record_id)
        with self._locks.for_resource(record.resource_id):
            current = self._require_commitment(record_id)
            if current.status == BookingStatus.CANCELLED:
                logger.info("Booking %s already cancelled; nothing to do", record_id)
                return current, False
            new_status = BookingLifecycle.next_status(current.status, BookingTrigger.CANCEL)
            now = self.clock.now()
            updated = self._update(
                record_id,
                {
                    "status": new_status,
                    "cancellation_reason": reason,
                    "cancelled_at": now,
                    "updated_at": now,
                },
            )
        logger.info("Booking cancelled: %s (reason: %s)", record_id, reason or "none given")
        return updated, True

    def cancel_appointment_by_code(self, confirmation_code: str, reason: Optional[str] = None) -> Appointment:
        appointment = self.get_appointment_by_code(confirmation_code)
        return self.cancel_booking(appointment.id, reason)

    def complete_booking(self, record_id: str, outcome: Optional[str] = None) -> Record:
        """Mark a confirmed booking completed once its interval has elapsed."""
        record = self._require_commitment(record_id)
        now = self.clock.now()
        if now < record.end:
            raise StateError(
                f"Booking {record_id} cannot be completed before it ends at {record.end.isoformat()}"
            )
        updated = self._transition(record_id, BookingTrigger.COMPLETE, completed_at=now, outcome=outcome)
        logger.info("Booking completed: %s", record_id)
        return updated

    def reschedule_appointment(self, record_id: str, new_start: datetime) -> Record:
        """
        Move a booking or appointment to ``new_start``, keeping its duration.

        The new interval is validated inside the resource lock and start/end
        are replaced in one store update. If the new interval is not
        available the original record is left exactly as it was.

        Raises:
            ValidationError: Bad new start.
            NotFoundError: Unknown id.
            StateError: Record is cancelled or completed.
            ConflictError: New interval is taken.
        """
        record = self._require_commitment(record_id)
        if not isinstance(new_start, datetime):
            raise ValidationError("new_start must be a datetime")
        new_start = localize(new_start, self.tz)
        if isinstance(record, Appointment):
            self.slots.validate_slot(new_start)
        else:
            self.slots.validate_date(new_start)

        with self._locks.for_resource(record.resource_id):
            current = self._require_commitment(record_id)
            BookingLifecycle.next_status(current.status, BookingTrigger.RESCHEDULE)
            new_end = new_start + current.duration
            result = self.availability.check_availability(
                current.resource_id, new_start, new_end, exclude_id=record_id
            )
            if not result.available:
                raise ConflictError(
                    "Time slot not available",
                    conflicts=result.conflicts,
                    schedule_conflict=result.schedule_conflict,
                )
            updated = self._update(
                record_id,
                {
                    "start": new_start,
                    "end": new_end,
                    "rescheduled": True,
                    "updated_at": self.clock.now(),
                },
            )
        logger.info("Booking rescheduled: %s to %s", record_id, new_start.isoformat())
        return updated

    # =========================================================================
    # Hearings
    # =========================================================================

    def _update_hearing(self, hearing_id: str, **fields: Any) -> Hearing:
        record = self.get_booking(hearing_id)
        if not isinstance(record, Hearing):
            raise NotFoundError(f"Hearing {hearing_id} not found")
        with self._locks.for_resource(record.lawyer_id):
            current = self.get_booking(hearing_id)
            if current.status in (HearingStatus.COMPLETED, HearingStatus.CANCELLED):
                raise StateError(f"Hearing {hearing_id} is already {current.status.value}")
            return self._update(hearing_id, {"updated_at": self.clock.now(), **fields})

    def cancel_hearing(self, hearing_id: str) -> Hearing:
        hearing = self._update_hearing(hearing_id, status=HearingStatus.CANCELLED)
        logger.info("Hearing cancelled: %s", hearing_id)
        return hearing

    def record_hearing_outcome(self, hearing_id: str, outcome: str) -> Hearing:
        hearing = self._update_hearing(hearing_id, status=HearingStatus.COMPLETED, outcome=outcome)
        logger.info("Hearing outcome recorded: %s", hearing_id)
        return hearing
