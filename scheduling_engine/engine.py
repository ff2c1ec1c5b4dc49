"""
SchedulingEngine: the single entry point callers construct and hold.

All mutable state lives on the engine instance and its collaborators
(record store, job store, clock, notifier), so several engines can run
side by side and tests can inject deterministic pieces. ``start()`` brings
up the background workers; ``stop()`` shuts them down.

Usage:
    with SchedulingEngine() as engine:
        engine.add_resource(lawyer)
        slots = engine.get_available_slots("2024-06-10", lawyer.id)
        booking = engine.book_resource(lawyer.id, slots[0].start, slots[0].end, "reception")
"""

from typing import Iterable, Optional

from scheduling_engine.clock import SystemClock
from scheduling_engine.config import AppConfig, settings
from scheduling_engine.logging_context import get_request_logger, request_context
from scheduling_engine.notifications import LoggingNotifier, Notifier
from scheduling_engine.scheduling.availability import AvailabilityChecker
from scheduling_engine.scheduling.booking_manager import BookingManager
from scheduling_engine.scheduling.maintenance import MaintenanceTasks
from scheduling_engine.scheduling.recurring import RecurringTaskScheduler
from scheduling_engine.scheduling.reminders import ReminderScheduler
from scheduling_engine.scheduling.slots import SlotGenerator
from scheduling_engine.scheduling.utilization import ResourceUtilizationAnalyzer
from scheduling_engine.schemas.booking_schema import (
    Appointment,
    AvailabilityResult,
    Booking,
    Hearing,
    OccupiedInterval,
    Record,
    ResourceSchedule,
    TimeSlot,
    UtilizationReport,
)
from scheduling_engine.schemas.job_schema import RecurrenceRule, RecurringTaskState, ReminderJob
from scheduling_engine.schemas.resource_schema import (
    AvailabilityWindow,
    Resource,
    ResourceStatus,
    ResourceType,
)
from scheduling_engine.storage import (
    InMemoryJobStore,
    InMemoryRecordStore,
    JobStore,
    RecordStore,
    SQLiteJobStore,
)
from scheduling_engine.utils import parse_date, parse_datetime

logger = get_request_logger(__name__)


class SchedulingEngine:
    """Facade over slot generation, booking, reminders, recurring tasks and analytics."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        job_store: Optional[JobStore] = None,
        notifier: Optional[Notifier] = None,
        clock=None,
        config: AppConfig = settings,
    ) -> None:
        self.config = config
        self.tz = config.scheduling.tzinfo
        self.clock = clock or SystemClock(self.tz)
        self.store = store or InMemoryRecordStore()
        if job_store is None:
            path = config.worker.job_store_path
            job_store = SQLiteJobStore(path) if path else InMemoryJobStore()
        self.job_store = job_store
        self.notifier = notifier or LoggingNotifier()

        self.slots = SlotGenerator(config, self.clock)
        self.availability = AvailabilityChecker(self.store, self.slots, self.clock)
        self.bookings = BookingManager(
            self.store, self.availability, self.slots, self.clock, config
        )
        self.reminders = ReminderScheduler(
            self.job_store,
            self.notifier,
            self.clock,
            config.reminders,
            poll_interval=config.worker.poll_interval_sec,
            is_active=self._record_active,
        )
        self.recurring = RecurringTaskScheduler(
            self.job_store,
            self.clock,
            max_workers=config.worker.recurring_max_workers,
            poll_interval=config.worker.poll_interval_sec,
        )
        self.analyzer = ResourceUtilizationAnalyzer(self.store, self.clock, self.tz)
        self.maintenance = MaintenanceTasks(
            self.store, self.analyzer, self.notifier, self.clock, config.maintenance, self.tz
        )
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        if self._started:
            return
        self.reminders.recover()
        self.maintenance.register(self.recurring)
        self.recurring.start()
        self.reminders.start()
        self._started = True
        logger.info("Scheduling engine started (%s)", self.config.service_name)

    def stop(self) -> None:
        if not self._started:
            return
        self.reminders.stop()
        self.recurring.stop()
        self._started = False
        logger.info("Scheduling engine stopped")

    def __enter__(self) -> "SchedulingEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # =========================================================================
    # Resources
    # =========================================================================

    def add_resource(self, resource: Resource) -> Resource:
        return self.bookings.add_resource(resource)

    def get_resource(self, resource_id: str) -> Resource:
        return self.bookings.get_resource(resource_id)

    def update_resource_availability(
        self, resource_id: str, windows: list[AvailabilityWindow]
    ) -> tuple[Resource, list[Record]]:
        return self.bookings.update_resource_availability(resource_id, windows)

    def set_resource_status(self, resource_id: str, status: ResourceStatus) -> Resource:
        return self.bookings.set_resource_status(resource_id, status)

    def resource_status(self, resource_id: str) -> ResourceStatus:
        """Status derived from the resource's setting and what is booked right now."""
        return self.availability.derive_resource_status(self.get_resource(resource_id))

    # =========================================================================
    # Availability
    # =========================================================================

    def get_available_slots(self, day, resource_id: str) -> list[TimeSlot]:
        """Open slots on ``day`` (a date or ``YYYY-MM-DD``) for a resource."""
        return self.availability.get_available_slots(parse_date(day), resource_id)

    def check_availability(self, resource_id: str, start, end) -> AvailabilityResult:
        return self.availability.check_availability(
            resource_id, parse_datetime(start, self.tz), parse_datetime(end, self.tz)
        )

    def find_available_resources(
        self,
        resource_type: ResourceType,
        start,
        end,
        capacity: int = 0,
        features: Iterable[str] = (),
    ) -> list[Resource]:
        return self.availability.find_available_resources(
            resource_type,
            parse_datetime(start, self.tz),
            parse_datetime(end, self.tz),
            capacity=capacity,
            features=features,
        )

    # =========================================================================
    # Booking
    # =========================================================================

    def book_resource(
        self,
        resource_id: str,
        start,
        end,
        requester: str,
        purpose: str = "",
        trusted: bool = True,
    ) -> Booking:
        with request_context("book_resource"), self.bookings.resource_lock(resource_id):
            booking = self.bookings.book_resource(
                resource_id,
                parse_datetime(start, self.tz),
                parse_datetime(end, self.tz),
                requester,
                purpose=purpose,
                trusted=trusted,
            )
            self._arm_reminders(booking)
        return booking

    def book_appointment(
        self,
        lawyer_id: str,
        service_id: str,
        client_name: str,
        email: str,
        phone: str,
        start,
        duration_minutes: Optional[int] = None,
        message: Optional[str] = None,
        trusted: bool = False,
    ) -> Appointment:
        with request_context("book_appointment"), self.bookings.resource_lock(lawyer_id):
            appointment = self.bookings.book_appointment(
                lawyer_id,
                service_id,
                client_name,
                email,
                phone,
                parse_datetime(start, self.tz),
                duration_minutes=duration_minutes,
                message=message,
                trusted=trusted,
            )
            self._arm_reminders(appointment)
        return appointment

    def schedule_hearing(
        self,
        case_id: str,
        lawyer_id: str,
        date,
        duration_minutes: Optional[int] = None,
        court: Optional[str] = None,
        purpose: str = "",
    ) -> tuple[Hearing, list[OccupiedInterval]]:
        with request_context("schedule_hearing"), self.bookings.resource_lock(lawyer_id):
            hearing, conflicts = self.bookings.schedule_hearing(
                case_id,
                lawyer_id,
                parse_datetime(date, self.tz),
                duration_minutes=duration_minutes,
                court=court,
                purpose=purpose,
            )
            self._arm_reminders(hearing)
        return hearing, conflicts

    def confirm_booking(self, record_id: str) -> Record:
        with request_context("confirm_booking"):
            return self.bookings.confirm_booking(record_id)

    def cancel_booking(self, record_id: str, reason: Optional[str] = None) -> Record:
        """Cancel a record; reminders are dropped and the client told only on the first cancel."""
        with request_context("cancel_booking"):
            with self._record_lock(record_id):
                record, changed = self.bookings.cancel(record_id, reason)
                if changed:
                    self.reminders.cancel_reminders_for(record_id)
            if changed:
                self._notify(record, f"Your booking on {record.start.strftime('%Y-%m-%d %H:%M')} "
                                     f"has been cancelled.")
        return record

    def cancel_appointment_by_code(self, confirmation_code: str, reason: Optional[str] = None) -> Record:
        appointment = self.bookings.get_appointment_by_code(confirmation_code)
        return self.cancel_booking(appointment.id, reason)

    def get_appointment_by_code(self, confirmation_code: str) -> Appointment:
        return self.bookings.get_appointment_by_code(confirmation_code)

    def complete_booking(self, record_id: str, outcome: Optional[str] = None) -> Record:
        with request_context("complete_booking"), self._record_lock(record_id):
            record = self.bookings.complete_booking(record_id, outcome)
            self.reminders.cancel_reminders_for(record_id)
        return record

    def reschedule_appointment(self, record_id: str, new_start) -> Record:
        """Move a booking or appointment and re-arm its reminders for the new time."""
        with request_context("reschedule_appointment"):
            with self._record_lock(record_id):
                record = self.bookings.reschedule_appointment(
                    record_id, parse_datetime(new_start, self.tz)
                )
                self.reminders.cancel_reminders_for(record_id)
                self._arm_reminders(record)
            self._notify(record, f"Your booking has been moved to "
                                 f"{record.start.strftime('%Y-%m-%d %H:%M')}.")
        return record

    def cancel_hearing(self, hearing_id: str) -> Hearing:
        with request_context("cancel_hearing"), self._record_lock(hearing_id):
            hearing = self.bookings.cancel_hearing(hearing_id)
            self.reminders.cancel_reminders_for(hearing_id)
        return hearing

    def record_hearing_outcome(self, hearing_id: str, outcome: str) -> Hearing:
        with request_context("record_hearing_outcome"), self._record_lock(hearing_id):
            hearing = self.bookings.record_hearing_outcome(hearing_id, outcome)
            self.reminders.cancel_reminders_for(hearing_id)
        return hearing

    def get_booking(self, record_id: str) -> Record:
        return self.bookings.get_booking(record_id)

    def get_resource_schedule(self, resource_id: str, start, end) -> ResourceSchedule:
        return self.bookings.get_resource_schedule(
            resource_id, parse_datetime(start, self.tz), parse_datetime(end, self.tz)
        )

    # =========================================================================
    # Reminders and recurring tasks
    # =========================================================================

    def reminders_for(self, record_id: str) -> list[ReminderJob]:
        return self.reminders.reminders_for(record_id)

    def schedule_task(self, name: str, rule: RecurrenceRule, action) -> RecurringTaskState:
        return self.recurring.schedule_task(name, rule, action)

    def _record_lock(self, record_id: str):
        return self.bookings.resource_lock(self.bookings.get_booking(record_id).resource_id)

    def _record_active(self, record_id: str) -> bool:
        record = self.store.get(record_id)
        return record is not None and record.occupies

    def _recipient(self, record: Record) -> str:
        if isinstance(record, Appointment):
            return record.email
        if isinstance(record, Booking):
            return record.requester
        return self.get_resource(record.resource_id).contact

    def _arm_reminders(self, record: Record) -> None:
        """Reminders are a side effect of a committed record; failures are logged, not raised."""
        if isinstance(record, Hearing):
            subject = f"Court hearing for case {record.case_id}"
            offsets = self.config.reminders.hearing_offsets_minutes
        else:
            subject = f"{record.kind.capitalize()} {record.id}"
            offsets = None
        try:
            self.reminders.schedule_reminders(
                record.id, record.start, self._recipient(record), subject, offsets=offsets
            )
        except Exception:
            logger.exception("Could not arm reminders for %s", record.id)

    def _notify(self, record: Record, message: str) -> None:
        try:
            self.notifier.notify(self._recipient(record), message, self.clock.now())
        except Exception:
            logger.exception("Notification for %s failed", record.id)

    # =========================================================================
    # Analytics
    # =========================================================================

    def calculate_utilization(self, resource_id: str, start, end) -> float:
        return self.analyzer.calculate_utilization(
            resource_id, parse_datetime(start, self.tz), parse_datetime(end, self.tz)
        )

    def utilization_report(self, resource_id: str, start, end) -> UtilizationReport:
        return self.analyzer.utilization_report(
            resource_id, parse_datetime(start, self.tz), parse_datetime(end, self.tz)
        )

    def status_breakdown(self, resource_id: Optional[str] = None) -> dict:
        return self.analyzer.status_breakdown(resource_id)
