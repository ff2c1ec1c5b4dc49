"""
Per-booking reminders at configurable offsets before the start.

Every reminder moves ``pending -> dispatching`` under the scheduler lock
before the notifier is called, and cancellation under the same lock only
touches ``pending`` reminders. So a cancel racing a dispatch either stops
the reminder or lets it finish; it never fires after a completed cancel.
A claim also asks whether the owning booking is still active, so a
reminder armed for a booking that has since been cancelled is dropped.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from scheduling_engine.config import ReminderConfig
from scheduling_engine.logging_context import get_request_logger, request_context
from scheduling_engine.scheduling.worker import PollingWorker
from scheduling_engine.schemas.job_schema import ReminderJob, ReminderStatus
from scheduling_engine.storage.base import JobStore
from scheduling_engine.utils import generate_id

logger = get_request_logger(__name__)


def _describe_offset(minutes: int) -> str:
    if minutes % 1440 == 0:
        days = minutes // 1440
        return f"{days} day{'s' if days != 1 else ''}"
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


class ReminderScheduler(PollingWorker):
    """Arms, cancels and dispatches reminders stored in a JobStore."""

    def __init__(
        self,
        job_store: JobStore,
        notifier,
        clock,
        config: ReminderConfig,
        poll_interval: float = 1.0,
        is_active: Optional[Callable[[str], bool]] = None,
    ) -> None:
        super().__init__("reminders", poll_interval)
        self.job_store = job_store
        self.notifier = notifier
        self.clock = clock
        self.offsets = config.offsets_minutes
        self.grace = timedelta(seconds=config.grace_seconds)
        self.is_active = is_active
        self._lock = threading.Lock()

    def compute_fire_times(
        self, start: datetime, offsets: Optional[Iterable[int]] = None
    ) -> list[tuple[int, datetime]]:
        """``(offset, start - offset)`` pairs in firing order, dropping any already past."""
        now = self.clock.now()
        pairs = [
            (offset, start - timedelta(minutes=offset))
            for offset in set(offsets if offsets is not None else self.offsets)
        ]
        return sorted(
            ((offset, fire_at) for offset, fire_at in pairs if fire_at > now),
            key=lambda p: p[1],
        )

    def schedule_reminders(
        self,
        booking_id: str,
        start: datetime,
        recipient: str,
        subject: str,
        offsets: Optional[Iterable[int]] = None,
    ) -> list[ReminderJob]:
        """Arm one reminder per offset. Offsets whose fire time has passed are skipped."""
        jobs = [
            ReminderJob(
                id=generate_id("rem"),
                target_booking_id=booking_id,
                recipient=recipient,
                fire_at=fire_at,
                offset_minutes=offset,
                message=f"Reminder: {subject} in {_describe_offset(offset)} "
                        f"({start.strftime('%Y-%m-%d %H:%M')})",
            )
            for offset, fire_at in self.compute_fire_times(start, offsets)
        ]
        with self._lock:
            for job in jobs:
                self.job_store.save_reminder(job)
        logger.info("Armed %d reminder(s) for %s", len(jobs), booking_id)
        return jobs

    def cancel_reminders_for(self, booking_id: str) -> int:
        """Cancel every pending reminder of a booking. In-flight ones are left to finish."""
        with self._lock:
            pending = self.job_store.load_reminders(
                booking_id=booking_id, statuses=[ReminderStatus.PENDING]
            )
            for job in pending:
                job.status = ReminderStatus.CANCELLED
                self.job_store.save_reminder(job)
        if pending:
            logger.info("Cancelled %d reminder(s) for %s", len(pending), booking_id)
        return len(pending)

    def reminders_for(self, booking_id: str) -> list[ReminderJob]:
        return self.job_store.load_reminders(booking_id=booking_id)

    def recover(self) -> int:
        """
        Mark reminders left ``dispatching`` by a previous process as failed.

        Whether the notifier was reached is unknown, so they are not resent.
        """
        with self._lock:
            stuck = self.job_store.load_reminders(statuses=[ReminderStatus.DISPATCHING])
            for job in stuck:
                job.status = ReminderStatus.FAILED
                job.error = "Interrupted during dispatch"
                self.job_store.save_reminder(job)
        if stuck:
            logger.warning("%d reminder(s) were interrupted mid-dispatch", len(stuck))
        return len(stuck)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def run_pending(self) -> list[ReminderJob]:
        """Dispatch due reminders and return the ones handed to the notifier."""
        now = self.clock.now()
        due = [
            job
            for job in self.job_store.load_reminders(statuses=[ReminderStatus.PENDING])
            if job.fire_at <= now
        ]
        dispatched = []
        for job in due:
            claimed = self._claim(job.id, now)
            if claimed is not None:
                dispatched.append(self._dispatch(claimed))
        return dispatched

    def _claim(self, reminder_id: str, now: datetime) -> Optional[ReminderJob]:
        with self._lock:
            job = self.job_store.get_reminder(reminder_id)
            if job is None or job.status != ReminderStatus.PENDING:
                return None
            if now - job.fire_at > self.grace:
                job.status = ReminderStatus.EXPIRED
                self.job_store.save_reminder(job)
                logger.warning(
                    "Reminder %s for %s expired (was due %s)",
                    job.id, job.target_booking_id, job.fire_at.isoformat(),
                )
                return None
            if self.is_active is not None and not self.is_active(job.target_booking_id):
                job.status = ReminderStatus.CANCELLED
                self.job_store.save_reminder(job)
                logger.info(
                    "Reminder %s dropped; %s is no longer active", job.id, job.target_booking_id
                )
                return None
            job.status = ReminderStatus.DISPATCHING
            self.job_store.save_reminder(job)
            return job

    def _dispatch(self, job: ReminderJob) -> ReminderJob:
        with request_context("dispatch_reminder", f"reminder-{job.id}"):
            try:
                self.notifier.notify(job.recipient, job.message, job.fire_at)
            except Exception as exc:
                job.status = ReminderStatus.FAILED
                job.error = f"{type(exc).__name__}: {exc}"
                logger.exception("Reminder %s for %s failed", job.id, job.target_booking_id)
            else:
                job.status = ReminderStatus.DELIVERED
                job.dispatched_at = self.clock.now()
                logger.info("Reminder %s sent to %s", job.id, job.recipient)
            with self._lock:
                self.job_store.save_reminder(job)
        return job
