"""
Periodic housekeeping the firm runs on the recurring scheduler.

- purge-expired-records: soft-deletes finished records past retention (daily)
- daily-schedule: sends each lawyer the day's commitments (daily)
- weekly-utilization-report: last week's utilization per resource (weekly)
"""

import logging
from datetime import datetime, time, timedelta

from scheduling_engine.config import MaintenanceConfig
from scheduling_engine.scheduling.recurring import RecurringTaskScheduler
from scheduling_engine.scheduling.utilization import ResourceUtilizationAnalyzer
from scheduling_engine.schemas.booking_schema import (
    BookingStatus,
    HearingStatus,
    UtilizationReport,
)
from scheduling_engine.schemas.job_schema import RecurrenceRule
from scheduling_engine.schemas.resource_schema import ResourceType
from scheduling_engine.storage.base import RecordStore
from scheduling_engine.utils import day_bounds

logger = logging.getLogger(__name__)

FINISHED_STATUSES = (
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    HearingStatus.ADJOURNED,
)


class MaintenanceTasks:
    """The engine's built-in recurring actions."""

    def __init__(
        self,
        store: RecordStore,
        analyzer: ResourceUtilizationAnalyzer,
        notifier,
        clock,
        config: MaintenanceConfig,
        tz,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.notifier = notifier
        self.clock = clock
        self.config = config
        self.tz = tz

    def register(self, scheduler: RecurringTaskScheduler) -> None:
        hour = self.config.cleanup_hour
        scheduler.schedule_task(
            "purge-expired-records", RecurrenceRule.daily(hour=hour), self.purge_expired_records
        )
        scheduler.schedule_task(
            "daily-schedule", RecurrenceRule.daily(hour=hour), self.send_daily_schedules
        )
        scheduler.schedule_task(
            "weekly-utilization-report",
            RecurrenceRule.weekly(self.config.weekly_report_weekday, hour=hour),
            self.send_weekly_report,
        )

    def purge_expired_records(self) -> int:
        """Soft-delete completed, cancelled and adjourned records that started before the cutoff."""
        now = self.clock.now()
        cutoff = now - timedelta(days=self.config.retention_days)
        expired = [
            r for r in self.store.find(statuses=FINISHED_STATUSES, end=cutoff)
            if r.start < cutoff
        ]
        for record in expired:
            self.store.soft_delete(record.id, now)
        logger.info("Purged %d record(s) older than %s", len(expired), cutoff.date().isoformat())
        return len(expired)

    def send_daily_schedules(self) -> int:
        """Notify every lawyer with commitments today. Returns how many were sent."""
        now = self.clock.now()
        start, end = day_bounds(now.date(), self.tz)
        sent = 0
        for lawyer in self.store.list_resources(ResourceType.LAWYER):
            commitments = [
                r for r in self.store.find(resource_id=lawyer.id, start=start, end=end) if r.occupies
            ]
            if not commitments:
                continue
            lines = [
                f"{r.start.strftime('%H:%M')}-{r.end.strftime('%H:%M')} {r.kind}"
                for r in commitments
            ]
            message = f"Your schedule for {now.date().isoformat()}:\n" + "\n".join(lines)
            try:
                self.notifier.notify(lawyer.contact, message, now)
            except Exception:
                logger.exception("Daily schedule for %s could not be sent", lawyer.id)
                continue
            sent += 1
        logger.info("Daily schedules sent: %d", sent)
        return sent

    def send_weekly_report(self) -> list[UtilizationReport]:
        """Utilization of every resource over the seven days before today."""
        now = self.clock.now()
        end = datetime.combine(now.date(), time.min, tzinfo=self.tz)
        start = end - timedelta(days=7)
        reports = [
            self.analyzer.utilization_report(resource.id, start, end)
            for resource in self.store.list_resources()
        ]
        lines = [
            f"{r.resource_id}: {r.utilization:.1f}% ({r.total_bookings} booking(s), {r.total_hours}h)"
            for r in reports
        ]
        summary = f"Utilization {start.date().isoformat()} to {end.date().isoformat()}:\n" + "\n".join(lines)
        if self.config.report_recipient:
            self.notifier.notify(self.config.report_recipient, summary, now)
        else:
            logger.info(summary)
        return reports
