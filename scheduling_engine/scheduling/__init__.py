from scheduling_engine.scheduling.availability import AvailabilityChecker, check_schedule_conflict
from scheduling_engine.scheduling.booking_manager import BookingManager
from scheduling_engine.scheduling.lifecycle import BookingLifecycle, BookingTrigger
from scheduling_engine.scheduling.maintenance import MaintenanceTasks
from scheduling_engine.scheduling.overlap import overlaps
from scheduling_engine.scheduling.recurring import RecurringTaskScheduler
from scheduling_engine.scheduling.reminders import ReminderScheduler
from scheduling_engine.scheduling.slots import SlotGenerator, WorkingHours, generate_day_slots
from scheduling_engine.scheduling.utilization import ResourceUtilizationAnalyzer

__all__ = [
    "AvailabilityChecker",
    "check_schedule_conflict",
    "BookingManager",
    "BookingLifecycle",
    "BookingTrigger",
    "MaintenanceTasks",
    "overlaps",
    "RecurringTaskScheduler",
    "ReminderScheduler",
    "SlotGenerator",
    "WorkingHours",
    "generate_day_slots",
    "ResourceUtilizationAnalyzer",
]
