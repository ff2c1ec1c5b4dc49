"""Shared test fixtures and helpers."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest

from scheduling_engine.config import (
    AppConfig,
    MaintenanceConfig,
    ReminderConfig,
    SchedulingConfig,
    WorkerConfig,
)
from scheduling_engine.engine import SchedulingEngine
from scheduling_engine.notifications import Notifier
from scheduling_engine.scheduling.availability import AvailabilityChecker
from scheduling_engine.scheduling.booking_manager import BookingManager
from scheduling_engine.scheduling.slots import SlotGenerator
from scheduling_engine.schemas.resource_schema import (
    AvailabilityWindow,
    Resource,
    ResourceType,
)
from scheduling_engine.storage.memory import InMemoryJobStore, InMemoryRecordStore

UTC = timezone.utc

# Monday 2024-06-10, before the working day starts
NOW = datetime(2024, 6, 10, 8, 0, tzinfo=UTC)


def at(hour: int, minute: int = 0, day: int = 10, month: int = 6) -> datetime:
    """A moment in June 2024, UTC."""
    return datetime(2024, month, day, hour, minute, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW) -> None:
        self._now = now
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def today(self):
        return self.now().date()

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self._now += timedelta(**kwargs)
            return self._now


class RecordingNotifier(Notifier):
    """Keeps every notification; can be told to fail or to block."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, datetime]] = []
        self.fail = False
        self.entered = threading.Event()
        self.release: Optional[threading.Event] = None

    def notify(self, recipient: str, message: str, fire_at: datetime) -> None:
        self.entered.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        self.sent.append((recipient, message, fire_at))

    @property
    def recipients(self) -> list[str]:
        return [recipient for recipient, _, _ in self.sent]


def make_config(
    buffer_minutes: int = 0,
    slot_duration_minutes: int = 60,
    max_advance_days: int = 30,
    offsets: tuple[int, ...] = (10080, 1440, 120),
    grace_seconds: int = 300,
    report_recipient: str = "reports@firm.test",
) -> AppConfig:
    """Helper to create an AppConfig that ignores the environment."""
    return AppConfig(
        scheduling=SchedulingConfig(
            working_hours_start=9,
            working_hours_end=17,
            slot_duration_minutes=slot_duration_minutes,
            buffer_minutes=buffer_minutes,
            max_advance_days=max_advance_days,
            timezone="UTC",
            hearing_duration_minutes=60,
        ),
        reminders=ReminderConfig(
            offsets_minutes=offsets,
            hearing_offsets_minutes=(10080, 4320, 1440, 120),
            grace_seconds=grace_seconds,
        ),
        maintenance=MaintenanceConfig(
            retention_days=30,
            report_recipient=report_recipient,
            cleanup_hour=0,
            weekly_report_weekday=0,
        ),
        worker=WorkerConfig(
            poll_interval_sec=0.01,
            recurring_max_workers=4,
            job_store_path="",
        ),
        log_level="DEBUG",
        service_name="scheduling-engine-test",
    )


def make_resource(
    resource_id: str = "lawyer-1",
    resource_type: ResourceType = ResourceType.LAWYER,
    days: Iterable[int] = range(5),
    start_hour: int = 9,
    end_hour: int = 17,
    **fields,
) -> Resource:
    """Helper to create a Resource with one Mon-Fri style window."""
    windows = [] if days is None else [
        AvailabilityWindow(
            days=list(days),
            start_time=f"{start_hour:02d}:00",
            end_time=f"{end_hour:02d}:00" if end_hour < 24 else "23:59",
        )
    ]
    return Resource(
        id=resource_id,
        name=fields.pop("name", resource_id.replace("-", " ").title()),
        type=resource_type,
        availability=windows,
        **fields,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def slot_generator(config, clock):
    return SlotGenerator(config, clock)


@pytest.fixture
def availability(store, slot_generator, clock):
    return AvailabilityChecker(store, slot_generator, clock)


@pytest.fixture
def manager(store, availability, slot_generator, clock, config):
    return BookingManager(store, availability, slot_generator, clock, config)


@pytest.fixture
def lawyer(manager):
    return manager.add_resource(make_resource("lawyer-1", email="ana@firm.test"))


@pytest.fixture
def engine(store, job_store, notifier, clock, config):
    engine = SchedulingEngine(
        store=store, job_store=job_store, notifier=notifier, clock=clock, config=config
    )
    yield engine
    engine.stop()
