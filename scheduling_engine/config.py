"""
Centralized configuration with environment variable overrides.

Working hours, slot sizing, reminder offsets, retention and worker
settings are all configurable here. Services receive an ``AppConfig``
explicitly; ``settings`` is only the default.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_int_tuple(env_var: str, default: str) -> tuple[int, ...]:
    """Parse a comma-separated list of integers, e.g. ``"10080,1440,120"``."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, AttributeError):
        raise ValueError(
            f"Invalid integer list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class SchedulingConfig:
    """Working hours and slot sizing used by slot generation and booking."""

    working_hours_start: int = _safe_int("WORKING_HOURS_START", "9")
    working_hours_end: int = _safe_int("WORKING_HOURS_END", "17")
    slot_duration_minutes: int = _safe_int("SLOT_DURATION", "60")
    buffer_minutes: int = _safe_int("BUFFER_TIME", "15")
    max_advance_days: int = _safe_int("MAX_ADVANCE_DAYS", "30")
    timezone: str = os.getenv("FIRM_TIMEZONE", "UTC")
    hearing_duration_minutes: int = _safe_int("HEARING_DURATION", "60")

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class ReminderConfig:
    """Offsets (minutes before start) at which reminders fire."""

    offsets_minutes: tuple[int, ...] = _safe_int_tuple(
        "REMINDER_OFFSETS_MINUTES", "10080,1440,120"
    )
    hearing_offsets_minutes: tuple[int, ...] = _safe_int_tuple(
        "HEARING_REMINDER_OFFSETS_MINUTES", "10080,4320,1440,120"
    )
    grace_seconds: int = _safe_int("REMINDER_GRACE_SECONDS", "300")


@dataclass(frozen=True)
class MaintenanceConfig:
    """Retention and reporting settings for the recurring maintenance tasks."""

    retention_days: int = _safe_int("RETENTION_DAYS", "30")
    report_recipient: str = os.getenv("REPORT_RECIPIENT", "admin@rslegalsolutions.com")
    cleanup_hour: int = _safe_int("CLEANUP_HOUR", "0")
    weekly_report_weekday: int = _safe_int("WEEKLY_REPORT_WEEKDAY", "0")


@dataclass(frozen=True)
class WorkerConfig:
    """Background polling workers and the durable job table."""

    poll_interval_sec: float = _safe_float("SCHEDULER_POLL_INTERVAL", "1.0")
    recurring_max_workers: int = _safe_int("RECURRING_MAX_WORKERS", "4")
    job_store_path: str = os.getenv("JOB_STORE_PATH", "")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "scheduling-engine")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    sched = config.scheduling
    if not 0 <= sched.working_hours_start < sched.working_hours_end <= 24:
        raise ValueError(
            "WORKING_HOURS_START/WORKING_HOURS_END must satisfy 0 <= start < end <= 24, "
            f"got {sched.working_hours_start}-{sched.working_hours_end}"
        )
    if sched.slot_duration_minutes < 1:
        raise ValueError(
            f"SLOT_DURATION must be >= 1, got {sched.slot_duration_minutes}"
        )
    if sched.buffer_minutes < 0:
        raise ValueError(f"BUFFER_TIME must be >= 0, got {sched.buffer_minutes}")
    if sched.max_advance_days < 0:
        raise ValueError(
            f"MAX_ADVANCE_DAYS must be >= 0, got {sched.max_advance_days}"
        )
    if sched.hearing_duration_minutes < 1:
        raise ValueError(
            f"HEARING_DURATION must be >= 1, got {sched.hearing_duration_minutes}"
        )
    try:
        ZoneInfo(sched.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"FIRM_TIMEZONE is not a known timezone: {sched.timezone!r}") from None

    for name, offsets in [
        ("REMINDER_OFFSETS_MINUTES", config.reminders.offsets_minutes),
        ("HEARING_REMINDER_OFFSETS_MINUTES", config.reminders.hearing_offsets_minutes),
    ]:
        if any(offset <= 0 for offset in offsets):
            raise ValueError(f"{name} must contain only positive offsets, got {offsets}")
    if config.reminders.grace_seconds < 0:
        raise ValueError(
            f"REMINDER_GRACE_SECONDS must be >= 0, got {config.reminders.grace_seconds}"
        )

    if config.maintenance.retention_days < 1:
        raise ValueError(
            f"RETENTION_DAYS must be >= 1, got {config.maintenance.retention_days}"
        )
    if not 0 <= config.maintenance.cleanup_hour <= 23:
        raise ValueError(
            f"CLEANUP_HOUR must be between 0 and 23, got {config.maintenance.cleanup_hour}"
        )
    if not 0 <= config.maintenance.weekly_report_weekday <= 6:
        raise ValueError(
            "WEEKLY_REPORT_WEEKDAY must be between 0 (Monday) and 6 (Sunday), "
            f"got {config.maintenance.weekly_report_weekday}"
        )

    if config.worker.poll_interval_sec <= 0:
        raise ValueError(
            f"SCHEDULER_POLL_INTERVAL must be > 0, got {config.worker.poll_interval_sec}"
        )
    if config.worker.recurring_max_workers < 1:
        raise ValueError(
            f"RECURRING_MAX_WORKERS must be >= 1, got {config.worker.recurring_max_workers}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
