"""SQLite job table for recurring tasks and reminders.

Persists due times so scheduled work survives a process restart. The
polling workers read from here; nothing relies on in-process timers.
"""

import logging
import sqlite3
import threading
from datetime import datetime
from typing import Iterable, Optional

from scheduling_engine.errors import StorageError
from scheduling_engine.schemas.job_schema import (
    RecurrenceRule,
    RecurringTaskState,
    ReminderJob,
    ReminderStatus,
)
from scheduling_engine.storage.base import JobStore

logger = logging.getLogger(__name__)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteJobStore(JobStore):
    """SQLite-backed job store."""

    def __init__(self, db_path: str = ":memory:"):
        """Open (or create) the job database.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory.
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.init_schema()

    def init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._lock:
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS recurring_tasks (
                    name TEXT PRIMARY KEY,
                    rule TEXT NOT NULL,
                    next_run_at TEXT,
                    last_run_at TEXT,
                    last_error TEXT,
                    run_count INTEGER DEFAULT 0,
                    skipped_count INTEGER DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS reminder_jobs (
                    id TEXT PRIMARY KEY,
                    target_booking_id TEXT NOT NULL,
                    recipient TEXT NOT NULL,
                    fire_at TEXT NOT NULL,
                    offset_minutes INTEGER NOT NULL,
                    message TEXT NOT NULL,
                    status TEXT NOT NULL,
                    dispatched_at TEXT,
                    error TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_reminders_booking
                    ON reminder_jobs(target_booking_id);
                CREATE INDEX IF NOT EXISTS idx_reminders_status
                    ON reminder_jobs(status, fire_at);
            """)
            self.conn.commit()

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    def _execute(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                cursor = self.conn.execute(sql, tuple(params))
                rows = cursor.fetchall()
                self.conn.commit()
                return rows
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StorageError(f"Job store failure: {exc}") from exc

    # =========================================================================
    # Recurring tasks
    # =========================================================================

    def save_task(self, state: RecurringTaskState) -> None:
        self._execute(
            """INSERT OR REPLACE INTO recurring_tasks
               (name, rule, next_run_at, last_run_at, last_error, run_count, skipped_count)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                state.name,
                state.rule.model_dump_json(),
                _to_text(state.next_run_at),
                _to_text(state.last_run_at),
                state.last_error,
                state.run_count,
                state.skipped_count,
            ),
        )

    def load_task(self, name: str) -> Optional[RecurringTaskState]:
        rows = self._execute("SELECT * FROM recurring_tasks WHERE name = ?", (name,))
        return self._row_to_task(rows[0]) if rows else None

    def delete_task(self, name: str) -> None:
        self._execute("DELETE FROM recurring_tasks WHERE name = ?", (name,))

    def list_tasks(self) -> list[RecurringTaskState]:
        rows = self._execute("SELECT * FROM recurring_tasks ORDER BY name")
        return [self._row_to_task(row) for row in rows]

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> RecurringTaskState:
        return RecurringTaskState(
            name=row["name"],
            rule=RecurrenceRule.model_validate_json(row["rule"]),
            next_run_at=_from_text(row["next_run_at"]),
            last_run_at=_from_text(row["last_run_at"]),
            last_error=row["last_error"],
            run_count=row["run_count"],
            skipped_count=row["skipped_count"],
        )

    # =========================================================================
    # Reminders
    # =========================================================================

    def save_reminder(self, job: ReminderJob) -> None:
        self._execute(
            """INSERT OR REPLACE INTO reminder_jobs
               (id, target_booking_id, recipient, fire_at, offset_minutes,
                message, status, dispatched_at, error)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                job.id,
                job.target_booking_id,
                job.recipient,
                job.fire_at.isoformat(),
                job.offset_minutes,
                job.message,
                job.status.value,
                _to_text(job.dispatched_at),
                job.error,
            ),
        )

    def get_reminder(self, reminder_id: str) -> Optional[ReminderJob]:
        rows = self._execute("SELECT * FROM reminder_jobs WHERE id = ?", (reminder_id,))
        return self._row_to_reminder(rows[0]) if rows else None

    def load_reminders(
        self,
        booking_id: Optional[str] = None,
        statuses: Optional[Iterable[ReminderStatus]] = None,
    ) -> list[ReminderJob]:
        query = "SELECT * FROM reminder_jobs WHERE 1=1"
        params: list = []

        if booking_id:
            query += " AND target_booking_id = ?"
            params.append(booking_id)

        if statuses is not None:
            values = [ReminderStatus(s).value for s in statuses]
            if not values:
                return []
            query += f" AND status IN ({', '.join('?' for _ in values)})"
            params.extend(values)

        rows = self._execute(query, params)
        jobs = [self._row_to_reminder(row) for row in rows]
        # ISO strings with differing offsets do not sort lexically
        return sorted(jobs, key=lambda j: j.fire_at)

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> ReminderJob:
        return ReminderJob(
            id=row["id"],
            target_booking_id=row["target_booking_id"],
            recipient=row["recipient"],
            fire_at=datetime.fromisoformat(row["fire_at"]),
            offset_minutes=row["offset_minutes"],
            message=row["message"],
            status=ReminderStatus(row["status"]),
            dispatched_at=_from_text(row["dispatched_at"]),
            error=row["error"],
        )
