"""
Self-rearming recurring tasks.

Each task has a persisted due time in the JobStore. When it falls due the
task is disarmed, its action runs on a worker pool, and the next
occurrence is computed from the moment the action returned. Re-arming
happens in ``finally`` so a raising action can never break the chain.

A running task has no due time, so it cannot be started a second time;
occurrences that fall inside a run are counted as skipped. Different
tasks run concurrently on the pool.
"""

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from scheduling_engine.errors import NotFoundError
from scheduling_engine.logging_context import get_request_logger, request_context
from scheduling_engine.scheduling.worker import PollingWorker
from scheduling_engine.schemas.job_schema import RecurrenceRule, RecurringTaskState
from scheduling_engine.storage.base import JobStore

logger = get_request_logger(__name__)


@dataclass
class _TaskEntry:
    state: RecurringTaskState
    action: Callable[[], object]
    running: bool = False


def count_occurrences(rule: RecurrenceRule, after: datetime, until: datetime) -> int:
    """Number of occurrences in ``(after, until]``."""
    count = 0
    moment = rule.next_after(after)
    while moment is not None and moment <= until:
        count += 1
        moment = rule.next_after(moment)
    return count


class RecurringTaskScheduler(PollingWorker):
    """Runs registered actions on their recurrence rules."""

    def __init__(
        self,
        job_store: JobStore,
        clock,
        max_workers: int = 4,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__("recurring-tasks", poll_interval)
        self.job_store = job_store
        self.clock = clock
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._entries: dict[str, _TaskEntry] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="recurring"
            )
        return self._executor

    def stop(self, timeout: float = 5.0) -> None:
        super().stop(timeout)
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # =========================================================================
    # Registration
    # =========================================================================

    def schedule_task(
        self, name: str, rule: RecurrenceRule, action: Callable[[], object]
    ) -> RecurringTaskState:
        """
        Register ``action`` to run on ``rule``.

        If the JobStore already has a due time for ``name`` under the same
        rule it is kept, so an occurrence missed while the process was down
        fires once on the next poll.
        """
        now = self.clock.now()
        persisted = self.job_store.load_task(name)
        if (
            persisted is not None
            and persisted.rule.model_dump() == rule.model_dump()
            and persisted.next_run_at is not None
        ):
            state = persisted
            if state.next_run_at <= now:
                logger.info("Task %s missed its run at %s; running on next poll",
                            name, state.next_run_at.isoformat())
        else:
            state = RecurringTaskState(name=name, rule=rule, next_run_at=rule.next_after(now))

        with self._lock:
            self._entries[name] = _TaskEntry(state=state, action=action)
            self.job_store.save_task(state)
        logger.info("Task scheduled: %s (%s), next run %s",
                    name, rule.frequency.value, state.next_run_at.isoformat())
        return state.model_copy(deep=True)

    def unschedule(self, name: str) -> None:
        with self._lock:
            if self._entries.pop(name, None) is None:
                raise NotFoundError(f"Task {name} is not scheduled")
            self.job_store.delete_task(name)
        logger.info("Task unscheduled: %s", name)

    def get_task(self, name: str) -> RecurringTaskState:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise NotFoundError(f"Task {name} is not scheduled")
            return entry.state.model_copy(deep=True)

    def list_tasks(self) -> list[RecurringTaskState]:
        with self._lock:
            return [e.state.model_copy(deep=True) for e in self._entries.values()]

    # =========================================================================
    # Firing
    # =========================================================================

    def _launch(self, entry: _TaskEntry) -> Future:
        """Disarm and submit. Caller holds ``self._lock``."""
        entry.running = True
        entry.state.next_run_at = None
        self.job_store.save_task(entry.state)
        return self._get_executor().submit(self._execute, entry)

    def run_pending(self) -> list[Future]:
        """Launch every armed task whose due time has passed."""
        now = self.clock.now()
        futures = []
        with self._lock:
            for entry in self._entries.values():
                due = entry.state.next_run_at
                if entry.running or due is None or due > now:
                    continue
                futures.append(self._launch(entry))
        return futures

    def run_now(self, name: str) -> Optional[Future]:
        """Fire a task immediately. Returns None if it is already running."""
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise NotFoundError(f"Task {name} is not scheduled")
            if entry.running:
                logger.warning("Task %s is already running; manual run skipped", name)
                return None
            return self._launch(entry)

    def _execute(self, entry: _TaskEntry) -> None:
        name = entry.state.name
        with request_context(name, f"task-{name}-{uuid.uuid4().hex[:6]}"):
            started = self.clock.now()
            error = None
            logger.info("Task %s running", name)
            try:
                entry.action()
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.exception("Task %s failed", name)
            finally:
                self._rearm(entry, started, error)

    def _rearm(self, entry: _TaskEntry, started: datetime, error: Optional[str]) -> None:
        finished = self.clock.now()
        state = entry.state
        rule = state.rule
        skipped = count_occurrences(rule, started, finished)
        with self._lock:
            state.last_run_at = started
            state.last_error = error
            state.run_count += 1
            state.skipped_count += skipped
            state.next_run_at = rule.next_after(finished)
            entry.running = False
            if self._entries.get(state.name) is entry:
                self.job_store.save_task(state)
        if skipped:
            logger.warning("Task %s overran; %d occurrence(s) skipped", state.name, skipped)
        logger.info("Task %s next run %s", state.name, state.next_run_at.isoformat())
