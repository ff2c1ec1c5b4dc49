"""Tests for the self-rearming recurring task scheduler."""

import threading

import pytest

from scheduling_engine.errors import NotFoundError
from scheduling_engine.scheduling.recurring import RecurringTaskScheduler
from scheduling_engine.schemas.job_schema import RecurrenceRule
from scheduling_engine.storage.memory import InMemoryJobStore
from scheduling_engine.storage.sqlite_jobs import SQLiteJobStore
from tests.conftest import at


@pytest.fixture
def scheduler(clock):
    scheduler = RecurringTaskScheduler(InMemoryJobStore(), clock, max_workers=4, poll_interval=0.01)
    yield scheduler
    scheduler.stop()


def run_due(scheduler):
    futures = scheduler.run_pending()
    for future in futures:
        future.result(timeout=5)
    return len(futures)


class TestScheduling:
    def test_first_run_strictly_after_now(self, scheduler):
        state = scheduler.schedule_task("purge", RecurrenceRule.daily(), lambda: None)
        assert state.next_run_at == at(0, day=11)

    def test_state_is_persisted(self, scheduler):
        scheduler.schedule_task("purge", RecurrenceRule.daily(), lambda: None)
        assert scheduler.job_store.load_task("purge").next_run_at == at(0, day=11)

    def test_nothing_due_yet(self, scheduler):
        calls = []
        scheduler.schedule_task("purge", RecurrenceRule.daily(), lambda: calls.append(1))
        assert run_due(scheduler) == 0
        assert calls == []

    def test_unschedule(self, scheduler):
        scheduler.schedule_task("purge", RecurrenceRule.daily(), lambda: None)
        scheduler.unschedule("purge")
        assert scheduler.job_store.load_task("purge") is None
        with pytest.raises(NotFoundError):
            scheduler.get_task("purge")

    def test_unknown_task(self, scheduler):
        with pytest.raises(NotFoundError):
            scheduler.run_now("nothing")


class TestFiring:
    def test_runs_when_due_and_rearms(self, scheduler, clock):
        calls = []
        scheduler.schedule_task("purge", RecurrenceRule.daily(), lambda: calls.append(clock.now()))
        clock.set(at(0, day=11))
        assert run_due(scheduler) == 1
        state = scheduler.get_task("purge")
        assert calls == [at(0, day=11)]
        assert state.run_count == 1
        assert state.last_run_at == at(0, day=11)
        assert state.next_run_at == at(0, day=12)
        assert state.last_error is None

    def test_failure_does_not_break_chain(self, scheduler, clock):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        scheduler.schedule_task("report", RecurrenceRule.daily(), flaky)
        clock.set(at(0, day=11))
        run_due(scheduler)
        state = scheduler.get_task("report")
        assert "boom" in state.last_error
        assert state.next_run_at == at(0, day=12)

        clock.set(at(0, day=12))
        run_due(scheduler)
        state = scheduler.get_task("report")
        assert len(calls) == 2
        assert state.last_error is None
        assert state.next_run_at == at(0, day=13)

    def test_next_run_counts_from_completion(self, scheduler, clock):
        def slow():
            clock.set(at(0, 30, day=11))

        scheduler.schedule_task("tick", RecurrenceRule.hourly(minute=10), slow)
        clock.set(at(8, 10))
        run_due(scheduler)
        assert scheduler.get_task("tick").next_run_at == at(1, 10, day=11)

    def test_run_now(self, scheduler, clock):
        calls = []
        scheduler.schedule_task("purge", RecurrenceRule.daily(), lambda: calls.append(1))
        scheduler.run_now("purge").result(timeout=5)
        assert calls == [1]
        assert scheduler.get_task("purge").next_run_at == at(0, day=11)


class TestOverlappingRuns:
    def test_running_task_is_not_started_again(self, scheduler, clock):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def long_job():
            calls.append(1)
            started.set()
            release.wait(timeout=5)

        scheduler.schedule_task("digest", RecurrenceRule.daily(), long_job)
        clock.set(at(0, day=11))
        futures = scheduler.run_pending()
        assert started.wait(timeout=5)

        assert scheduler.get_task("digest").next_run_at is None
        clock.set(at(0, day=13))
        assert scheduler.run_pending() == []
        assert scheduler.run_now("digest") is None

        release.set()
        futures[0].result(timeout=5)
        state = scheduler.get_task("digest")
        assert calls == [1]
        assert state.skipped_count == 2
        assert state.next_run_at == at(0, day=14)

    def test_different_tasks_run_concurrently(self, scheduler, clock):
        barrier = threading.Barrier(2, timeout=5)
        scheduler.schedule_task("a", RecurrenceRule.daily(), barrier.wait)
        scheduler.schedule_task("b", RecurrenceRule.daily(), barrier.wait)
        clock.set(at(0, day=11))
        assert run_due(scheduler) == 2
        assert scheduler.get_task("a").last_error is None
        assert scheduler.get_task("b").last_error is None


class TestRestartRecovery:
    def test_missed_run_fires_once_after_restart(self, clock, tmp_path):
        path = str(tmp_path / "jobs.db")
        first = RecurringTaskScheduler(SQLiteJobStore(path), clock)
        first.schedule_task("purge", RecurrenceRule.daily(), lambda: None)
        first.stop()
        first.job_store.close()

        clock.set(at(10, day=12))
        calls = []
        second = RecurringTaskScheduler(SQLiteJobStore(path), clock)
        state = second.schedule_task("purge", RecurrenceRule.daily(), lambda: calls.append(1))
        assert state.next_run_at == at(0, day=11)

        assert run_due(second) == 1
        assert run_due(second) == 0
        assert calls == [1]
        assert second.get_task("purge").next_run_at == at(0, day=13)
        second.stop()

    def test_changed_rule_is_rearmed(self, clock, tmp_path):
        path = str(tmp_path / "jobs.db")
        first = RecurringTaskScheduler(SQLiteJobStore(path), clock)
        first.schedule_task("report", RecurrenceRule.daily(), lambda: None)

        second = RecurringTaskScheduler(SQLiteJobStore(path), clock)
        state = second.schedule_task("report", RecurrenceRule.weekly(0), lambda: None)
        assert state.next_run_at == at(0, day=17)


class TestPollingThread:
    def test_background_loop_fires_due_tasks(self, scheduler, clock):
        fired = threading.Event()
        scheduler.schedule_task("purge", RecurrenceRule.daily(), fired.set)
        clock.set(at(0, day=11))
        scheduler.start()
        assert scheduler.is_running()
        assert fired.wait(timeout=5)
        scheduler.stop()
        assert not scheduler.is_running()
