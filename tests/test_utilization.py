"""Tests for utilization analytics."""

import pytest

from scheduling_engine.errors import NotFoundError, ValidationError
from scheduling_engine.scheduling.utilization import ResourceUtilizationAnalyzer
from scheduling_engine.schemas.resource_schema import AvailabilityWindow
from tests.conftest import UTC, at, make_resource


@pytest.fixture
def analyzer(store, clock):
    return ResourceUtilizationAnalyzer(store, clock, UTC)


def completed_booking(manager, clock, resource_id, start, end):
    booking = manager.book_resource(resource_id, start, end, "reception")
    now = clock.now()
    clock.set(end)
    manager.complete_booking(booking.id, "done")
    clock.set(now)
    return booking


class TestCalculateUtilization:
    def test_two_hours_of_eight_is_25_percent(self, analyzer, manager, lawyer, clock):
        completed_booking(manager, clock, lawyer.id, at(10), at(12))
        assert analyzer.calculate_utilization(lawyer.id, at(0), at(0, day=11)) == 25.0

    def test_only_completed_bookings_count(self, analyzer, manager, lawyer):
        manager.book_resource(lawyer.id, at(10), at(12), "reception")
        assert analyzer.calculate_utilization(lawyer.id, at(0), at(0, day=11)) == 0.0

    def test_appointments_count(self, analyzer, manager, lawyer, clock):
        appointment = manager.book_appointment(
            lawyer.id, "wills", "Sam Lee", "sam@example.com", "0400 000 000", at(9), trusted=True
        )
        clock.set(at(10))
        manager.complete_booking(appointment.id)
        assert analyzer.calculate_utilization(lawyer.id, at(0), at(0, day=11)) == 12.5

    def test_booking_clipped_to_range(self, analyzer, manager, lawyer, clock):
        completed_booking(manager, clock, lawyer.id, at(10), at(12))
        assert analyzer.calculate_utilization(lawyer.id, at(11), at(13)) == 50.0

    def test_no_working_time_is_zero(self, analyzer, manager):
        manager.add_resource(make_resource("archive", days=None))
        assert analyzer.calculate_utilization("archive", at(0), at(0, day=11)) == 0.0

    def test_weekend_has_no_working_time(self, analyzer, lawyer):
        assert analyzer.calculate_utilization(lawyer.id, at(0, day=15), at(0, day=17)) == 0.0

    def test_invalid_range(self, analyzer, lawyer):
        with pytest.raises(ValidationError):
            analyzer.calculate_utilization(lawyer.id, at(12), at(9))

    def test_unknown_resource(self, analyzer):
        with pytest.raises(NotFoundError):
            analyzer.calculate_utilization("ghost", at(0), at(0, day=11))


class TestWorkingMinutes:
    def test_one_weekday(self, analyzer):
        assert analyzer.working_minutes(make_resource(), at(0), at(0, day=11)) == 480

    def test_full_week(self, analyzer):
        assert analyzer.working_minutes(make_resource(), at(0), at(0, day=17)) == 5 * 480

    def test_overlapping_windows_not_double_counted(self, analyzer):
        resource = make_resource()
        resource.availability.append(
            AvailabilityWindow(days=[0], start_time="12:00", end_time="18:00")
        )
        assert analyzer.working_minutes(resource, at(0), at(0, day=11)) == 540


class TestReports:
    def test_report_totals(self, analyzer, manager, lawyer, clock):
        completed_booking(manager, clock, lawyer.id, at(10), at(12))
        completed_booking(manager, clock, lawyer.id, at(14), at(15))
        report = analyzer.utilization_report(lawyer.id, at(0), at(0, day=11))
        assert report.total_bookings == 2
        assert report.total_hours == 3.0
        assert report.working_hours == 8.0
        assert report.utilization == 37.5

    def test_status_breakdown(self, analyzer, manager, lawyer, clock):
        completed_booking(manager, clock, lawyer.id, at(9), at(10))
        cancelled = manager.book_resource(lawyer.id, at(11), at(12), "reception")
        manager.cancel_booking(cancelled.id)
        manager.book_resource(lawyer.id, at(13), at(14), "reception")
        manager.schedule_hearing("CASE-1", lawyer.id, at(15))

        breakdown = analyzer.status_breakdown(lawyer.id)
        assert breakdown["total"] == 4
        assert breakdown["by_kind"]["booking"] == {"completed": 1, "cancelled": 1, "confirmed": 1}
        assert breakdown["by_kind"]["hearing"] == {"scheduled": 1}
        assert breakdown["upcoming"] == 2
