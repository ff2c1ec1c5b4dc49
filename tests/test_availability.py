"""Tests for the overlap primitive and availability checks."""

from datetime import date

import pytest

from scheduling_engine.errors import NotFoundError, ValidationError
from scheduling_engine.scheduling.availability import check_schedule_conflict
from scheduling_engine.scheduling.overlap import overlaps
from scheduling_engine.schemas.resource_schema import ResourceStatus, ResourceType
from tests.conftest import at, make_resource

MONDAY = date(2024, 6, 10)


class TestOverlaps:
    def test_overlapping_intervals(self):
        assert overlaps((at(9), at(11)), (at(10), at(12)))

    def test_adjacent_intervals_do_not_overlap(self):
        assert not overlaps((at(9), at(10)), (at(10), at(11)))

    def test_containment_overlaps(self):
        assert overlaps((at(9), at(17)), (at(12), at(13)))

    def test_symmetric(self):
        a, b = (at(9), at(10, 30)), (at(10), at(11))
        assert overlaps(a, b) == overlaps(b, a)

    def test_accepts_objects_with_start_and_end(self, manager, lawyer):
        booking = manager.book_resource(lawyer.id, at(9), at(10), "reception")
        assert overlaps(booking, (at(9, 30), at(9, 45)))


class TestAvailableSlots:
    def test_full_day_open(self, availability, lawyer):
        assert len(availability.get_available_slots(MONDAY, lawyer.id)) == 8

    def test_booking_removes_exactly_its_slot(self, availability, manager, lawyer):
        manager.book_resource(lawyer.id, at(11), at(12), "reception")
        slots = availability.get_available_slots(MONDAY, lawyer.id)
        assert len(slots) == 7
        assert at(11) not in [s.start for s in slots]
        assert [s.start for s in slots] == sorted(s.start for s in slots)

    def test_partial_overlap_removes_both_touched_slots(self, availability, manager, lawyer):
        manager.book_resource(lawyer.id, at(11, 30), at(12, 30), "reception")
        starts = [s.start for s in availability.get_available_slots(MONDAY, lawyer.id)]
        assert at(11) not in starts
        assert at(12) not in starts
        assert len(starts) == 6

    def test_appointment_blocks_lawyer(self, availability, manager, lawyer):
        manager.book_appointment(
            lawyer.id, "family-law", "Jane Doe", "jane@example.com", "0412 345 678", at(14)
        )
        starts = [s.start for s in availability.get_available_slots(MONDAY, lawyer.id)]
        assert at(14) not in starts

    def test_hearing_blocks_lawyer(self, availability, manager, lawyer):
        manager.schedule_hearing("CASE-1", lawyer.id, at(15))
        starts = [s.start for s in availability.get_available_slots(MONDAY, lawyer.id)]
        assert at(15) not in starts

    def test_cancelled_booking_does_not_block(self, availability, manager, lawyer):
        booking = manager.book_resource(lawyer.id, at(11), at(12), "reception")
        manager.cancel_booking(booking.id, "client request")
        starts = [s.start for s in availability.get_available_slots(MONDAY, lawyer.id)]
        assert at(11) in starts

    def test_weekend_outside_windows(self, availability, lawyer):
        assert availability.get_available_slots(date(2024, 6, 15), lawyer.id) == []

    def test_narrow_window_limits_slots(self, availability, manager):
        manager.add_resource(make_resource("afternoons", start_hour=13, end_hour=17))
        slots = availability.get_available_slots(MONDAY, "afternoons")
        assert [s.start.hour for s in slots] == [13, 14, 15, 16]

    def test_maintenance_closes_every_slot(self, availability, manager, lawyer):
        manager.set_resource_status(lawyer.id, ResourceStatus.MAINTENANCE)
        assert availability.get_available_slots(MONDAY, lawyer.id) == []

    def test_date_outside_window_rejected(self, availability, lawyer):
        with pytest.raises(ValidationError):
            availability.get_available_slots(date(2024, 6, 9), lawyer.id)

    def test_unknown_resource(self, availability):
        with pytest.raises(NotFoundError):
            availability.get_available_slots(MONDAY, "nobody")

    def test_occupied_intervals_merge_all_kinds(self, availability, manager, lawyer):
        manager.book_resource(lawyer.id, at(13), at(14), "reception")
        manager.schedule_hearing("CASE-9", lawyer.id, at(9))
        manager.book_appointment(
            lawyer.id, "wills", "Sam Lee", "sam@example.com", "+61 400 000 000", at(11)
        )
        kinds = [i.source_kind for i in availability.get_occupied_intervals(lawyer.id, MONDAY)]
        assert kinds == ["hearing", "appointment", "booking"]


class TestScheduleConflict:
    def test_inside_window(self):
        assert not check_schedule_conflict(make_resource(), at(9), at(10))

    def test_runs_past_window(self):
        assert check_schedule_conflict(make_resource(), at(16, 30), at(17, 30))

    def test_wrong_weekday(self):
        assert check_schedule_conflict(make_resource(), at(10, day=16), at(11, day=16))

    def test_no_windows_means_no_working_time(self):
        resource = make_resource(days=None)
        assert check_schedule_conflict(resource, at(10), at(11))


class TestCheckAvailability:
    def test_free_interval(self, availability, lawyer):
        result = availability.check_availability(lawyer.id, at(9), at(10))
        assert result.available
        assert result.conflicts == []

    def test_reports_conflicting_record(self, availability, manager, lawyer):
        booking = manager.book_resource(lawyer.id, at(9), at(10), "reception")
        result = availability.check_availability(lawyer.id, at(9, 30), at(10, 30))
        assert not result.available
        assert [c.source_id for c in result.conflicts] == [booking.id]
        assert not result.schedule_conflict

    def test_exclude_id_ignores_own_record(self, availability, manager, lawyer):
        booking = manager.book_resource(lawyer.id, at(9), at(10), "reception")
        result = availability.check_availability(lawyer.id, at(9), at(10), exclude_id=booking.id)
        assert result.available

    def test_outside_hours_flags_schedule_conflict(self, availability, lawyer):
        result = availability.check_availability(lawyer.id, at(18), at(19))
        assert not result.available
        assert result.schedule_conflict


class TestFindAvailableResources:
    @pytest.fixture
    def rooms(self, manager):
        manager.add_resource(make_resource(
            "room-a", ResourceType.ROOM, capacity=4, features=["whiteboard"]
        ))
        manager.add_resource(make_resource(
            "room-b", ResourceType.ROOM, capacity=12, features=["whiteboard", "video"]
        ))
        manager.add_resource(make_resource(
            "room-c", ResourceType.ROOM, capacity=20, features=["video"],
            status=ResourceStatus.MAINTENANCE,
        ))

    def test_filters_by_capacity(self, availability, rooms):
        found = availability.find_available_resources(ResourceType.ROOM, at(10), at(11), capacity=10)
        assert [r.id for r in found] == ["room-b"]

    def test_filters_by_features(self, availability, rooms):
        found = availability.find_available_resources(
            ResourceType.ROOM, at(10), at(11), features=["video"]
        )
        assert [r.id for r in found] == ["room-b"]

    def test_excludes_booked(self, availability, manager, rooms):
        manager.book_resource("room-b", at(10), at(11), "partners")
        found = availability.find_available_resources(ResourceType.ROOM, at(10), at(11))
        assert [r.id for r in found] == ["room-a"]

    def test_type_must_match(self, availability, rooms, lawyer):
        found = availability.find_available_resources(ResourceType.LAWYER, at(10), at(11))
        assert [r.id for r in found] == [lawyer.id]


class TestDerivedStatus:
    def test_idle_resource_available(self, availability, lawyer):
        assert availability.derive_resource_status(lawyer) == ResourceStatus.AVAILABLE

    def test_confirmed_booking_now_means_busy(self, availability, manager, lawyer, clock):
        manager.book_resource(lawyer.id, at(11), at(12), "reception")
        clock.set(at(11, 30))
        assert availability.derive_resource_status(lawyer) == ResourceStatus.BUSY

    def test_pending_booking_now_means_reserved(self, availability, manager, lawyer, clock):
        manager.book_resource(lawyer.id, at(11), at(12), "website", trusted=False)
        clock.set(at(11))
        assert availability.derive_resource_status(lawyer) == ResourceStatus.RESERVED

    def test_booking_end_is_exclusive(self, availability, manager, lawyer, clock):
        manager.book_resource(lawyer.id, at(11), at(12), "reception")
        clock.set(at(12))
        assert availability.derive_resource_status(lawyer) == ResourceStatus.AVAILABLE

    def test_out_of_office_is_honoured(self, availability, manager, lawyer):
        updated = manager.set_resource_status(lawyer.id, ResourceStatus.OUT_OF_OFFICE)
        assert availability.derive_resource_status(updated) == ResourceStatus.OUT_OF_OFFICE
