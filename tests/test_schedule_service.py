"""
Tests for ScheduleService.
"""

import threading

import pendulum
import pytest

from clinicbook.domain.availability import DayStatus
from clinicbook.domain.exceptions import (
    CapacityBelowOccupancy,
    DateNotOverridden,
    InvalidCapacity,
    InvalidSlotFormat,
    MergeCapacityExceeded,
    PastDate,
    ProviderNotFound,
    SlotAlreadyExists,
    SlotInUse,
    StaleProposal,
    UnknownSlot,
)
from clinicbook.domain.models import Booking, Provider
from clinicbook.domain.repository import BookingRepository, ProviderRepository
from clinicbook.domain.slot_key import DateOverrideSlot, TimeRange, parse_slot_key
from clinicbook.services.schedule import ScheduleService, SlotOutcome

TODAY = pendulum.date(2024, 4, 29)  # Monday
MONDAY = pendulum.date(2024, 5, 6)
THURSDAY = pendulum.date(2024, 5, 2)


@pytest.fixture
def provider():
    provider = Provider(id="p1", name="Dr. Li", subject="Cardiology")
    provider.add_slot(parse_slot_key("周一：11:00-13:00"), capacity=3)
    provider.add_slot(parse_slot_key("周三：09:00-10:00"), capacity=2)
    return provider


@pytest.fixture
def bookings():
    return BookingRepository()


@pytest.fixture
def service(provider, bookings):
    return ScheduleService(ProviderRepository([provider]), bookings, clock=lambda: TODAY)


def _book(bookings, slot_text, day, provider_name="Dr. Li"):
    booking = Booking(
        patient_name=f"patient-{len(bookings)}",
        national_id=f"id-{len(bookings)}",
        phone="13812345678",
        provider_name=provider_name,
        slot_key=parse_slot_key(slot_text),
        date=day,
        queue_position=1,
    )
    bookings.add(booking)
    return booking


class CountingLock:
    """Re-entrant lock recording how often it was entered."""

    def __init__(self):
        self._lock = threading.RLock()
        self.entered = 0

    def __enter__(self):
        self._lock.acquire()
        self.entered += 1
        return self

    def __exit__(self, *exc):
        self._lock.release()


class TestAddWeeklySlot:
    """Tests for adding weekly slots."""

    def test_add_without_overlap_uses_default_capacity(self, service, provider):
        """Test a plain insert."""
        change = service.add_weekly_slot("p1", "周二：09:00-10:00")

        assert change.outcome is SlotOutcome.ADDED
        assert change.capacity == 5
        assert provider.has_slot(parse_slot_key("周二：09:00-10:00"))
        assert provider.capacity_of(parse_slot_key("周二：09:00-10:00")) == 5

    def test_add_with_capacity(self, service, provider):
        """Test an explicit capacity."""
        service.add_weekly_slot("p1", "周二：09:00-10:00", capacity=2)

        assert provider.capacity_of(parse_slot_key("周二：09:00-10:00")) == 2

    def test_touching_slot_is_added(self, service, provider):
        """Test that an adjacent slot needs no merge."""
        change = service.add_weekly_slot("p1", "周一：13:00-14:00")

        assert change.outcome is SlotOutcome.ADDED
        assert len(provider.recurring_slots) == 3

    def test_exact_duplicate_is_rejected(self, service):
        """Test SlotAlreadyExists."""
        with pytest.raises(SlotAlreadyExists):
            service.add_weekly_slot("p1", "周一：11:00-13:00")

    def test_date_slot_is_not_weekly(self, service):
        """Test that pinned slots go through open_date."""
        with pytest.raises(InvalidSlotFormat):
            service.add_weekly_slot("p1", "05-02：09:00-10:00")

    def test_invalid_capacity(self, service):
        """Test capacity below one."""
        with pytest.raises(InvalidCapacity):
            service.add_weekly_slot("p1", "周二：09:00-10:00", capacity=0)

    def test_unknown_provider(self, service):
        """Test that the provider id is resolved."""
        with pytest.raises(ProviderNotFound):
            service.add_weekly_slot("nobody", "周二：09:00-10:00")

    def test_overlap_without_confirmation_is_declined(self, service, provider):
        """Test that nothing changes unless the merge is confirmed."""
        before = list(provider.recurring_slots)

        change = service.add_weekly_slot("p1", "周一：09:00-12:00")

        assert change.outcome is SlotOutcome.DECLINED
        assert str(change.proposal.merged_slot) == "周一：09:00-13:00"
        assert provider.recurring_slots == before

    def test_overlap_confirmed_merges(self, service, provider, bookings):
        """Test the confirmed merge path."""
        booking = _book(bookings, "周一：11:00-13:00", MONDAY)
        seen = []

        def confirm(proposal):
            seen.append(proposal)
            return True

        change = service.add_weekly_slot("p1", "周一：09:00-12:00", capacity=2, confirm=confirm)

        assert change.outcome is SlotOutcome.MERGED
        assert str(change.slot) == "周一：09:00-13:00"
        assert change.capacity == 3
        assert change.merge.rewritten_bookings == 1
        assert len(seen) == 1
        assert booking.slot_key == parse_slot_key("周一：09:00-13:00")
        assert not provider.has_slot(parse_slot_key("周一：11:00-13:00"))

    def test_confirm_returning_false_declines(self, service, provider):
        """Test a rejected confirmation."""
        change = service.add_weekly_slot("p1", "周一：09:00-12:00", confirm=lambda proposal: False)

        assert change.outcome is SlotOutcome.DECLINED
        assert provider.has_slot(parse_slot_key("周一：11:00-13:00"))

    def test_schedule_changed_during_confirmation(self, service, provider):
        """Test that a proposal gone stale is not applied."""

        def confirm(proposal):
            provider.add_slot(parse_slot_key("周一：08:00-09:30"))
            return True

        with pytest.raises(StaleProposal):
            service.add_weekly_slot("p1", "周一：09:00-12:00", confirm=confirm)

        assert provider.has_slot(parse_slot_key("周一：11:00-13:00"))

    def test_merge_rejected_when_bookings_do_not_fit(self, service, provider, bookings):
        """Test that MergeCapacityExceeded propagates."""
        provider.add_slot(parse_slot_key("周一：08:00-09:30"), capacity=1)
        provider.slot_capacity[parse_slot_key("周一：11:00-13:00")] = 1
        _book(bookings, "周一：08:00-09:30", MONDAY)
        _book(bookings, "周一：11:00-13:00", MONDAY)

        with pytest.raises(MergeCapacityExceeded):
            service.add_weekly_slot("p1", "周一：09:00-12:00", capacity=1, confirm=lambda p: True)


class TestDateOverrides:
    """Tests for opening, closing and resetting dates."""

    def test_open_date_adds_pinned_slot(self, service, provider):
        """Test forcing a Thursday open."""
        change = service.open_date("p1", THURSDAY, "14:00-15:00", capacity=2)

        pinned = DateOverrideSlot.for_date(THURSDAY, change.slot.time_range)
        assert change.outcome is SlotOutcome.ADDED
        assert change.slot == pinned
        assert provider.has_slot(pinned)
        assert THURSDAY in provider.override_open_dates
        assert service.calendar("p1", THURSDAY, 1)[0].status is DayStatus.SPECIAL

    def test_open_past_date(self, service):
        """Test that past dates are refused."""
        with pytest.raises(PastDate):
            service.open_date("p1", pendulum.date(2024, 4, 28), "14:00-15:00")

    def test_open_date_takes_the_lock_once(self, service, provider, bookings):
        """Test that the pinned slot and the open date appear together."""
        bookings.lock = CountingLock()

        change = service.open_date("p1", THURSDAY, "14:00-15:00")

        assert bookings.lock.entered == 1
        assert provider.has_slot(change.slot)
        assert THURSDAY in provider.override_open_dates

    def test_open_date_merging_pinned_slots(self, service, provider):
        """Test that a merged pinned slot leaves the date open."""
        service.open_date("p1", THURSDAY, "14:00-15:00", capacity=2)

        change = service.open_date("p1", THURSDAY, "14:30-16:00", confirm=lambda p: True)

        assert change.outcome is SlotOutcome.MERGED
        assert [str(s) for s in provider.date_slots(THURSDAY)] == ["05-02：14:00-16:00"]
        assert THURSDAY in provider.override_open_dates

    def test_open_date_declined_merge_keeps_date_unopened(self, service, provider):
        """Test that nothing changes when a merge of pinned slots is declined."""
        provider.add_slot(DateOverrideSlot.for_date(THURSDAY, TimeRange.parse("14:00-15:00")))

        change = service.open_date("p1", THURSDAY, "14:30-16:00", confirm=lambda p: False)

        assert change.outcome is SlotOutcome.DECLINED
        assert THURSDAY not in provider.override_open_dates
        assert [str(s) for s in provider.date_slots(THURSDAY)] == ["05-02：14:00-15:00"]

    def test_open_closed_date_reopens_it(self, service, provider):
        """Test that the override sets stay disjoint."""
        service.close_date("p1", THURSDAY)
        service.open_date("p1", THURSDAY, "14:00-15:00")

        assert THURSDAY in provider.override_open_dates
        assert THURSDAY not in provider.override_closed_dates

    def test_close_date(self, service, provider):
        """Test closing a regular day."""
        wednesday = pendulum.date(2024, 5, 1)

        service.close_date("p1", wednesday)

        assert wednesday in provider.override_closed_dates
        assert service.calendar("p1", wednesday, 1)[0].status is DayStatus.CLOSED

    def test_close_date_drops_pinned_slots(self, service, provider):
        """Test that slots pinned to a closed date are removed."""
        service.open_date("p1", THURSDAY, "14:00-15:00")

        service.close_date("p1", THURSDAY)

        assert provider.date_slots(THURSDAY) == []
        assert THURSDAY not in provider.override_open_dates

    def test_close_date_with_bookings(self, service, bookings):
        """Test that a date holding bookings cannot be closed."""
        _book(bookings, "周一：11:00-13:00", MONDAY)

        with pytest.raises(SlotInUse):
            service.close_date("p1", MONDAY)

    def test_close_past_date(self, service):
        """Test that past dates are refused."""
        with pytest.raises(PastDate):
            service.close_date("p1", pendulum.date(2024, 4, 1))

    def test_reset_open_date(self, service, provider):
        """Test that a reset drops the special day and its slots."""
        service.open_date("p1", THURSDAY, "14:00-15:00")

        service.reset_date("p1", THURSDAY)

        assert THURSDAY not in provider.override_open_dates
        assert provider.date_slots(THURSDAY) == []
        assert service.calendar("p1", THURSDAY, 1)[0].status is DayStatus.UNAVAILABLE

    def test_reset_closed_date(self, service, provider):
        """Test that a reset restores the weekly schedule."""
        service.close_date("p1", MONDAY)

        service.reset_date("p1", MONDAY)

        assert service.calendar("p1", MONDAY, 1)[0].status is DayStatus.REGULAR

    def test_reset_without_override(self, service):
        """Test DateNotOverridden."""
        with pytest.raises(DateNotOverridden):
            service.reset_date("p1", MONDAY)


class TestCapacityAndRemoval:
    """Tests for set_capacity and remove_slot."""

    def test_set_capacity(self, service, provider):
        """Test a valid change."""
        service.set_capacity("p1", "周三：09:00-10:00", 4)

        assert provider.capacity_of(parse_slot_key("周三：09:00-10:00")) == 4

    def test_set_capacity_below_one(self, service):
        """Test InvalidCapacity."""
        with pytest.raises(InvalidCapacity):
            service.set_capacity("p1", "周三：09:00-10:00", 0)

    def test_set_capacity_unknown_slot(self, service):
        """Test UnknownSlot."""
        with pytest.raises(UnknownSlot):
            service.set_capacity("p1", "周五：09:00-10:00", 3)

    def test_set_capacity_below_bookings(self, service, bookings):
        """Test that existing bookings bound the capacity from below."""
        wednesday = pendulum.date(2024, 5, 1)
        _book(bookings, "周三：09:00-10:00", wednesday)
        _book(bookings, "周三：09:00-10:00", wednesday)

        with pytest.raises(CapacityBelowOccupancy):
            service.set_capacity("p1", "周三：09:00-10:00", 1)

    def test_set_capacity_counts_bookings_of_all_dates(self, service, provider, bookings):
        """Test that bookings in different weeks all hold the slot."""
        _book(bookings, "周三：09:00-10:00", pendulum.date(2024, 5, 1))
        _book(bookings, "周三：09:00-10:00", pendulum.date(2024, 5, 8))

        with pytest.raises(CapacityBelowOccupancy) as excinfo:
            service.set_capacity("p1", "周三：09:00-10:00", 1)

        assert excinfo.value.booked == 2
        assert provider.capacity_of(parse_slot_key("周三：09:00-10:00")) == 2

    def test_remove_slot(self, service, provider):
        """Test removing an unused slot."""
        service.remove_slot("p1", "周三：09:00-10:00")

        assert not provider.has_slot(parse_slot_key("周三：09:00-10:00"))
        assert parse_slot_key("周三：09:00-10:00") not in provider.slot_capacity

    def test_remove_slot_in_use(self, service, bookings):
        """Test SlotInUse."""
        _book(bookings, "周三：09:00-10:00", pendulum.date(2024, 5, 1))

        with pytest.raises(SlotInUse):
            service.remove_slot("p1", "周三：09:00-10:00")

    def test_remove_unknown_slot(self, service):
        """Test UnknownSlot."""
        with pytest.raises(UnknownSlot):
            service.remove_slot("p1", "周五：09:00-10:00")


class TestCalendar:
    """Tests for ScheduleService.calendar."""

    def test_starts_today_by_default(self, service):
        """Test the default start date."""
        days = service.calendar("p1", days=3)

        assert [d.day for d in days] == [
            TODAY,
            pendulum.date(2024, 4, 30),
            pendulum.date(2024, 5, 1),
        ]
        assert days[0].status is DayStatus.REGULAR
        assert days[1].status is DayStatus.UNAVAILABLE
