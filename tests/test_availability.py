"""
Tests for availability resolution.
"""

import pendulum

from clinicbook.domain.availability import AvailabilityResolver, DayStatus
from clinicbook.domain.models import Provider
from clinicbook.domain.slot_key import parse_slot_key

WEDNESDAY = pendulum.date(2024, 5, 1)
THURSDAY = pendulum.date(2024, 5, 2)
NEXT_WEDNESDAY = pendulum.date(2024, 5, 8)


def _provider(*slots: str) -> Provider:
    provider = Provider(id="p1", name="Dr. Li", subject="Cardiology")
    for text in slots:
        provider.add_slot(parse_slot_key(text))
    return provider


class TestIsAvailable:
    """Tests for AvailabilityResolver.is_available."""

    def test_weekly_slot_makes_weekday_available(self):
        """Test regular weekly availability."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00")

        assert resolver.is_available(provider, WEDNESDAY)
        assert resolver.is_available(provider, NEXT_WEDNESDAY)
        assert not resolver.is_available(provider, THURSDAY)

    def test_closed_date_wins(self):
        """Test that a closed override beats the weekly schedule."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00")
        provider.close_date(WEDNESDAY)

        assert not resolver.is_available(provider, WEDNESDAY)
        assert resolver.is_available(provider, NEXT_WEDNESDAY)

    def test_closed_date_wins_over_open_date(self):
        """Test precedence even if both sets were filled directly."""
        resolver = AvailabilityResolver()
        provider = _provider()
        provider.override_open_dates.add(THURSDAY)
        provider.override_closed_dates.add(THURSDAY)

        assert not resolver.is_available(provider, THURSDAY)

    def test_open_date_without_any_slot(self):
        """Test that a forced-open date is available with no slots at all."""
        resolver = AvailabilityResolver()
        provider = _provider()
        provider.open_date(WEDNESDAY)

        assert resolver.is_available(provider, WEDNESDAY)
        assert resolver.available_slots(provider, WEDNESDAY) == []

    def test_date_override_slot_alone_does_not_open_a_date(self):
        """Test that a pinned slot needs the date in the open set."""
        resolver = AvailabilityResolver()
        provider = _provider("05-02：14:00-15:00")

        assert not resolver.is_available(provider, THURSDAY)


class TestAvailableSlots:
    """Tests for AvailabilityResolver.available_slots."""

    def test_weekly_slots_in_insertion_order(self):
        """Test that weekday slots keep the provider's order."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：14:00-15:00", "周一：09:00-10:00", "周三：09:00-10:00")

        assert resolver.available_slots(provider, WEDNESDAY) == [
            parse_slot_key("周三：14:00-15:00"),
            parse_slot_key("周三：09:00-10:00"),
        ]

    def test_open_date_uses_pinned_slots(self):
        """Test that pinned slots replace the weekly ones on an open date."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00", "05-01：14:00-15:00")
        provider.open_date(WEDNESDAY)

        assert resolver.available_slots(provider, WEDNESDAY) == [parse_slot_key("05-01：14:00-15:00")]

    def test_open_date_falls_back_to_weekly_slots(self):
        """Test fallback to the regular schedule when nothing is pinned."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00")
        provider.open_date(WEDNESDAY)

        assert resolver.available_slots(provider, WEDNESDAY) == [parse_slot_key("周三：09:00-10:00")]

    def test_pinned_slot_ignored_when_date_not_open(self):
        """Test that a pinned slot is not offered unless its date is open."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00", "05-01：14:00-15:00")

        assert resolver.available_slots(provider, WEDNESDAY) == [parse_slot_key("周三：09:00-10:00")]

    def test_no_slots(self):
        """Test that absence of slots gives an empty list."""
        resolver = AvailabilityResolver()

        assert resolver.available_slots(_provider(), THURSDAY) == []

    def test_is_offered(self):
        """Test the combined date and slot check."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00")
        slot = parse_slot_key("周三：09:00-10:00")

        assert resolver.is_offered(provider, slot, WEDNESDAY)
        assert not resolver.is_offered(provider, slot, THURSDAY)

        provider.close_date(WEDNESDAY)
        assert not resolver.is_offered(provider, slot, WEDNESDAY)


class TestCalendar:
    """Tests for per-date status."""

    def test_statuses(self):
        """Test every status over one week."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00", "周五：09:00-10:00")
        provider.open_date(THURSDAY)
        provider.close_date(pendulum.date(2024, 5, 3))

        days = resolver.calendar(provider, WEDNESDAY, 4)

        assert [d.status for d in days] == [
            DayStatus.REGULAR,
            DayStatus.SPECIAL,
            DayStatus.CLOSED,
            DayStatus.UNAVAILABLE,
        ]
        assert [d.day for d in days][-1] == pendulum.date(2024, 5, 4)

    def test_bookable_dates(self):
        """Test that only regular and special days are bookable."""
        resolver = AvailabilityResolver()
        provider = _provider("周三：09:00-10:00")

        assert resolver.bookable_dates(provider, WEDNESDAY, 14) == [
            WEDNESDAY,
            NEXT_WEDNESDAY,
        ]
