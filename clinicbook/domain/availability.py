"""
Resolution of which dates and slots a provider offers.

Precedence for a single date:
1. A forced-closed date is never available
2. A forced-open date is always available, even without a matching slot
3. Otherwise the date is available if a weekly slot falls on its weekday
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import List

from .models import Provider
from .slot_key import SlotKey, SlotKind


class DayStatus(Enum):
    CLOSED = "closed"  # Forced closed
    SPECIAL = "special"  # Forced open
    REGULAR = "regular"  # Weekly schedule
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CalendarDay:
    day: date
    status: DayStatus

    @property
    def is_bookable(self) -> bool:
        return self.status in (DayStatus.SPECIAL, DayStatus.REGULAR)


class AvailabilityResolver:
    """Answers availability questions for a single provider at a time."""

    def is_available(self, provider: Provider, day: date) -> bool:
        if day in provider.override_closed_dates:
            return False
        if day in provider.override_open_dates:
            return True
        return bool(self._weekly_slots(provider, day))

    def available_slots(self, provider: Provider, day: date) -> List[SlotKey]:
        """
        Slots a patient may pick on ``day``, in the provider's slot order.

        On a forced-open date the date-specific slots win; if none were
        defined the regular weekday slots apply. Closed dates are the
        caller's concern (see ``is_available``).
        """
        if day in provider.override_open_dates:
            pinned = provider.date_slots(day)
            if pinned:
                return pinned

        return self._weekly_slots(provider, day)

    def is_offered(self, provider: Provider, slot: SlotKey, day: date) -> bool:
        """True if ``slot`` can be booked on ``day``."""
        return self.is_available(provider, day) and slot in self.available_slots(provider, day)

    def day_status(self, provider: Provider, day: date) -> DayStatus:
        if day in provider.override_closed_dates:
            return DayStatus.CLOSED
        if day in provider.override_open_dates:
            return DayStatus.SPECIAL
        if self._weekly_slots(provider, day):
            return DayStatus.REGULAR
        return DayStatus.UNAVAILABLE

    def calendar(self, provider: Provider, start: date, days: int) -> List[CalendarDay]:
        """Status of each date in ``[start, start + days)``."""
        calendar_days: List[CalendarDay] = []
        for offset in range(days):
            current = start + timedelta(days=offset)
            calendar_days.append(CalendarDay(day=current, status=self.day_status(provider, current)))
        return calendar_days

    def bookable_dates(self, provider: Provider, start: date, days: int) -> List[date]:
        return [entry.day for entry in self.calendar(provider, start, days) if entry.is_bookable]

    @staticmethod
    def _weekly_slots(provider: Provider, day: date) -> List[SlotKey]:
        return [
            slot for slot in provider.recurring_slots
            if slot.kind is SlotKind.WEEKLY and slot.matches(day)
        ]
