"""
Occupancy accounting against slot capacities. Read-only.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from .models import Provider
from .repository import BookingRepository
from .slot_key import SlotKey


@dataclass(frozen=True)
class SlotOccupancy:
    """Bookings versus capacity for one slot on one date."""
    slot: SlotKey
    day: date
    booked: int
    capacity: int

    @property
    def is_full(self) -> bool:
        return self.booked >= self.capacity

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.booked, 0)

    def format_display(self) -> str:
        state = "full" if self.is_full else "booked"
        return f"{self.slot} ({state}: {self.booked}/{self.capacity})"


class CapacityLedger:
    """Counts bookings per (provider, slot, date) tuple."""

    def __init__(self, bookings: BookingRepository):
        if bookings is None:
            raise TypeError("CapacityLedger requires a booking repository")
        self._bookings = bookings

    def occupancy(
        self,
        provider_name: str,
        slot: SlotKey,
        day: date,
        exclude_id: Optional[str] = None,
    ) -> int:
        return len(self._bookings.matching(provider_name, slot, day, exclude_id=exclude_id))

    @staticmethod
    def capacity_of(provider: Provider, slot: SlotKey) -> int:
        return provider.capacity_of(slot)

    def has_room(self, provider: Provider, slot: SlotKey, day: date) -> bool:
        return self.occupancy(provider.name, slot, day) < self.capacity_of(provider, slot)

    def snapshot(self, provider: Provider, slot: SlotKey, day: date) -> SlotOccupancy:
        return SlotOccupancy(
            slot=slot,
            day=day,
            booked=self.occupancy(provider.name, slot, day),
            capacity=self.capacity_of(provider, slot),
        )

    def total_occupancy(self, provider_name: str, slots: Iterable[SlotKey]) -> int:
        """
        Bookings of one provider on any of ``slots``, over all dates.

        Unscheduled bookings (no date) still hold their slot and are counted.
        """
        return sum(len(self._bookings.referencing(provider_name, slot)) for slot in set(slots))
