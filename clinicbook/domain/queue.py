"""
Queue position assignment.

A booking's position is one more than the number of other bookings in its
(provider, slot, date) tuple at the moment it is created or edited. Positions
are not renumbered when a booking is cancelled, so gaps can appear.
"""

from datetime import date
from typing import Optional

from .capacity import CapacityLedger
from .exceptions import CapacityExceeded
from .models import Provider
from .repository import BookingRepository
from .slot_key import SlotKey

UNASSIGNED_POSITION = 0


class QueueAssigner:
    """Computes queue positions; never mutates bookings itself."""

    def __init__(self, bookings: BookingRepository, ledger: Optional[CapacityLedger] = None):
        if bookings is None:
            raise TypeError("QueueAssigner requires a booking repository")
        self._bookings = bookings
        self._ledger = ledger or CapacityLedger(bookings)

    def assign_on_create(self, provider: Provider, slot: SlotKey, day: date) -> int:
        """
        Position for a new booking, computed before it is inserted.

        Raises:
            CapacityExceeded: If the tuple is already full
        """
        return self._next_position(provider, slot, day, exclude_id=None)

    def recompute_on_edit(
        self,
        booking_id: str,
        provider: Optional[Provider],
        slot: Optional[SlotKey],
        day: Optional[date],
    ) -> int:
        """
        Position for an existing booking moved to a new tuple.

        The edited booking does not count itself. If any part of the new
        tuple is cleared the booking becomes unassigned (position 0).

        Raises:
            BookingNotFound: If ``booking_id`` is unknown
            CapacityExceeded: If the new tuple is already full
        """
        self._bookings.get(booking_id)

        if provider is None or slot is None or day is None:
            return UNASSIGNED_POSITION

        return self._next_position(provider, slot, day, exclude_id=booking_id)

    def _next_position(
        self,
        provider: Provider,
        slot: SlotKey,
        day: date,
        exclude_id: Optional[str],
    ) -> int:
        booked = self._ledger.occupancy(provider.name, slot, day, exclude_id=exclude_id)
        capacity = self._ledger.capacity_of(provider, slot)

        if booked >= capacity:
            raise CapacityExceeded(slot=slot, day=day, booked=booked, capacity=capacity)

        return booked + 1
