"""
Conflict detection and merging of overlapping slots.

When an operator adds a slot that overlaps existing slots on the same day,
the overlapping slots are replaced by a single slot spanning all of them.
Bookings that pointed at a replaced slot are re-keyed to the merged slot so
they always reference a slot the provider still offers.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .capacity import CapacityLedger
from .exceptions import MergeCapacityExceeded
from .models import Provider
from .repository import BookingRepository
from .slot_key import SlotKey, coerce_slot_key


@dataclass(frozen=True)
class MergeProposal:
    """What a merge would produce; nothing has been changed yet."""
    new_slot: SlotKey
    overlaps: List[SlotKey]
    merged_slot: SlotKey
    merged_capacity: int


@dataclass(frozen=True)
class MergeSummary:
    merged_slot: SlotKey
    merged_capacity: int
    rewritten_bookings: int
    removed_slots: List[SlotKey]


class ConflictMerger:
    """
    Finds and merges overlapping slots of one provider.

    Algorithm:
    1. Collect slots on the same weekday (or the same pinned date) whose
       range overlaps the new one; touching ranges do not overlap
    2. Span all of them into one range, keep the largest capacity
    3. Check that all bookings of the overlapped slots fit the capacity
    4. Re-key bookings, then swap the slots on the provider
    """

    def __init__(self, bookings: BookingRepository, ledger: Optional[CapacityLedger] = None):
        if bookings is None:
            raise TypeError("ConflictMerger requires a booking repository")
        self._bookings = bookings
        self._ledger = ledger or CapacityLedger(bookings)

    def find_overlaps(self, provider: Provider, new_slot: Union[str, SlotKey]) -> List[SlotKey]:
        """
        Existing slots on the same day whose range overlaps ``new_slot``.

        Raises:
            InvalidSlotFormat: If ``new_slot`` is text that cannot be parsed
        """
        candidate = coerce_slot_key(new_slot)
        return [
            existing for existing in provider.recurring_slots
            if candidate.same_day(existing)
            and candidate.time_range.overlaps(existing.time_range)
        ]

    def propose_merge(
        self,
        provider: Provider,
        overlaps: Sequence[SlotKey],
        new_slot: Union[str, SlotKey],
        requested_capacity: Optional[int] = None,
    ) -> MergeProposal:
        """
        Merged slot and capacity for ``new_slot`` plus its overlaps.

        ``requested_capacity`` is the capacity asked for the new slot; when
        omitted the provider's current capacity for it (usually the default)
        is used.
        """
        candidate = coerce_slot_key(new_slot)

        merged_range = candidate.time_range
        merged_capacity = (
            requested_capacity if requested_capacity is not None
            else provider.capacity_of(candidate)
        )

        for existing in overlaps:
            merged_range = merged_range.span(existing.time_range)
            merged_capacity = max(merged_capacity, provider.capacity_of(existing))

        return MergeProposal(
            new_slot=candidate,
            overlaps=list(overlaps),
            merged_slot=candidate.with_range(merged_range),
            merged_capacity=merged_capacity,
        )

    def apply_merge(
        self,
        provider: Provider,
        overlaps: Sequence[SlotKey],
        merged_slot: SlotKey,
        merged_capacity: int,
    ) -> MergeSummary:
        """
        Replace ``overlaps`` with ``merged_slot`` and re-key their bookings.

        All bookings of the overlapped slots are counted together, whatever
        their date; the new slot has no bookings yet. Nothing is changed when
        the check fails.

        Raises:
            MergeCapacityExceeded: If the bookings exceed ``merged_capacity``
        """
        overlaps = list(overlaps)

        booked = self._ledger.total_occupancy(provider.name, overlaps)
        if booked > merged_capacity:
            raise MergeCapacityExceeded(merged_slot=merged_slot, booked=booked, capacity=merged_capacity)

        rewritten = 0
        for slot in overlaps:
            for booking in self._bookings.referencing(provider.name, slot):
                booking.slot_key = merged_slot
                rewritten += 1

        for slot in overlaps:
            provider.remove_slot(slot)
        provider.add_slot(merged_slot, capacity=merged_capacity)

        return MergeSummary(
            merged_slot=merged_slot,
            merged_capacity=merged_capacity,
            rewritten_bookings=rewritten,
            removed_slots=overlaps,
        )
