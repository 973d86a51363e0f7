"""
Operator-facing changes to a provider's schedule.

Every change that can touch bookings runs under the booking repository's
lock. A merge confirmation is requested outside the lock; the proposal is
then recomputed and must still match what was confirmed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Union

import pendulum

from ..domain.availability import AvailabilityResolver, CalendarDay
from ..domain.capacity import CapacityLedger
from ..domain.exceptions import (
    CapacityBelowOccupancy,
    DateNotOverridden,
    InvalidCapacity,
    InvalidSlotFormat,
    PastDate,
    SlotAlreadyExists,
    SlotInUse,
    StaleProposal,
    UnknownSlot,
)
from ..domain.merger import ConflictMerger, MergeProposal, MergeSummary
from ..domain.models import Provider
from ..domain.repository import BookingRepository, ProviderRepository
from ..domain.slot_key import DateOverrideSlot, SlotKey, SlotKind, TimeRange, coerce_slot_key

logger = logging.getLogger(__name__)

ConfirmMerge = Callable[[MergeProposal], bool]


def _today() -> date:
    return pendulum.now().date()


class SlotOutcome(Enum):
    ADDED = "added"
    MERGED = "merged"
    DECLINED = "declined"


@dataclass(frozen=True)
class SlotChange:
    """Result of adding a slot."""
    outcome: SlotOutcome
    slot: SlotKey
    capacity: int
    merge: Optional[MergeSummary] = None
    proposal: Optional[MergeProposal] = None


class ScheduleService:
    """Edits slots, capacities and date overrides of providers."""

    def __init__(
        self,
        providers: ProviderRepository,
        bookings: BookingRepository,
        *,
        default_capacity: int = 5,
        clock: Callable[[], date] = _today,
    ) -> None:
        if providers is None or bookings is None:
            raise TypeError("ScheduleService requires provider and booking repositories")
        self._providers = providers
        self._bookings = bookings
        self._default_capacity = default_capacity
        self._clock = clock
        self._resolver = AvailabilityResolver()
        self._ledger = CapacityLedger(bookings)
        self._merger = ConflictMerger(bookings, self._ledger)

    def add_weekly_slot(
        self,
        provider_id: str,
        slot: Union[str, SlotKey],
        capacity: Optional[int] = None,
        confirm: Optional[ConfirmMerge] = None,
    ) -> SlotChange:
        """
        Add a weekly slot, merging it with overlapping slots if confirmed.

        Args:
            provider_id: Provider to change
            slot: Weekly slot, e.g. ``周一：09:00-12:00``
            capacity: Capacity of the new slot; the configured default if omitted
            confirm: Called with the merge proposal when overlaps exist; the
                slot is only added if it returns True

        Raises:
            InvalidSlotFormat: If the slot is malformed or not weekly
            SlotAlreadyExists: If the provider already has this exact slot
            MergeCapacityExceeded: If existing bookings do not fit the merge
        """
        candidate = coerce_slot_key(slot)
        if candidate.kind is not SlotKind.WEEKLY:
            raise InvalidSlotFormat(str(candidate), "expected a weekly slot")
        return self._add_slot(provider_id, candidate, capacity, confirm)

    def open_date(
        self,
        provider_id: str,
        day: date,
        time_range: Union[str, TimeRange],
        capacity: Optional[int] = None,
        confirm: Optional[ConfirmMerge] = None,
    ) -> SlotChange:
        """
        Force ``day`` open with a slot that exists only on that date.

        Raises:
            PastDate: If ``day`` is before today
            SlotAlreadyExists: If that exact date slot already exists
        """
        if day < self._clock():
            raise PastDate(day)

        if isinstance(time_range, str):
            time_range = TimeRange.parse(time_range)
        candidate = DateOverrideSlot.for_date(day, time_range)

        change = self._add_slot(
            provider_id, candidate, capacity, confirm, on_applied=lambda provider: provider.open_date(day)
        )
        if change.outcome is not SlotOutcome.DECLINED:
            logger.info("Opened %s for provider %s", day.isoformat(), provider_id)
        return change

    def close_date(self, provider_id: str, day: date) -> Provider:
        """
        Force ``day`` closed and drop the slots pinned to it.

        Raises:
            PastDate: If ``day`` is before today
            SlotInUse: If bookings exist on that date or on a pinned slot
        """
        if day < self._clock():
            raise PastDate(day)

        with self._bookings.lock:
            provider = self._providers.get(provider_id)
            if day in provider.override_closed_dates:
                return provider

            on_day = [b for b in self._bookings.for_provider(provider.name) if b.date == day]
            if on_day:
                raise SlotInUse(slot=on_day[0].slot_key, booked=len(on_day))

            self._drop_pinned_slots(provider, day)
            provider.close_date(day)

        logger.info("Closed %s for provider %s", day.isoformat(), provider.name)
        return provider

    def reset_date(self, provider_id: str, day: date) -> Provider:
        """
        Remove an open or closed override so the weekly schedule applies again.

        Raises:
            DateNotOverridden: If ``day`` has no override
            SlotInUse: If a slot pinned to the date still has bookings
        """
        with self._bookings.lock:
            provider = self._providers.get(provider_id)
            if day in provider.override_open_dates:
                self._drop_pinned_slots(provider, day)
            elif day not in provider.override_closed_dates:
                raise DateNotOverridden(day)
            provider.clear_override(day)

        logger.info("Reset %s for provider %s", day.isoformat(), provider.name)
        return provider

    def set_capacity(self, provider_id: str, slot: Union[str, SlotKey], capacity: int) -> Provider:
        """
        Change a slot's capacity.

        Raises:
            InvalidCapacity: If ``capacity`` < 1
            UnknownSlot: If the provider has no such slot
            CapacityBelowOccupancy: If the slot already holds more bookings
        """
        if capacity < 1:
            raise InvalidCapacity(capacity)
        key = coerce_slot_key(slot)

        with self._bookings.lock:
            provider = self._providers.get(provider_id)
            if not provider.has_slot(key):
                raise UnknownSlot(provider.name, key)

            booked = self._ledger.total_occupancy(provider.name, [key])
            if capacity < booked:
                raise CapacityBelowOccupancy(slot=key, booked=booked, capacity=capacity)

            provider.slot_capacity[key] = capacity

        logger.info("Capacity of %s for %s set to %d", key, provider.name, capacity)
        return provider

    def remove_slot(self, provider_id: str, slot: Union[str, SlotKey]) -> Provider:
        """
        Delete a slot that has no bookings.

        Raises:
            UnknownSlot: If the provider has no such slot
            SlotInUse: If any booking references the slot
        """
        key = coerce_slot_key(slot)

        with self._bookings.lock:
            provider = self._providers.get(provider_id)
            if not provider.has_slot(key):
                raise UnknownSlot(provider.name, key)

            booked = len(self._bookings.referencing(provider.name, key))
            if booked:
                raise SlotInUse(slot=key, booked=booked)

            provider.remove_slot(key)

        logger.info("Removed slot %s from %s", key, provider.name)
        return provider

    def calendar(self, provider_id: str, start: Optional[date] = None, days: int = 60) -> List[CalendarDay]:
        """Status of each date from ``start`` (today by default)."""
        provider = self._providers.get(provider_id)
        return self._resolver.calendar(provider, start or self._clock(), days)

    def _add_slot(
        self,
        provider_id: str,
        candidate: SlotKey,
        capacity: Optional[int],
        confirm: Optional[ConfirmMerge],
        on_applied: Optional[Callable[[Provider], None]] = None,
    ) -> SlotChange:
        """
        Add or merge ``candidate``.

        ``on_applied`` runs under the same lock as the change itself, so
        related provider edits become visible together with the new slot.
        """
        if capacity is not None and capacity < 1:
            raise InvalidCapacity(capacity)
        requested = capacity if capacity is not None else self._default_capacity

        with self._bookings.lock:
            proposal = self._plan(provider_id, candidate, requested)
            if proposal is None:
                provider = self._providers.get(provider_id)
                provider.add_slot(candidate, capacity=requested)
                if on_applied is not None:
                    on_applied(provider)
                logger.info("Added slot %s to %s (capacity %d)", candidate, provider.name, requested)
                return SlotChange(outcome=SlotOutcome.ADDED, slot=candidate, capacity=requested)

        if confirm is None or not confirm(proposal):
            logger.info("Merge of %s declined", candidate)
            return SlotChange(
                outcome=SlotOutcome.DECLINED,
                slot=candidate,
                capacity=requested,
                proposal=proposal,
            )

        with self._bookings.lock:
            if self._plan(provider_id, candidate, requested) != proposal:
                raise StaleProposal(candidate)

            provider = self._providers.get(provider_id)
            summary = self._merger.apply_merge(
                provider,
                proposal.overlaps,
                proposal.merged_slot,
                proposal.merged_capacity,
            )
            if on_applied is not None:
                on_applied(provider)

        logger.info(
            "Merged %s into %s (capacity %d, %d booking(s) re-keyed)",
            ", ".join(str(s) for s in summary.removed_slots),
            summary.merged_slot,
            summary.merged_capacity,
            summary.rewritten_bookings,
        )
        return SlotChange(
            outcome=SlotOutcome.MERGED,
            slot=summary.merged_slot,
            capacity=summary.merged_capacity,
            merge=summary,
            proposal=proposal,
        )

    def _plan(self, provider_id: str, candidate: SlotKey, requested: int) -> Optional[MergeProposal]:
        """Merge proposal for ``candidate``, or None if it overlaps nothing."""
        provider = self._providers.get(provider_id)
        if provider.has_slot(candidate):
            raise SlotAlreadyExists(candidate)

        overlaps = self._merger.find_overlaps(provider, candidate)
        if not overlaps:
            return None
        return self._merger.propose_merge(provider, overlaps, candidate, requested_capacity=requested)

    def _drop_pinned_slots(self, provider: Provider, day: date) -> None:
        pinned = provider.date_slots(day)
        for slot in pinned:
            booked = len(self._bookings.referencing(provider.name, slot))
            if booked:
                raise SlotInUse(slot=slot, booked=booked)
        for slot in pinned:
            provider.remove_slot(slot)
