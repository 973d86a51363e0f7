"""
Domain models for providers and bookings.
"""

import datetime
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .slot_key import SlotKey, SlotKind

# Capacity of a slot that has no explicit entry in ``Provider.slot_capacity``.
DEFAULT_SLOT_CAPACITY = 1


@dataclass
class Provider:
    """
    A clinician offering bookable slots.

    Invariant: ``override_open_dates`` and ``override_closed_dates`` are
    disjoint, and ``recurring_slots`` holds no duplicates.
    """
    id: str
    name: str
    subject: str = ""  # Department
    title: str = ""
    gender: str = ""
    age: int = 0
    recurring_slots: List[SlotKey] = field(default_factory=list)
    override_open_dates: Set[datetime.date] = field(default_factory=set)
    override_closed_dates: Set[datetime.date] = field(default_factory=set)
    slot_capacity: Dict[SlotKey, int] = field(default_factory=dict)

    def capacity_of(self, slot: SlotKey) -> int:
        """Configured capacity of a slot, or ``DEFAULT_SLOT_CAPACITY``."""
        capacity: Optional[int] = self.slot_capacity.get(slot)
        if capacity is None:
            return DEFAULT_SLOT_CAPACITY
        return capacity

    def has_slot(self, slot: SlotKey) -> bool:
        return slot in self.recurring_slots

    def add_slot(self, slot: SlotKey, capacity: Optional[int] = None) -> None:
        """Append a slot (ignored if already present) and optionally set its capacity."""
        if slot not in self.recurring_slots:
            self.recurring_slots.append(slot)
        if capacity is not None:
            self.slot_capacity[slot] = capacity

    def remove_slot(self, slot: SlotKey) -> None:
        """Drop a slot together with its capacity entry."""
        self.recurring_slots = [s for s in self.recurring_slots if s != slot]
        self.slot_capacity.pop(slot, None)

    def open_date(self, day: datetime.date) -> None:
        self.override_closed_dates.discard(day)
        self.override_open_dates.add(day)

    def close_date(self, day: datetime.date) -> None:
        self.override_open_dates.discard(day)
        self.override_closed_dates.add(day)

    def clear_override(self, day: datetime.date) -> None:
        self.override_open_dates.discard(day)
        self.override_closed_dates.discard(day)

    def date_slots(self, day: datetime.date) -> List[SlotKey]:
        """Date-specific slots pinned to ``day``."""
        return [
            slot for slot in self.recurring_slots
            if slot.kind is SlotKind.DATE_OVERRIDE and slot.matches(day)
        ]


@dataclass
class Booking:
    """
    A patient's reservation of a provider slot on a date.

    ``queue_position`` is 1-based; 0 means unassigned, which is the state of a
    booking whose provider, slot or date has been cleared.
    """
    patient_name: str
    national_id: str
    phone: str
    provider_name: str
    provider_subject: str = ""
    slot_key: Optional[SlotKey] = None
    date: Optional[datetime.date] = None
    description: str = ""
    gender: str = ""
    age: int = 0
    queue_position: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_scheduled(self) -> bool:
        """True when provider, slot and date are all set."""
        return bool(self.provider_name) and self.slot_key is not None and self.date is not None

    def occupies(self, provider_name: str, slot: SlotKey, day: datetime.date) -> bool:
        """Check if this booking takes a place in the (provider, slot, date) tuple."""
        return (
            self.provider_name == provider_name
            and self.slot_key == slot
            and self.date == day
        )

    def unschedule(self) -> None:
        """Clear slot, date and queue position."""
        self.slot_key = None
        self.date = None
        self.queue_position = 0
