"""
Domain layer - Scheduling rules over in-memory providers and bookings.
"""

from .availability import AvailabilityResolver, CalendarDay, DayStatus
from .capacity import CapacityLedger, SlotOccupancy
from .merger import ConflictMerger, MergeProposal, MergeSummary
from .models import DEFAULT_SLOT_CAPACITY, Booking, Provider
from .queue import QueueAssigner
from .repository import BookingRepository, ProviderRepository, SearchField
from .slot_key import (
    DateOverrideSlot,
    SlotKey,
    SlotKind,
    TimeRange,
    WeeklySlot,
    date_prefix,
    parse_slot_key,
    weekly_prefix,
)

__all__ = [
    "AvailabilityResolver",
    "Booking",
    "BookingRepository",
    "CalendarDay",
    "CapacityLedger",
    "ConflictMerger",
    "DEFAULT_SLOT_CAPACITY",
    "DateOverrideSlot",
    "DayStatus",
    "MergeProposal",
    "MergeSummary",
    "Provider",
    "ProviderRepository",
    "QueueAssigner",
    "SearchField",
    "SlotKey",
    "SlotKind",
    "SlotOccupancy",
    "TimeRange",
    "WeeklySlot",
    "date_prefix",
    "parse_slot_key",
    "weekly_prefix",
]
