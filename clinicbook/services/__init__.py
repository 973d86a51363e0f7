"""
Service layer helpers that orchestrate repositories and domain logic.
"""

from .booking import BookingRequest, BookingService
from .providers import ProviderService
from .schedule import ScheduleService, SlotChange, SlotOutcome

__all__ = [
    "BookingRequest",
    "BookingService",
    "ProviderService",
    "ScheduleService",
    "SlotChange",
    "SlotOutcome",
]
