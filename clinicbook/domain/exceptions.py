"""
Domain-specific exception hierarchy for the clinic booking application.
"""

from __future__ import annotations

from datetime import date


class ClinicBookError(Exception):
    """Base class for all application-level errors."""


class InvalidSlotFormat(ClinicBookError, ValueError):
    """Raised when a slot key or time range cannot be parsed."""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid slot '{value}': {reason}")


class ProviderNotFound(ClinicBookError, LookupError):
    """Raised when a provider id or name does not resolve."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Provider not found: '{identifier}'")


class BookingNotFound(ClinicBookError, LookupError):
    """Raised when a booking id does not resolve."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: '{booking_id}'")


class SlotNotOffered(ClinicBookError):
    """Raised when a slot is not among the provider's slots for a date."""

    def __init__(self, provider_name: str, slot: object, day: date):
        self.provider_name = provider_name
        self.slot = slot
        self.day = day
        super().__init__(
            f"{provider_name} does not offer '{slot}' on {day.isoformat()}"
        )


class CapacityExceeded(ClinicBookError):
    """Raised when a slot is already full for a date."""

    def __init__(self, slot: object, day: date, booked: int, capacity: int):
        self.slot = slot
        self.day = day
        self.booked = booked
        self.capacity = capacity
        super().__init__(
            f"Slot '{slot}' on {day.isoformat()} is full ({booked}/{capacity})"
        )


class MergeCapacityExceeded(ClinicBookError):
    """Raised when existing bookings do not fit into a merged slot."""

    def __init__(self, merged_slot: object, booked: int, capacity: int):
        self.merged_slot = merged_slot
        self.booked = booked
        self.capacity = capacity
        super().__init__(
            f"Merged slot '{merged_slot}' would hold {booked} bookings "
            f"but its capacity is {capacity}"
        )


class InvalidCapacity(ClinicBookError, ValueError):
    """Raised when a capacity is not a positive integer."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"Capacity must be at least 1, got {capacity}")


class CapacityBelowOccupancy(ClinicBookError):
    """Raised when a capacity change would drop below existing bookings."""

    def __init__(self, slot: object, booked: int, capacity: int):
        self.slot = slot
        self.booked = booked
        self.capacity = capacity
        super().__init__(
            f"Slot '{slot}' already has {booked} bookings, "
            f"capacity cannot be set to {capacity}"
        )


class SlotAlreadyExists(ClinicBookError):
    """Raised when a provider already offers the exact slot."""

    def __init__(self, slot: object):
        self.slot = slot
        super().__init__(f"Slot '{slot}' already exists")


class SlotInUse(ClinicBookError):
    """Raised when a slot cannot be removed because bookings reference it."""

    def __init__(self, slot: object, booked: int):
        self.slot = slot
        self.booked = booked
        super().__init__(f"Slot '{slot}' still has {booked} booking(s)")


class PastDate(ClinicBookError):
    """Raised when a schedule change targets a date in the past."""

    def __init__(self, day: date):
        self.day = day
        super().__init__(f"Cannot change the schedule of past date {day.isoformat()}")


class DateNotOverridden(ClinicBookError):
    """Raised when resetting a date that has no open/closed override."""

    def __init__(self, day: date):
        self.day = day
        super().__init__(f"{day.isoformat()} is neither a special open nor a closed date")


class OutsideBookingWindow(ClinicBookError):
    """Raised when a booking date is in the past or too far ahead."""

    def __init__(self, day: date, first: date, last: date):
        self.day = day
        self.first = first
        self.last = last
        super().__init__(
            f"{day.isoformat()} is outside the booking window "
            f"{first.isoformat()} - {last.isoformat()}"
        )


class DuplicateBooking(ClinicBookError):
    """Raised when a national id already holds a booking."""

    def __init__(self, national_id: str):
        self.national_id = national_id
        super().__init__(f"A booking already exists for national id {national_id}")


class InvalidIdentity(ClinicBookError, ValueError):
    """Raised when a national id fails validation."""

    def __init__(self, national_id: str):
        self.national_id = national_id
        super().__init__(f"Invalid national id: '{national_id}'")


class InvalidPhone(ClinicBookError, ValueError):
    """Raised when a phone number fails validation."""

    def __init__(self, phone: str):
        self.phone = phone
        super().__init__(f"Invalid phone number: '{phone}'")


class StoreError(ClinicBookError):
    """Raised when persisted data cannot be read or written."""


class UnknownSlot(ClinicBookError, LookupError):
    """Raised when a provider does not have the given slot at all."""

    def __init__(self, provider_name: str, slot: object):
        self.provider_name = provider_name
        self.slot = slot
        super().__init__(f"{provider_name} has no slot '{slot}'")


class StaleProposal(ClinicBookError):
    """Raised when the schedule changed while a merge awaited confirmation."""

    def __init__(self, slot: object):
        self.slot = slot
        super().__init__(f"Schedule changed while confirming the merge of '{slot}', please retry")


class MissingField(ClinicBookError, ValueError):
    """Raised when a required booking field is empty."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Missing required field: {field_name}")


class DuplicateProvider(ClinicBookError, ValueError):
    """Raised when a provider id or name is already taken."""

    def __init__(self, field_name: str, value: str):
        self.field_name = field_name
        self.value = value
        super().__init__(f"A provider with {field_name} '{value}' already exists")


class InvalidAge(ClinicBookError, ValueError):
    """Raised when an age is outside 0..150."""

    def __init__(self, age: int):
        self.age = age
        super().__init__(f"Age must be between 0 and 150, got {age}")


class ProviderInUse(ClinicBookError):
    """Raised when removing a provider that still has bookings."""

    def __init__(self, provider_name: str, booked: int):
        self.provider_name = provider_name
        self.booked = booked
        super().__init__(f"{provider_name} still has {booked} booking(s)")
