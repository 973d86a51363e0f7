"""
In-memory collections of providers and bookings keyed by stable ids.

The scheduling components never hold positional indices into these
collections; they look records up by id (or provider name, which is what a
booking references) so deletions and merges cannot leave dangling references.
"""

from __future__ import annotations

import threading
from datetime import date
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

from .exceptions import BookingNotFound, DuplicateProvider, ProviderNotFound
from .models import Booking, Provider
from .slot_key import SlotKey


class SearchField(str, Enum):
    PROVIDER = "provider"
    PATIENT = "patient"
    PHONE = "phone"


class ProviderRepository:
    """Providers keyed by id, in insertion order."""

    def __init__(self, providers: Iterable[Provider] = ()):
        self._providers: Dict[str, Provider] = {}
        for provider in providers:
            self.add(provider)

    def add(self, provider: Provider) -> None:
        if provider.id in self._providers:
            raise DuplicateProvider("id", provider.id)
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> Provider:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise ProviderNotFound(provider_id) from None

    def find_by_name(self, name: str) -> Provider | None:
        for provider in self._providers.values():
            if provider.name == name:
                return provider
        return None

    def get_by_name(self, name: str) -> Provider:
        provider = self.find_by_name(name)
        if provider is None:
            raise ProviderNotFound(name)
        return provider

    def resolve(self, identifier: str) -> Provider:
        """
        Resolve a provider by id first, then by name.

        Raises:
            ProviderNotFound: If neither matches
        """
        if identifier in self._providers:
            return self._providers[identifier]
        return self.get_by_name(identifier)

    def remove(self, provider_id: str) -> Provider:
        try:
            return self._providers.pop(provider_id)
        except KeyError:
            raise ProviderNotFound(provider_id) from None

    def subjects(self) -> List[str]:
        """Distinct departments, sorted."""
        return sorted({p.subject for p in self._providers.values() if p.subject})

    def by_subject(self, subject: str) -> List[Provider]:
        return [p for p in self._providers.values() if p.subject == subject]

    def __iter__(self) -> Iterator[Provider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)


class BookingRepository:
    """
    Bookings keyed by id, in insertion order.

    ``lock`` serializes check-then-act sequences (capacity check and insert,
    merge, edit-recompute). Callers must not do I/O while holding it.
    """

    def __init__(self, bookings: Iterable[Booking] = ()):
        self._bookings: Dict[str, Booking] = {}
        self.lock = threading.RLock()
        for booking in bookings:
            self.add(booking)

    def add(self, booking: Booking) -> None:
        if booking.id in self._bookings:
            raise ValueError(f"Duplicate booking id detected: {booking.id}")
        self._bookings[booking.id] = booking

    def get(self, booking_id: str) -> Booking:
        try:
            return self._bookings[booking_id]
        except KeyError:
            raise BookingNotFound(booking_id) from None

    def remove(self, booking_id: str) -> Booking:
        try:
            return self._bookings.pop(booking_id)
        except KeyError:
            raise BookingNotFound(booking_id) from None

    def for_provider(self, provider_name: str) -> List[Booking]:
        return [b for b in self._bookings.values() if b.provider_name == provider_name]

    def matching(
        self,
        provider_name: str,
        slot: SlotKey,
        day: date,
        exclude_id: Optional[str] = None,
    ) -> List[Booking]:
        """Bookings occupying the (provider, slot, date) tuple."""
        return [
            b for b in self._bookings.values()
            if b.id != exclude_id and b.occupies(provider_name, slot, day)
        ]

    def referencing(self, provider_name: str, slot: SlotKey) -> List[Booking]:
        """Bookings of a provider pointing at a slot, on any date."""
        return [
            b for b in self._bookings.values()
            if b.provider_name == provider_name and b.slot_key == slot
        ]

    def find_by_national_id(self, national_id: str) -> Booking | None:
        for booking in self._bookings.values():
            if booking.national_id == national_id:
                return booking
        return None

    def search(self, keyword: str, field: SearchField = SearchField.PATIENT) -> List[Booking]:
        """Case-insensitive substring search; an empty keyword returns everything."""
        keyword = keyword.strip().lower()
        if not keyword:
            return list(self._bookings.values())

        def value_of(booking: Booking) -> str:
            if field is SearchField.PROVIDER:
                return booking.provider_name
            if field is SearchField.PHONE:
                return booking.phone
            return booking.patient_name

        return [b for b in self._bookings.values() if keyword in value_of(b).lower()]

    def __iter__(self) -> Iterator[Booking]:
        return iter(list(self._bookings.values()))

    def __len__(self) -> int:
        return len(self._bookings)
