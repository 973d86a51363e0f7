"""
Adding, editing and removing providers.

Bookings refer to their provider by name, so renaming a provider rewrites
the name on its bookings, and a provider with bookings cannot be removed.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.exceptions import DuplicateProvider, InvalidAge, MissingField, ProviderInUse
from ..domain.models import Provider
from ..domain.repository import BookingRepository, ProviderRepository

logger = logging.getLogger(__name__)

MAX_AGE = 150


class ProviderService:
    """Maintains the provider list."""

    def __init__(self, providers: ProviderRepository, bookings: BookingRepository) -> None:
        if providers is None or bookings is None:
            raise TypeError("ProviderService requires provider and booking repositories")
        self._providers = providers
        self._bookings = bookings

    def add_provider(
        self,
        provider_id: str,
        name: str,
        *,
        subject: str = "",
        title: str = "",
        gender: str = "",
        age: int = 0,
    ) -> Provider:
        """
        Register a provider without any slots.

        Raises:
            MissingField: If id or name is empty
            InvalidAge: If age is outside 0..150
            DuplicateProvider: If the id or the name is taken
        """
        provider_id = provider_id.strip()
        name = name.strip()
        if not provider_id:
            raise MissingField("id")
        if not name:
            raise MissingField("name")
        _check_age(age)

        with self._bookings.lock:
            if self._providers.find_by_name(name) is not None:
                raise DuplicateProvider("name", name)
            provider = Provider(
                id=provider_id,
                name=name,
                subject=subject.strip(),
                title=title.strip(),
                gender=gender.strip(),
                age=age,
            )
            self._providers.add(provider)

        logger.info("Added provider %s (%s)", provider.name, provider.id)
        return provider

    def update_provider(
        self,
        provider_id: str,
        *,
        name: Optional[str] = None,
        subject: Optional[str] = None,
        title: Optional[str] = None,
        gender: Optional[str] = None,
        age: Optional[int] = None,
    ) -> Provider:
        """
        Edit provider details; fields left as None are kept.

        A new name or department is copied onto the provider's bookings.

        Raises:
            ProviderNotFound: If ``provider_id`` is unknown
            MissingField: If the new name is empty
            InvalidAge: If age is outside 0..150
            DuplicateProvider: If another provider has the new name
        """
        if name is not None:
            name = name.strip()
            if not name:
                raise MissingField("name")
        if age is not None:
            _check_age(age)

        with self._bookings.lock:
            provider = self._providers.get(provider_id)
            bookings = self._bookings.for_provider(provider.name)

            if name is not None and name != provider.name:
                holder = self._providers.find_by_name(name)
                if holder is not None:
                    raise DuplicateProvider("name", name)
                for booking in bookings:
                    booking.provider_name = name
                logger.info("Renamed provider %s to %s (%d booking(s))", provider.name, name, len(bookings))
                provider.name = name

            if subject is not None:
                provider.subject = subject.strip()
                for booking in bookings:
                    booking.provider_subject = provider.subject
            if title is not None:
                provider.title = title.strip()
            if gender is not None:
                provider.gender = gender.strip()
            if age is not None:
                provider.age = age

        return provider

    def remove_provider(self, provider_id: str) -> Provider:
        """
        Delete a provider that has no bookings.

        Raises:
            ProviderNotFound: If ``provider_id`` is unknown
            ProviderInUse: If bookings still reference the provider
        """
        with self._bookings.lock:
            provider = self._providers.get(provider_id)
            booked = len(self._bookings.for_provider(provider.name))
            if booked:
                raise ProviderInUse(provider.name, booked)
            self._providers.remove(provider.id)

        logger.info("Removed provider %s (%s)", provider.name, provider.id)
        return provider


def _check_age(age: int) -> None:
    if age < 0 or age > MAX_AGE:
        raise InvalidAge(age)
