"""
Application service for taking, moving and cancelling bookings.

The service validates patient input, asks the availability resolver whether
the slot is offered on the date, and lets the queue assigner compute the
position. The capacity check and the insert happen under one lock so two
bookings cannot both take the last place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, List, Optional, Protocol, Union

import pendulum

from ..domain.availability import AvailabilityResolver
from ..domain.capacity import CapacityLedger, SlotOccupancy
from ..domain.exceptions import (
    DuplicateBooking,
    InvalidIdentity,
    InvalidPhone,
    MissingField,
    OutsideBookingWindow,
    SlotNotOffered,
)
from ..domain.models import Booking
from ..domain.queue import QueueAssigner
from ..domain.repository import BookingRepository, ProviderRepository, SearchField
from ..domain.slot_key import SlotKey, coerce_slot_key
from ..domain.validators import IdentityCheck, validate_identity, validate_phone

logger = logging.getLogger(__name__)


class IdentityValidator(Protocol):
    """Callable checking a national id as of a given day."""

    def __call__(self, national_id: str, today: Optional[date] = None) -> IdentityCheck:
        """Return validity, gender and age."""


def _today() -> date:
    return pendulum.now().date()


@dataclass
class BookingRequest:
    """Everything a patient provides to book a slot."""
    patient_name: str
    national_id: str
    phone: str
    provider_name: str
    slot_key: Union[str, SlotKey]
    date: date
    description: str = ""


class BookingService:
    """Creates and edits bookings against the provider schedules."""

    def __init__(
        self,
        providers: ProviderRepository,
        bookings: BookingRepository,
        *,
        booking_window_days: int = 60,
        clock: Callable[[], date] = _today,
        identity_validator: IdentityValidator = validate_identity,
        phone_validator: Callable[[str], bool] = validate_phone,
    ) -> None:
        if providers is None or bookings is None:
            raise TypeError("BookingService requires provider and booking repositories")
        self._providers = providers
        self._bookings = bookings
        self._booking_window_days = booking_window_days
        self._clock = clock
        self._identity_validator = identity_validator
        self._phone_validator = phone_validator
        self._resolver = AvailabilityResolver()
        self._ledger = CapacityLedger(bookings)
        self._queue = QueueAssigner(bookings, self._ledger)

    def create(self, request: BookingRequest) -> Booking:
        """
        Validate a request and store the booking with its queue position.

        Raises:
            MissingField: If the patient name is empty
            InvalidIdentity / InvalidPhone: If the patient data is invalid
            OutsideBookingWindow: If the date is past or too far ahead
            DuplicateBooking: If the national id already has a booking
            ProviderNotFound: If the provider name is unknown
            SlotNotOffered: If the provider does not offer the slot on the date
            CapacityExceeded: If the slot is full on that date
        """
        patient_name = request.patient_name.strip()
        if not patient_name:
            raise MissingField("patient_name")

        national_id = request.national_id.strip()
        identity = self._check_identity(national_id)
        phone = self._check_phone(request.phone)
        self._check_window(request.date)
        slot = coerce_slot_key(request.slot_key)

        with self._bookings.lock:
            if self._bookings.find_by_national_id(national_id) is not None:
                raise DuplicateBooking(national_id)

            provider = self._providers.get_by_name(request.provider_name)
            if not self._resolver.is_offered(provider, slot, request.date):
                raise SlotNotOffered(provider.name, slot, request.date)

            position = self._queue.assign_on_create(provider, slot, request.date)
            booking = Booking(
                patient_name=patient_name,
                national_id=national_id,
                phone=phone,
                provider_name=provider.name,
                provider_subject=provider.subject,
                slot_key=slot,
                date=request.date,
                description=request.description.strip(),
                gender=identity.gender,
                age=identity.age,
                queue_position=position,
            )
            self._bookings.add(booking)

        logger.info(
            "Booked %s with %s on %s %s (#%d)",
            booking.patient_name,
            booking.provider_name,
            booking.date.isoformat(),
            booking.slot_key,
            booking.queue_position,
        )
        return booking

    def reschedule(
        self,
        booking_id: str,
        *,
        day: Optional[date] = None,
        slot: Union[str, SlotKey, None] = None,
    ) -> Booking:
        """
        Move a booking to another date and/or slot of the same provider.

        Changing only the date keeps the slot if it is still offered on the
        new date and clears it otherwise, leaving the booking unassigned.

        Raises:
            BookingNotFound: If ``booking_id`` is unknown
            ProviderNotFound: If the booking has no valid provider
            SlotNotOffered: If the date is unavailable or the slot is not offered
            CapacityExceeded: If the target slot is full
        """
        new_slot = coerce_slot_key(slot) if slot is not None else None

        with self._bookings.lock:
            booking = self._bookings.get(booking_id)
            provider = self._providers.get_by_name(booking.provider_name)

            target_day = day if day is not None else booking.date
            target_slot = new_slot if new_slot is not None else booking.slot_key

            if day is not None and not self._resolver.is_available(provider, day):
                raise SlotNotOffered(provider.name, target_slot or "-", day)

            if new_slot is not None:
                if target_day is None:
                    raise MissingField("date")
                if not self._resolver.is_offered(provider, new_slot, target_day):
                    raise SlotNotOffered(provider.name, new_slot, target_day)
            elif (
                target_slot is not None
                and target_day is not None
                and target_slot not in self._resolver.available_slots(provider, target_day)
            ):
                logger.info(
                    "Slot %s not offered on %s, clearing it for booking %s",
                    target_slot,
                    target_day.isoformat(),
                    booking.id,
                )
                target_slot = None

            position = self._queue.recompute_on_edit(booking.id, provider, target_slot, target_day)
            booking.date = target_day
            booking.slot_key = target_slot
            booking.queue_position = position

        logger.info("Rescheduled booking %s (#%d)", booking.id, booking.queue_position)
        return booking

    def change_provider(self, booking_id: str, provider_name: str) -> Booking:
        """
        Assign a booking to another provider.

        Date, slot and queue position are cleared and must be chosen again.
        """
        with self._bookings.lock:
            booking = self._bookings.get(booking_id)
            provider = self._providers.get_by_name(provider_name)

            booking.provider_name = provider.name
            booking.provider_subject = provider.subject
            booking.unschedule()
            booking.queue_position = self._queue.recompute_on_edit(booking.id, provider, None, None)

        logger.info("Booking %s moved to provider %s", booking.id, provider.name)
        return booking

    def update_contact(
        self,
        booking_id: str,
        *,
        patient_name: Optional[str] = None,
        national_id: Optional[str] = None,
        phone: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Booking:
        """Edit patient details; a new national id also refreshes gender and age."""
        identity: Optional[IdentityCheck] = None
        if national_id is not None:
            national_id = national_id.strip()
            identity = self._check_identity(national_id)
        if phone is not None:
            phone = self._check_phone(phone)
        if patient_name is not None:
            patient_name = patient_name.strip()
            if not patient_name:
                raise MissingField("patient_name")

        with self._bookings.lock:
            booking = self._bookings.get(booking_id)

            if national_id is not None and identity is not None:
                holder = self._bookings.find_by_national_id(national_id)
                if holder is not None and holder.id != booking.id:
                    raise DuplicateBooking(national_id)
                booking.national_id = national_id
                booking.gender = identity.gender
                booking.age = identity.age
            if phone is not None:
                booking.phone = phone
            if patient_name is not None:
                booking.patient_name = patient_name
            if description is not None:
                booking.description = description.strip()

        return booking

    def cancel(self, booking_id: str) -> Booking:
        """
        Delete a booking.

        Other bookings keep their positions, so the queue may have gaps.
        """
        with self._bookings.lock:
            booking = self._bookings.remove(booking_id)

        logger.info("Cancelled booking %s of %s", booking.id, booking.patient_name)
        return booking

    def search(self, keyword: str, field: SearchField = SearchField.PATIENT) -> List[Booking]:
        return self._bookings.search(keyword, field)

    def slot_board(self, provider_name: str, day: date) -> List[SlotOccupancy]:
        """Every slot offered on ``day`` with its current occupancy."""
        provider = self._providers.get_by_name(provider_name)
        if not self._resolver.is_available(provider, day):
            return []
        return [
            self._ledger.snapshot(provider, slot, day)
            for slot in self._resolver.available_slots(provider, day)
        ]

    def booking_window(self) -> tuple[date, date]:
        """First and last bookable dates."""
        first = self._clock()
        return first, first + timedelta(days=self._booking_window_days - 1)

    def _check_identity(self, national_id: str) -> IdentityCheck:
        if not national_id:
            raise MissingField("national_id")
        identity = self._identity_validator(national_id, self._clock())
        if not identity.valid:
            raise InvalidIdentity(national_id)
        return identity

    def _check_phone(self, phone: str) -> str:
        phone = phone.strip()
        if not phone:
            raise MissingField("phone")
        if not self._phone_validator(phone):
            raise InvalidPhone(phone)
        return phone

    def _check_window(self, day: date) -> None:
        first, last = self.booking_window()
        if day < first or day > last:
            raise OutsideBookingWindow(day, first, last)
