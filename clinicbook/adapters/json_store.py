"""
JSON file persistence for providers and bookings.

Files are JSON arrays using the field names of the clinic's existing data
files (``serviceTimes``, ``expertName``, ``queueNumber`` ...). Records are
validated with Pydantic; a record that does not validate is skipped with a
warning instead of failing the whole load.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..domain.exceptions import InvalidSlotFormat, StoreError
from ..domain.models import Booking, Provider
from ..domain.repository import BookingRepository, ProviderRepository
from ..domain.slot_key import parse_slot_key

logger = logging.getLogger(__name__)

DATE_FORMAT = "YYYY-MM-DD"


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD``; raises ValueError on anything else."""
    return pendulum.from_format(value, DATE_FORMAT).date()


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


class ProviderRecord(BaseModel):
    """Provider as stored on disk."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    gender: str = ""
    age: int = 0
    title: str = ""
    subject: str = ""
    service_times: List[str] = Field(default_factory=list, alias="serviceTimes")
    schedule_dates: List[str] = Field(default_factory=list, alias="scheduleDates")
    closed_dates: List[str] = Field(default_factory=list, alias="closedDates")
    time_slot_capacity: Dict[str, int] = Field(default_factory=dict, alias="timeSlotCapacity")


class BookingRecord(BaseModel):
    """Booking as stored on disk."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    patient_name: str = Field(alias="patientName")
    gender: str = ""
    age: int = 0
    id_number: str = Field(default="", alias="idNumber")
    phone: str = ""
    description: str = ""
    expert_name: str = Field(default="", alias="expertName")
    expert_subject: str = Field(default="", alias="expertSubject")
    service_time: str = Field(default="", alias="serviceTime")
    queue_number: int = Field(default=0, alias="queueNumber")
    appointment_date: Optional[str] = Field(default=None, alias="appointmentDate")


class JsonStore:
    """
    Loads and saves the provider and booking collections.

    Writes go to a temporary file that then replaces the target, so a
    failed write never leaves a truncated file behind.
    """

    def __init__(self, providers_path: Path, bookings_path: Path):
        self.providers_path = providers_path
        self.bookings_path = bookings_path

    def load_providers(self) -> ProviderRepository:
        repository = ProviderRepository()
        for index, raw in enumerate(self._read_array(self.providers_path)):
            provider = self._provider_from_raw(index, raw)
            if provider is None:
                continue
            try:
                repository.add(provider)
            except ValueError as exc:
                logger.warning("Skipping provider #%d: %s", index, exc)

        logger.info("Loaded %d provider(s) from %s", len(repository), self.providers_path)
        return repository

    def load_bookings(self) -> BookingRepository:
        repository = BookingRepository()
        for index, raw in enumerate(self._read_array(self.bookings_path)):
            booking = self._booking_from_raw(index, raw)
            if booking is None:
                continue
            try:
                repository.add(booking)
            except ValueError as exc:
                logger.warning("Skipping booking #%d: %s", index, exc)

        logger.info("Loaded %d booking(s) from %s", len(repository), self.bookings_path)
        return repository

    def save_providers(self, providers: ProviderRepository) -> None:
        records = [self._provider_to_raw(p) for p in providers]
        self._write_array(self.providers_path, records)
        logger.info("Saved %d provider(s) to %s", len(records), self.providers_path)

    def save_bookings(self, bookings: BookingRepository) -> None:
        records = [self._booking_to_raw(b) for b in bookings]
        self._write_array(self.bookings_path, records)
        logger.info("Saved %d booking(s) to %s", len(records), self.bookings_path)

    @staticmethod
    def _provider_from_raw(index: int, raw: Any) -> Provider | None:
        try:
            record = ProviderRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping provider #%d: %s", index, exc)
            return None

        provider = Provider(
            id=record.id,
            name=record.name,
            subject=record.subject,
            title=record.title,
            gender=record.gender,
            age=record.age,
        )

        for text in record.service_times:
            try:
                provider.add_slot(parse_slot_key(text))
            except InvalidSlotFormat as exc:
                logger.warning("Provider %s: skipping slot: %s", record.id, exc)

        for text, capacity in record.time_slot_capacity.items():
            try:
                slot = parse_slot_key(text)
            except InvalidSlotFormat as exc:
                logger.warning("Provider %s: skipping capacity: %s", record.id, exc)
                continue
            if capacity < 1:
                logger.warning("Provider %s: skipping capacity %d of %s", record.id, capacity, text)
                continue
            provider.slot_capacity[slot] = capacity

        for text in record.schedule_dates:
            day = JsonStore._date_or_none(record.id, text)
            if day is not None:
                provider.open_date(day)

        for text in record.closed_dates:
            day = JsonStore._date_or_none(record.id, text)
            if day is None:
                continue
            if day in provider.override_open_dates:
                logger.warning("Provider %s: %s is both open and closed, keeping it closed", record.id, text)
            provider.close_date(day)

        return provider

    @staticmethod
    def _booking_from_raw(index: int, raw: Any) -> Booking | None:
        try:
            record = BookingRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping booking #%d: %s", index, exc)
            return None

        try:
            slot = parse_slot_key(record.service_time) if record.service_time else None
            day = parse_date(record.appointment_date) if record.appointment_date else None
        except (InvalidSlotFormat, ValueError) as exc:
            logger.warning("Skipping booking #%d of %s: %s", index, record.patient_name, exc)
            return None

        booking = Booking(
            patient_name=record.patient_name,
            national_id=record.id_number,
            phone=record.phone,
            provider_name=record.expert_name,
            provider_subject=record.expert_subject,
            slot_key=slot,
            date=day,
            description=record.description,
            gender=record.gender,
            age=record.age,
            queue_position=record.queue_number,
        )
        if record.id:
            booking.id = record.id
        return booking

    @staticmethod
    def _provider_to_raw(provider: Provider) -> Dict[str, Any]:
        record = ProviderRecord(
            id=provider.id,
            name=provider.name,
            gender=provider.gender,
            age=provider.age,
            title=provider.title,
            subject=provider.subject,
            service_times=[str(slot) for slot in provider.recurring_slots],
            schedule_dates=[format_date(d) for d in sorted(provider.override_open_dates)],
            closed_dates=[format_date(d) for d in sorted(provider.override_closed_dates)],
            time_slot_capacity={str(slot): cap for slot, cap in provider.slot_capacity.items()},
        )
        return record.model_dump(by_alias=True)

    @staticmethod
    def _booking_to_raw(booking: Booking) -> Dict[str, Any]:
        record = BookingRecord(
            id=booking.id,
            patient_name=booking.patient_name,
            gender=booking.gender,
            age=booking.age,
            id_number=booking.national_id,
            phone=booking.phone,
            description=booking.description,
            expert_name=booking.provider_name,
            expert_subject=booking.provider_subject,
            service_time=str(booking.slot_key) if booking.slot_key is not None else "",
            queue_number=booking.queue_position,
            appointment_date=format_date(booking.date) if booking.date is not None else None,
        )
        return record.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def _date_or_none(owner: str, text: str) -> date | None:
        try:
            return parse_date(text)
        except ValueError as exc:
            logger.warning("Provider %s: skipping date %r: %s", owner, text, exc)
            return None

    @staticmethod
    def _read_array(path: Path) -> List[Any]:
        if not path.exists():
            logger.info("%s does not exist yet, starting empty", path)
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Invalid JSON in {path}: {exc}") from exc
        except OSError as exc:
            raise StoreError(f"Could not read {path}: {exc}") from exc

        if not isinstance(data, list):
            raise StoreError(f"{path} must contain a JSON array at the root level.")
        return data

    @staticmethod
    def _write_array(path: Path, records: List[Dict[str, Any]]) -> None:
        temp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=4)
            os.replace(temp_path, path)
        except OSError as exc:
            temp_path.unlink(missing_ok=True)
            raise StoreError(f"Could not write {path}: {exc}") from exc
