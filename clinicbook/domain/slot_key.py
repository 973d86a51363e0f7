"""
Slot keys: the bookable time ranges a provider offers.

A slot is either recurring on a weekday or pinned to a single calendar date.
Their text form is ``"周一：09:00-12:00"`` or ``"05-01：09:00-12:00"`` (note the
full-width colon); that form only appears when reading or writing data and
when talking to a user.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Dict, Union

from .exceptions import InvalidSlotFormat

SEPARATOR = "："

WEEKDAY_LABELS: Dict[int, str] = {
    1: "周一",
    2: "周二",
    3: "周三",
    4: "周四",
    5: "周五",
    6: "周六",
    7: "周日",
}

_LABEL_TO_WEEKDAY = {label: weekday for weekday, label in WEEKDAY_LABELS.items()}

_TIME_RANGE_RE = re.compile(r"^(\d{2}):(\d{2})-(\d{2}):(\d{2})$")
_MONTH_DAY_RE = re.compile(r"^(\d{2})-(\d{2})$")

# Leap year so that "02-29" is accepted as a month/day.
_REFERENCE_YEAR = 2000


class SlotKind(Enum):
    WEEKLY = "weekly"
    DATE_OVERRIDE = "date_override"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time-of-day range.

    Invariant: start must be before end. Ranges are half-open, so
    09:00-10:00 and 10:00-11:00 do not overlap.
    """
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidSlotFormat(
                str(self), f"start {self.start:%H:%M} must be before end {self.end:%H:%M}"
            )

    @classmethod
    def parse(cls, text: str) -> "TimeRange":
        """Parse ``HH:MM-HH:MM``."""
        match = _TIME_RANGE_RE.match(text.strip())
        if not match:
            raise InvalidSlotFormat(text, "time range must look like HH:MM-HH:MM")

        start_h, start_m, end_h, end_m = (int(part) for part in match.groups())
        try:
            start = time(hour=start_h, minute=start_m)
            end = time(hour=end_h, minute=end_m)
        except ValueError as exc:
            raise InvalidSlotFormat(text, str(exc)) from exc

        return cls(start=start, end=end)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return not (self.end <= other.start or self.start >= other.end)

    def span(self, other: "TimeRange") -> "TimeRange":
        """Smallest range covering both ranges."""
        return TimeRange(start=min(self.start, other.start), end=max(self.end, other.end))

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


@dataclass(frozen=True)
class WeeklySlot:
    """A slot repeating every week on an ISO weekday (Monday=1 ... Sunday=7)."""
    weekday: int
    time_range: TimeRange

    def __post_init__(self):
        if self.weekday not in WEEKDAY_LABELS:
            raise InvalidSlotFormat(str(self.weekday), "weekday must be between 1 and 7")

    @property
    def kind(self) -> SlotKind:
        return SlotKind.WEEKLY

    @property
    def label(self) -> str:
        return WEEKDAY_LABELS[self.weekday]

    def matches(self, day: date) -> bool:
        return day.isoweekday() == self.weekday

    def same_day(self, other: "SlotKey") -> bool:
        return isinstance(other, WeeklySlot) and other.weekday == self.weekday

    def with_range(self, time_range: TimeRange) -> "WeeklySlot":
        return WeeklySlot(weekday=self.weekday, time_range=time_range)

    def __str__(self) -> str:
        return f"{self.label}{SEPARATOR}{self.time_range}"


@dataclass(frozen=True)
class DateOverrideSlot:
    """A slot that only exists on one calendar month/day."""
    month: int
    day: int
    time_range: TimeRange

    def __post_init__(self):
        try:
            date(_REFERENCE_YEAR, self.month, self.day)
        except ValueError as exc:
            raise InvalidSlotFormat(f"{self.month:02d}-{self.day:02d}", str(exc)) from exc

    @classmethod
    def for_date(cls, day: date, time_range: TimeRange) -> "DateOverrideSlot":
        return cls(month=day.month, day=day.day, time_range=time_range)

    @property
    def kind(self) -> SlotKind:
        return SlotKind.DATE_OVERRIDE

    @property
    def label(self) -> str:
        return f"{self.month:02d}-{self.day:02d}"

    def matches(self, day: date) -> bool:
        return (day.month, day.day) == (self.month, self.day)

    def same_day(self, other: "SlotKey") -> bool:
        return (
            isinstance(other, DateOverrideSlot)
            and (other.month, other.day) == (self.month, self.day)
        )

    def with_range(self, time_range: TimeRange) -> "DateOverrideSlot":
        return DateOverrideSlot(month=self.month, day=self.day, time_range=time_range)

    def __str__(self) -> str:
        return f"{self.label}{SEPARATOR}{self.time_range}"


SlotKey = Union[WeeklySlot, DateOverrideSlot]


def weekday_label(day: date) -> str:
    """Weekday label for a date, e.g. ``周三``."""
    return WEEKDAY_LABELS[day.isoweekday()]


def weekly_prefix(day: date) -> str:
    """Prefix of every weekly slot key matching ``day``."""
    return f"{weekday_label(day)}{SEPARATOR}"


def date_prefix(day: date) -> str:
    """Prefix of every date-specific slot key matching ``day``."""
    return f"{day.month:02d}-{day.day:02d}{SEPARATOR}"


def parse_slot_key(text: str) -> SlotKey:
    """
    Parse the text form of a slot key.

    Raises:
        InvalidSlotFormat: If the separator is missing or a part is malformed
    """
    parts = text.split(SEPARATOR)
    if len(parts) != 2:
        raise InvalidSlotFormat(text, f"expected '<weekday or MM-DD>{SEPARATOR}HH:MM-HH:MM'")

    anchor, range_text = parts[0].strip(), parts[1].strip()
    time_range = TimeRange.parse(range_text)

    if anchor in _LABEL_TO_WEEKDAY:
        return WeeklySlot(weekday=_LABEL_TO_WEEKDAY[anchor], time_range=time_range)

    match = _MONTH_DAY_RE.match(anchor)
    if match:
        month, day = (int(part) for part in match.groups())
        return DateOverrideSlot(month=month, day=day, time_range=time_range)

    raise InvalidSlotFormat(text, f"unknown weekday or date '{anchor}'")


def coerce_slot_key(value: Union[str, SlotKey]) -> SlotKey:
    """Accept either a parsed slot key or its text form."""
    if isinstance(value, (WeeklySlot, DateOverrideSlot)):
        return value
    return parse_slot_key(value)
