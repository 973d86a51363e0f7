"""
National id and phone number checks used when taking a booking.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

import pendulum

_ID_RE = re.compile(r"^\d{17}[\dXx]$")
_MOBILE_RE = re.compile(r"^1[3-9]\d{9}$")
_LANDLINE_RE = re.compile(r"^0\d{2,3}-?\d{7,8}$")
_SPECIAL_RE = re.compile(r"^400-?\d{7}$")

_WEIGHTS = (7, 9, 10, 5, 8, 4, 2, 1, 6, 3, 7, 9, 10, 5, 8, 4, 2)
_CHECK_CODES = "10X98765432"

MALE = "男"
FEMALE = "女"


@dataclass(frozen=True)
class IdentityCheck:
    valid: bool
    gender: str = ""
    age: int = 0


def _birth_date(national_id: str) -> Optional[date]:
    digits = national_id[6:14]
    try:
        return date(int(digits[0:4]), int(digits[4:6]), int(digits[6:8]))
    except ValueError:
        return None


def validate_identity(national_id: str, today: Optional[date] = None) -> IdentityCheck:
    """
    Check an 18-character resident id number.

    Verifies the format, the embedded birth date (age 0 to 150) and the
    trailing check character. Gender is odd/even of the 17th digit.
    """
    national_id = national_id.strip()
    if not _ID_RE.match(national_id):
        return IdentityCheck(valid=False)

    birth = _birth_date(national_id)
    if birth is None:
        return IdentityCheck(valid=False)

    today = today or pendulum.now().date()
    age = (today - birth).days // 365
    if age < 0 or age > 150:
        return IdentityCheck(valid=False)

    total = sum(int(digit) * weight for digit, weight in zip(national_id[:17], _WEIGHTS))
    if _CHECK_CODES[total % 11] != national_id[17].upper():
        return IdentityCheck(valid=False)

    gender = MALE if int(national_id[16]) % 2 == 1 else FEMALE
    return IdentityCheck(valid=True, gender=gender, age=age)


def validate_phone(phone: str) -> bool:
    """Mobile, landline (with optional dash) or 400 service numbers."""
    phone = phone.strip()
    return bool(
        _MOBILE_RE.match(phone)
        or _LANDLINE_RE.match(phone)
        or _SPECIAL_RE.match(phone)
    )
