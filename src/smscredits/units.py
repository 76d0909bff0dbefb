"""
Billing-unit calculator and phone-number handling.

One unit is one SMS segment delivered to one recipient. Messages up to 160
characters fit a single segment; longer messages are split into concatenated
segments of 153 characters each (the concatenation header takes the rest).
The same segment size is used for quoting and for charging.
"""

import math
import re

from smscredits.errors import InvalidInput

SINGLE_MESSAGE_LIMIT = 160
SEGMENT_SIZE = 153

COUNTRY_CODE = "233"

_SEPARATORS = re.compile(r"[\s\-().+]")
_NATIONAL = re.compile(r"^0\d{9}$")
_INTERNATIONAL = re.compile(rf"^{COUNTRY_CODE}\d{{9}}$")


def pages_for_message(message: str) -> int:
    length = len(message or "")
    if length == 0:
        return 0
    if length <= SINGLE_MESSAGE_LIMIT:
        return 1
    return math.ceil(length / SEGMENT_SIZE)


def units_needed(message: str, recipient_count: int) -> int:
    if recipient_count < 0:
        raise InvalidInput(
            "recipient_count must not be negative",
            {"recipient_count": recipient_count},
        )
    return pages_for_message(message) * recipient_count


def _strip(raw: str) -> str:
    return _SEPARATORS.sub("", raw or "")


def normalize_phone_number(raw: str) -> str:
    """
    Rewrite a phone number into the gateway's international form (233XXXXXXXXX).

    "024 123 4567" → "233241234567", "+233241234567" → "233241234567",
    "241234567" → "233241234567".
    """
    cleaned = _strip(raw)
    if cleaned.startswith("0"):
        cleaned = COUNTRY_CODE + cleaned[1:]
    if len(cleaned) == 9 and not cleaned.startswith(COUNTRY_CODE):
        cleaned = COUNTRY_CODE + cleaned
    return cleaned


def is_valid_phone_number(raw: str) -> bool:
    cleaned = _strip(raw)
    return bool(_NATIONAL.match(cleaned) or _INTERNATIONAL.match(cleaned))
