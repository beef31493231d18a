from __future__ import annotations

import re
import secrets
from datetime import date

BOOKING_NUMBER_PREFIX = "WU"
BOOKING_NUMBER_RE = re.compile(r"^WU\d{8}$")
_PHONE_RE = re.compile(r"^\+385[1-9]\d{6,8}$")


def generate_booking_number(today: date) -> str:
    """``WU`` + two-digit year + month + four random digits, e.g. ``WU24070421``."""
    return f"{BOOKING_NUMBER_PREFIX}{today:%y%m}{secrets.randbelow(10_000):04d}"


def normalize_phone(raw: str) -> str | None:
    """Croatian numbers in international ``+385`` form, or None when not a valid number."""
    digits = re.sub(r"\D", "", raw or "")
    if digits.startswith("00385"):
        digits = digits[2:]
    elif not digits.startswith("385"):
        if not digits.startswith("0"):
            return None
        digits = f"385{digits[1:]}"
    candidate = f"+{digits}"
    if not _PHONE_RE.match(candidate):
        return None
    return candidate
