from __future__ import annotations

import re
from datetime import date, datetime, time

# Fixed two-hour scheduling windows, in start order. Lexical order of the
# values matches chronological order, which the queries rely on.
TIME_SLOTS: tuple[str, ...] = (
    "07:00-09:00",
    "09:00-11:00",
    "11:00-13:00",
    "13:00-15:00",
    "15:00-17:00",
    "17:00-19:00",
)
# date.weekday() value of the day with no service (Sunday).
EXCLUDED_WEEKDAY = 6
MIN_HORIZON_DAYS = 1
MAX_HORIZON_DAYS = 30

_TIME_SLOT_RE = re.compile(r"^(\d{2}):(\d{2})-(\d{2}):(\d{2})$")


def is_known_time_slot(value: str | None) -> bool:
    return value in TIME_SLOTS


def slot_start(time_slot: str) -> time:
    match = _TIME_SLOT_RE.match(time_slot)
    if match is None:
        raise ValueError(f"Invalid time slot: {time_slot}")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def is_service_day(day: date) -> bool:
    return day.weekday() != EXCLUDED_WEEKDAY


def has_started(day: date, time_slot: str, now: datetime) -> bool:
    """True when the slot on ``day`` starts at or before ``now`` (aware, local tz)."""
    starts_at = datetime.combine(day, slot_start(time_slot), tzinfo=now.tzinfo)
    return starts_at <= now
