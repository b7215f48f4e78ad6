from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime

WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
_WORKING_DAYS = frozenset(d.lower() for d in WEEKDAYS[:5])
_WEEKEND_DAYS = frozenset(d.lower() for d in WEEKDAYS[5:])
_ALL_DAYS = frozenset(d.lower() for d in WEEKDAYS)
_EVERY_DAY_ALIASES = frozenset({"all days", "everyday", "every day"})

_TIME_RE = re.compile(r"(\d+):(\d+)\s*([AP]M)?", re.IGNORECASE)
_END_OF_DAY = 24 * 60


def _split_days(days: Iterable[str] | str | None) -> list[str]:
    if not days:
        return []
    if isinstance(days, str):
        days = days.split(",")
    return [d.strip() for d in days if d and d.strip()]


def parse_time_of_day(value: str | None) -> int | None:
    """Parse ``"h:mm AM|PM"`` into minutes since midnight."""
    if not value:
        return None
    match = _TIME_RE.search(value)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2))
    period = (match.group(3) or "").upper()

    if period == "PM" and hours < 12:
        hours += 12
    if period == "AM" and hours == 12:
        hours = 0

    return hours * 60 + minutes


def is_open_now(
    days: Iterable[str] | str | None,
    start_time: str | None,
    end_time: str | None,
    now: datetime | None = None,
) -> bool:
    """
    Decide whether ``now`` falls inside a weekly opening window.

    Missing days or hours mean "unknown, assume closed". The comparison is
    a plain ``start <= now <= end`` on today's clock, so a window that
    wraps past midnight is never reported as open.
    """
    day_list = _split_days(days)
    if not day_list or not start_time or not end_time:
        return False

    now = now or datetime.now()
    today = WEEKDAYS[now.weekday()].lower()

    lowered = {d.lower() for d in day_list}
    if today not in lowered and not (lowered & _EVERY_DAY_ALIASES):
        return False

    start = parse_time_of_day(start_time)
    end = parse_time_of_day(end_time)
    if start is None:
        start = 0
    if end is None:
        end = _END_OF_DAY

    current = now.hour * 60 + now.minute
    return start <= current <= end


def format_availability_days(days: Iterable[str] | str | None) -> str:
    """Summarise a list of weekdays for display."""
    if not days:
        return "Not specified"
    if isinstance(days, str):
        return days

    day_list = [d.strip() for d in days if d and d.strip()]
    if not day_list:
        return "Not specified"

    lowered = [d.lower() for d in day_list]
    unique = set(lowered)
    if len(unique) == len(lowered):
        if unique == _ALL_DAYS:
            return "Every day"
        if unique == _WORKING_DAYS:
            return "Weekdays"
        if unique == _WEEKEND_DAYS:
            return "Weekends"

    return ", ".join(day_list)
