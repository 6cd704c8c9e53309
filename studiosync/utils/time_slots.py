"""Wall-clock time strings and the half-hour booking grid"""

import re
from datetime import datetime

SLOT_MINUTES = 30
DAY_START_HOUR = 8
DAY_END_HOUR = 21

TIME_12H_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
TIME_24H_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def format_12_hour(moment: datetime) -> str:
    """Format a datetime as "h:mm AM" without a leading zero, e.g. "3:00 PM" """
    hour12 = moment.hour % 12 or 12
    period = "AM" if moment.hour < 12 else "PM"
    return f"{hour12}:{moment.minute:02d} {period}"


def time_string_to_minutes(value: str) -> int:
    """
    Convert "3:30 PM" (or 24h "15:30") to minutes after midnight.

    Raises:
        ValueError: If the string is not a recognised time
    """
    match = TIME_12H_RE.match(value or "")
    if match:
        hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            raise ValueError(f"Invalid time: {value!r}")
        if period == "PM" and hour != 12:
            hour += 12
        if period == "AM" and hour == 12:
            hour = 0
        return hour * 60 + minute

    match = TIME_24H_RE.match(value or "")
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise ValueError(f"Invalid time: {value!r}")
        return hour * 60 + minute

    raise ValueError(f"Invalid time: {value!r}")


def minutes_to_time_string(total_minutes: int) -> str:
    """480 -> "8:00 AM" """
    hours24, minutes = divmod(total_minutes, 60)
    hours24 %= 24
    display_hour = hours24 % 12 or 12
    period = "AM" if hours24 < 12 else "PM"
    return f"{display_hour}:{minutes:02d} {period}"


def generate_daily_slots() -> list[str]:
    """Bookable start times from 8:00 AM to 9:00 PM in half-hour steps"""
    return [
        minutes_to_time_string(m)
        for m in range(DAY_START_HOUR * 60, DAY_END_HOUR * 60 + 1, SLOT_MINUTES)
    ]
