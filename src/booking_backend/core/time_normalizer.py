'''
Canonicalizes the time inputs accepted by the booking endpoints into HH:MM:SS.
'''
import re
from datetime import date, datetime, time, timedelta
from typing import Union

from ..common.exceptions import ValidationError

_HH_MM = re.compile(r'^(\d{1,2}):(\d{2})$')
_HH_MM_SS = re.compile(r'^\d{2}:\d{2}:\d{2}$')
_BARE_HOUR = re.compile(r'^\d{1,2}$')

TimeInput = Union[str, int, time]


def normalize_time(value: TimeInput) -> TimeInput:
    """
    Returns the canonical 'HH:MM:SS' form of a time input.

    '14:30' -> '14:30:00', '08:15:00' -> '08:15:00', '9' / 9 -> '09:00:00'.
    Input that matches none of these shapes is returned unchanged; callers
    turn that into a validation error through parse_time().
    """
    if isinstance(value, time):
        return value.strftime('%H:%M:%S')
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return f"{value:02d}:00:00"
    if not isinstance(value, str):
        return value

    candidate = value.strip()
    if _HH_MM_SS.match(candidate):
        return candidate
    match = _HH_MM.match(candidate)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}:00"
    if _BARE_HOUR.match(candidate):
        return f"{int(candidate):02d}:00:00"
    return value


def parse_time(value: TimeInput, field_name: str = "time") -> time:
    """Normalizes then strictly parses a time input."""
    normalized = normalize_time(value)
    if not isinstance(normalized, str):
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    try:
        return datetime.strptime(normalized, '%H:%M:%S').time()
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}")


def add_minutes(start: time, minutes: int) -> time:
    """Adds minutes to a clock time, wrapping at midnight."""
    shifted = datetime.combine(date(2000, 1, 1), start) + timedelta(minutes=minutes)
    return shifted.time()


def format_time(value: time) -> str:
    return value.strftime('%H:%M:%S')


def minutes_between(start: time, end: time) -> int:
    """Length of a start/end pair in minutes; an end before the start wraps past midnight."""
    anchor = date(2000, 1, 1)
    delta = datetime.combine(anchor, end) - datetime.combine(anchor, start)
    return int(delta.total_seconds() // 60) % (24 * 60)
