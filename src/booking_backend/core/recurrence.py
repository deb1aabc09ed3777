'''
Expands a recurrence rule into the concrete calendar dates it covers.
'''
from datetime import date, timedelta
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from ..common.config import settings
from ..common.exceptions import ValidationError
from ..database.db_enums import RecurrenceEnum, WeekdayEnum

WEEKDAY_INDEX = {day.value.lower(): index for index, day in enumerate(WeekdayEnum)}

BLOCK_INTERVAL_DAYS = {
    RecurrenceEnum.WEEKLY: 7,
    RecurrenceEnum.BIWEEKLY: 14,
}


def _parse_recurrence(recurrence: Optional[str]) -> RecurrenceEnum:
    try:
        return RecurrenceEnum((recurrence or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown recurrence '{recurrence}'. Expected one of: {RecurrenceEnum.get_all_names()}")


def _weekday_indexes(weekdays: Iterable[str]) -> list[int]:
    indexes = []
    for name in weekdays:
        index = WEEKDAY_INDEX.get(str(name).strip().lower())
        if index is None:
            raise ValidationError(f"Unknown weekday '{name}'.")
        indexes.append(index)
    return indexes


def _check_occurrences(occurrences: int) -> None:
    if occurrences < 1:
        raise ValidationError("Occurrences must be at least 1.")
    if occurrences > settings.MAX_OCCURRENCES:
        raise ValidationError(f"Occurrences cannot exceed {settings.MAX_OCCURRENCES}.")


def expand_recurrence(
    start_date: date,
    recurrence: Optional[str] = "",
    occurrences: int = 1,
    weekdays: Optional[Iterable[str]] = None
) -> list[date]:
    """
    Returns the sorted, de-duplicated dates a booking request targets.

    weekly/biweekly with weekdays: `occurrences` counts week blocks. Block k
    starts on the Monday of start_date's week plus k * 7 (or 14) days, and
    every selected weekday is placed inside each block, so a weekday earlier
    in the week than start_date lands before it in the first block.
    weekly/biweekly without weekdays: a single date.
    monthly: start_date + i months; a day-of-month missing from a shorter
    month clamps to that month's last day (Jan 31 -> Feb 29 -> Mar 31).
    daily: consecutive days.
    `occurrences` is only read, and bounded, by the rules that repeat.
    """
    rule = _parse_recurrence(recurrence)
    if occurrences is None:
        occurrences = 1

    weekday_list = list(weekdays or [])

    if rule in BLOCK_INTERVAL_DAYS:
        if not weekday_list:
            return [start_date]
        _check_occurrences(occurrences)
        interval = BLOCK_INTERVAL_DAYS[rule]
        indexes = _weekday_indexes(weekday_list)
        week_start = start_date - timedelta(days=start_date.weekday())
        dates = {
            week_start + timedelta(days=block * interval + index)
            for block in range(occurrences)
            for index in indexes
        }
        return sorted(dates)

    if rule == RecurrenceEnum.MONTHLY:
        _check_occurrences(occurrences)
        return [start_date + relativedelta(months=i) for i in range(occurrences)]

    if rule == RecurrenceEnum.DAILY:
        _check_occurrences(occurrences)
        return [start_date + timedelta(days=i) for i in range(occurrences)]

    return [start_date]
