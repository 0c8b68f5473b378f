"""
Calendar arithmetic for schedule generation.

Pure date utilities, no database or Flask import:
    - count_working_days:  inclusive day count under a scheduling mode
    - add_working_span:    end date of a span of N working units
    - next_working_day:    snap a date forward to the first working day
    - holiday_set / parse_iso_date: input normalisation

Modes:
    CALENDAR_DAYS  every day counts
    BUSINESS_DAYS  Saturdays, Sundays and listed holidays are skipped

Round-trip law (n >= 1):
    count_working_days(d, add_working_span(d, n, h, m), h, m) == n

All stepping is done on ``date`` objects with ``timedelta(days=1)``; no
timestamps are involved, so daylight-saving changes cannot shift a day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable

from buildtrack.core.exceptions import InvalidDateError, InvalidRangeError, ValidationError

ONE_DAY = timedelta(days=1)

# date.weekday(): Monday=0 … Sunday=6
WEEKEND_DAYS = frozenset({5, 6})


class SchedulingMode(str, Enum):
    BUSINESS_DAYS = "BUSINESS_DAYS"
    CALENDAR_DAYS = "CALENDAR_DAYS"

    @classmethod
    def coerce(cls, value) -> "SchedulingMode":
        """Accept an enum member or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValidationError(
                f"mode must be one of: {', '.join(m.value for m in cls)}",
                details={"mode": value},
            ) from None


# ── Input normalisation ──────────────────────────────────────────────────────


def parse_iso_date(value, field: str | None = None) -> date:
    """Parse a ``YYYY-MM-DD`` string (or pass a date through).

    Raises:
        InvalidDateError: for anything else, including full datetimes
                          given as strings.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError(value, field)
    text = value.strip()
    if len(text) != 10:
        raise InvalidDateError(value, field)
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidDateError(value, field) from None


def holiday_set(holidays: Iterable | None) -> frozenset[date]:
    """Normalise a holiday list into a frozenset of dates for O(1) lookups."""
    if not holidays:
        return frozenset()
    if isinstance(holidays, str):
        holidays = [holidays]
    return frozenset(parse_iso_date(h, "holidays") for h in holidays)


# ── Day predicates ───────────────────────────────────────────────────────────


def is_weekend(d: date) -> bool:
    return d.weekday() in WEEKEND_DAYS


def is_working_day(d: date, holidays: frozenset[date], mode: SchedulingMode) -> bool:
    if mode == SchedulingMode.CALENDAR_DAYS:
        return True
    return not is_weekend(d) and d not in holidays


def next_working_day(d: date, holidays: frozenset[date], mode: SchedulingMode) -> date:
    """Return ``d`` if it is a working day, otherwise the next one."""
    while not is_working_day(d, holidays, mode):
        d += ONE_DAY
    return d


# ── Counting & spans ─────────────────────────────────────────────────────────


def count_working_days(start, end, holidays=None, mode=SchedulingMode.BUSINESS_DAYS) -> int:
    """Count working units between ``start`` and ``end``, both inclusive.

    CALENDAR_DAYS: ``end - start + 1``.
    BUSINESS_DAYS: inclusive count minus weekend days minus holidays that
    fall inside the range on a weekday (a holiday on a Saturday is only
    subtracted once, as a weekend day).

    Raises:
        InvalidRangeError: if ``end < start``.
        InvalidDateError:  if a date or holiday is not YYYY-MM-DD.
    """
    start = parse_iso_date(start, "startDate")
    end = parse_iso_date(end, "endDate")
    mode = SchedulingMode.coerce(mode)
    holidays = holiday_set(holidays)
    if end < start:
        raise InvalidRangeError(start, end)

    total = (end - start).days + 1
    if mode == SchedulingMode.CALENDAR_DAYS:
        return total

    full_weeks, rest = divmod(total, 7)
    weekend = full_weeks * 2
    first = start.weekday()
    for offset in range(rest):
        if (first + offset) % 7 in WEEKEND_DAYS:
            weekend += 1

    in_range_holidays = sum(
        1 for h in holidays if start <= h <= end and not is_weekend(h)
    )
    return total - weekend - in_range_holidays


def add_working_span(start, num_days: int, holidays=None, mode=SchedulingMode.BUSINESS_DAYS) -> date:
    """Return the date on which a span of ``num_days`` working units ends.

    The span starts counting at ``start`` itself (if it is a working day).
    In BUSINESS_DAYS mode weekends and holidays are stepped over and never
    counted.

    Raises:
        ValidationError: if ``num_days < 1``.
    """
    start = parse_iso_date(start, "startDate")
    mode = SchedulingMode.coerce(mode)
    holidays = holiday_set(holidays)
    if num_days < 1:
        raise ValidationError(
            "num_days must be at least 1", details={"numDays": num_days}
        )

    if mode == SchedulingMode.CALENDAR_DAYS:
        return start + timedelta(days=num_days - 1)

    current = next_working_day(start, holidays, mode)
    remaining = num_days - 1
    while remaining > 0:
        current += ONE_DAY
        if is_working_day(current, holidays, mode):
            remaining -= 1
    return current
