"""Calendar day-counter — chargeable leave days for a date range.

Pure functions, no I/O. The same ``count_leave_days`` runs for the
provisional estimate at request time, the authoritative count at deduction
and the recount during holiday reconciliation; only the holiday snapshot
passed in differs.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Iterator, Mapping, NamedTuple, Optional, Protocol, Union

from leavedesk.common.constants import (
    FULL_DAY,
    HALF_DAY,
    ZERO_DAYS,
    DurationType,
    HolidayHalf,
)


class HolidayLike(Protocol):
    date: date
    is_half_day: bool
    half: Optional[HolidayHalf]


class HolidayDay(NamedTuple):
    """Lightweight holiday value; ORM ``Holiday`` rows work as well."""

    date: date
    is_half_day: bool = False
    half: Optional[HolidayHalf] = None


HolidayInput = Union[Iterable[HolidayLike], Mapping[date, HolidayLike]]


def round_half(value: Decimal) -> Decimal:
    """Round to the nearest multiple of 0.5."""
    doubled = (Decimal(value) * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return doubled / 2


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def _holiday_map(holidays: HolidayInput) -> dict[date, HolidayLike]:
    if isinstance(holidays, Mapping):
        return dict(holidays)
    return {h.date: h for h in holidays}


def _requested_half(duration_type: DurationType) -> Optional[HolidayHalf]:
    if duration_type == DurationType.half_morning:
        return HolidayHalf.morning
    if duration_type == DurationType.half_afternoon:
        return HolidayHalf.afternoon
    return None


def _day_value(holiday: Optional[HolidayLike]) -> Decimal:
    if holiday is None:
        return FULL_DAY
    if not holiday.is_half_day:
        return ZERO_DAYS
    return HALF_DAY


def _single_day_value(holiday: Optional[HolidayLike], duration_type: DurationType) -> Decimal:
    requested = _requested_half(duration_type)
    if requested is None:
        return _day_value(holiday)

    # Half-day request
    if holiday is None:
        return HALF_DAY
    if not holiday.is_half_day:
        return ZERO_DAYS
    if holiday.half == requested:
        # The requested half is already non-working
        return ZERO_DAYS
    return HALF_DAY


def count_leave_days(
    start_date: date,
    end_date: date,
    holidays: HolidayInput = (),
    duration_type: DurationType = DurationType.full,
) -> Decimal:
    """Return the chargeable day count for ``[start_date, end_date]``.

    Weekends contribute 0, full-day holidays 0, half-day holidays 0.5,
    other weekdays 1. For a single-day range the requested duration type
    decides how a half-day holiday interacts with a half-day request.
    ``duration_type`` is ignored for multi-day ranges.

    Returns ``Decimal("0")`` when ``start_date > end_date``.
    """
    if start_date > end_date:
        return ZERO_DAYS

    by_date = _holiday_map(holidays)

    if start_date == end_date:
        if is_weekend(start_date):
            return ZERO_DAYS
        return round_half(_single_day_value(by_date.get(start_date), DurationType(duration_type)))

    total = ZERO_DAYS
    for day in iter_dates(start_date, end_date):
        if is_weekend(day):
            continue
        total += _day_value(by_date.get(day))

    return round_half(total)


def next_working_day(after: date, holidays: HolidayInput = ()) -> date:
    """First weekday after *after* that is not a full-day holiday.

    Half-day holidays still count as working days for the return date.
    """
    by_date = _holiday_map(holidays)
    candidate = after + timedelta(days=1)
    while True:
        holiday = by_date.get(candidate)
        if not is_weekend(candidate) and (holiday is None or holiday.is_half_day):
            return candidate
        candidate += timedelta(days=1)
