"""Calendar-date arithmetic for recurrence cadences.

All dates are local calendar dates with no time-of-day component; string
date keys use ``YYYY-MM-DD``.

Month-based steps (monthly, quarterly, yearly) clamp to the last valid day
of the target month, so Jan 31 + 1 month is Feb 28 (Feb 29 in leap years).
Sequences offset every element from the start date rather than from the
previous element, so a clamped month does not shorten later ones:
Jan 31, Feb 29, Mar 31, Apr 30, ...
"""
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from taskseries.schemas.task import BaseUnit, Recurrence

DATE_KEY_FORMAT = "%Y-%m-%d"

_UNIT_DELTAS = {
    BaseUnit.DAILY: relativedelta(days=1),
    BaseUnit.WEEKLY: relativedelta(weeks=1),
    BaseUnit.MONTHLY: relativedelta(months=1),
    BaseUnit.QUARTERLY: relativedelta(months=3),
    BaseUnit.YEARLY: relativedelta(years=1),
}


def parse_date_key(value: Union[str, date, datetime]) -> date:
    """Parse a ``YYYY-MM-DD`` key (or an ISO datetime) into a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Only the calendar part matters; anything after "T" is ignored
    return datetime.strptime(value.split("T")[0], DATE_KEY_FORMAT).date()


def format_date_key(value: date) -> str:
    """Format a calendar date as ``YYYY-MM-DD``."""
    return value.strftime(DATE_KEY_FORMAT)


def _offset(start: date, unit: BaseUnit, amount: int) -> date:
    delta = _UNIT_DELTAS[BaseUnit(unit)]
    return start + delta * amount


def step(day: date, unit: BaseUnit, multiplier: int = 1) -> date:
    """Advance ``day`` by ``multiplier`` units."""
    return _offset(day, unit, multiplier)


def add_days(day: date, days: int) -> date:
    return step(day, BaseUnit.DAILY, days)


def generate_date_sequence(
    start: Union[str, date],
    unit: BaseUnit,
    count: int,
    multiplier: int = 1,
) -> List[date]:
    """
    Produce ``count`` strictly increasing dates beginning at ``start``.

    Args:
        start: First date of the sequence (date or ``YYYY-MM-DD`` key)
        unit: Base unit to step by
        count: Number of dates to produce
        multiplier: Units per step (must be positive)

    Returns:
        List of dates, empty when ``count`` or ``multiplier`` is not positive
    """
    if count <= 0 or multiplier <= 0:
        return []

    first = parse_date_key(start)
    return [_offset(first, unit, index * multiplier) for index in range(count)]


def resolve_cadence(
    recurrence: Recurrence,
    multiplier: Optional[int] = None,
    custom_frequency: Optional[BaseUnit] = None,
) -> Tuple[BaseUnit, int]:
    """
    Map a recurrence rule onto the unit and multiplier it steps by.

    Fixed cadences always step by one unit; a custom rule steps by its
    multiplier (default 1) of its base unit (default daily).
    """
    recurrence = Recurrence(recurrence)
    if recurrence == Recurrence.CUSTOM:
        unit = BaseUnit(custom_frequency) if custom_frequency else BaseUnit.DAILY
        return unit, multiplier or 1
    return BaseUnit(recurrence.value), 1
