# tests/test_date_arithmetic.py

from __future__ import annotations

from datetime import date

import pytest

from taskseries.schemas.task import BaseUnit, Recurrence
from taskseries.services.date_arithmetic import (
    add_days,
    format_date_key,
    generate_date_sequence,
    parse_date_key,
    resolve_cadence,
    step,
)


def test_daily_sequence_from_date_key() -> None:
    dates = generate_date_sequence("2024-01-01", BaseUnit.DAILY, 3)
    assert dates == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]


def test_every_two_weeks() -> None:
    dates = generate_date_sequence(date(2024, 1, 1), BaseUnit.WEEKLY, 3, multiplier=2)
    assert dates == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]


def test_monthly_clamps_to_month_end_in_leap_year() -> None:
    assert step(date(2024, 1, 31), BaseUnit.MONTHLY) == date(2024, 2, 29)
    assert step(date(2023, 1, 31), BaseUnit.MONTHLY) == date(2023, 2, 28)


def test_monthly_sequence_does_not_drift_after_clamping() -> None:
    dates = generate_date_sequence(date(2024, 1, 31), BaseUnit.MONTHLY, 4)
    assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_quarterly_and_yearly_steps() -> None:
    assert step(date(2024, 11, 30), BaseUnit.QUARTERLY) == date(2025, 2, 28)
    assert step(date(2024, 2, 29), BaseUnit.YEARLY) == date(2025, 2, 28)


@pytest.mark.parametrize("count, multiplier", [(0, 1), (-1, 1), (3, 0)])
def test_empty_sequence_for_non_positive_inputs(count: int, multiplier: int) -> None:
    assert generate_date_sequence(date(2024, 1, 1), BaseUnit.DAILY, count, multiplier) == []


def test_sequence_is_strictly_increasing() -> None:
    dates = generate_date_sequence(date(2024, 1, 29), BaseUnit.MONTHLY, 24, multiplier=1)
    assert all(earlier < later for earlier, later in zip(dates, dates[1:]))


def test_date_keys() -> None:
    assert parse_date_key("2024-03-05") == date(2024, 3, 5)
    assert parse_date_key("2024-03-05T10:00:00Z") == date(2024, 3, 5)
    assert format_date_key(date(2024, 3, 5)) == "2024-03-05"
    assert add_days(date(2024, 12, 31), 1) == date(2025, 1, 1)


def test_resolve_cadence() -> None:
    assert resolve_cadence(Recurrence.WEEKLY) == (BaseUnit.WEEKLY, 1)
    assert resolve_cadence(Recurrence.WEEKLY, 5, BaseUnit.DAILY) == (BaseUnit.WEEKLY, 1)
    assert resolve_cadence(Recurrence.CUSTOM, 3, BaseUnit.MONTHLY) == (BaseUnit.MONTHLY, 3)
    assert resolve_cadence(Recurrence.CUSTOM) == (BaseUnit.DAILY, 1)
