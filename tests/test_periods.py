from datetime import date

import pytest

from aggregation import daily_series
from periods import MAX_PERIOD_DAYS, resolve_period

TODAY = date(2024, 2, 14)


def test_default_is_last_30_days() -> None:
    period = resolve_period(None, today=TODAY)
    assert period.slug == "30days"
    assert period.start == date(2024, 1, 15)
    assert period.end == TODAY


def test_named_periods() -> None:
    assert resolve_period("7days", today=TODAY).start == date(2024, 2, 7)
    month = resolve_period("month", today=TODAY)
    assert (month.start, month.end) == (date(2024, 2, 1), date(2024, 2, 29))
    december = resolve_period("month", today=date(2023, 12, 5))
    assert december.end == date(2023, 12, 31)


def test_custom_period() -> None:
    period = resolve_period("custom", "2024-01-01", "2024-01-31", today=TODAY)
    assert (period.start, period.end) == (date(2024, 1, 1), date(2024, 1, 31))

    with pytest.raises(ValueError):
        resolve_period("custom", "2024-02-01", "2024-01-01", today=TODAY)
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-02-01", None, today=TODAY)


def test_unknown_period_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown period"):
        resolve_period("fortnight", today=TODAY)


def test_all_time_is_not_a_trend_period() -> None:
    with pytest.raises(ValueError, match="Unknown period"):
        resolve_period("all", today=TODAY)


def test_custom_period_length_is_capped() -> None:
    widest = resolve_period("custom", "2023-02-15", "2024-02-14", today=TODAY)
    assert (widest.end - widest.start).days == 364

    with pytest.raises(ValueError, match="cannot exceed"):
        resolve_period("custom", "1970-01-01", "2024-02-14", today=TODAY)


def test_trend_rows_stay_bounded() -> None:
    resolved = [
        resolve_period(None, today=TODAY),
        resolve_period("7days", today=TODAY),
        resolve_period("month", today=TODAY),
        resolve_period("custom", "2023-02-14", "2024-02-14", today=TODAY),
    ]
    for period in resolved:
        rows = daily_series([], period.start, period.end)
        assert len(rows) <= MAX_PERIOD_DAYS
    assert len(daily_series([], resolved[0].start, resolved[0].end)) == 31
