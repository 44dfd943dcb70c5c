from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

MAX_PERIOD_DAYS = 366


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def resolve_period(
    period: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "7days":
        return Period("7days", today - timedelta(days=7), today)
    if period == "month":
        first = today.replace(day=1)
        if first.month == 12:
            next_month = first.replace(year=first.year + 1, month=1)
        else:
            next_month = first.replace(month=first.month + 1)
        return Period("month", first, next_month - date.resolution)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        if (end_date - start_date).days >= MAX_PERIOD_DAYS:
            raise ValueError(f"Custom period cannot exceed {MAX_PERIOD_DAYS} days")
        return Period("custom", start_date, end_date)
    if period and period != "30days":
        raise ValueError(f"Unknown period '{period}'")

    return Period("30days", today - timedelta(days=30), today)
