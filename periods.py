import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


MIN_CYCLE_START = 1
MAX_CYCLE_START = 28
MIN_YEAR = 1
MAX_YEAR = 9999


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def month_period(year: int, month: int) -> Period:
    """Calendar month with both bounds inclusive."""
    _check_year(year)
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    return Period(
        f"{year:04d}-{month:02d}",
        date(year, month, 1),
        date(year, month, days_in_month(year, month)),
    )


def _check_year(year: int) -> None:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValueError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")


def previous_month_period(year: int, month: int) -> Optional[Period]:
    """None for the first representable month."""
    if (year, month) == (MIN_YEAR, 1):
        return None
    return month_period(*previous_month(year, month))


def resolve_month(
    month: Optional[int], year: Optional[int], *, today: Optional[date] = None
) -> tuple[int, int]:
    today = today or local_today()
    month = today.month if month is None else month
    year = today.year if year is None else year
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    _check_year(year)
    return year, month


def billing_period(year: int, month: int, start_day: int) -> Period:
    """Billing period labelled ``year-month``, end exclusive.

    With a start day of 25, "2026-01" covers 2025-12-25 up to 2026-01-25.
    """
    if not MIN_CYCLE_START <= start_day <= MAX_CYCLE_START:
        raise ValueError(
            f"Billing cycle start must be between {MIN_CYCLE_START} and {MAX_CYCLE_START}"
        )
    _check_year(year)
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    slug = f"{year:04d}-{month:02d}"
    if start_day == 1:
        end_year, end_month = next_month(year, month)
        return Period(slug, date(year, month, 1), date(end_year, end_month, 1))
    start_year, start_month = previous_month(year, month)
    return Period(
        slug,
        date(start_year, start_month, start_day),
        date(year, month, start_day),
    )
