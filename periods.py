from dataclasses import dataclass
from datetime import date, datetime
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


class PeriodKey(NamedTuple):
    month: int
    year: int


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def period_key_of(txn_date: date) -> PeriodKey:
    """Budget bucket of a transaction, taken from its own date."""
    return PeriodKey(txn_date.month, txn_date.year)


def month_bounds(month: int, year: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    start = date(year, month, 1)
    if month == 12:
        end = date(year + 1, 1, 1) - date.resolution
    else:
        end = date(year, month + 1, 1) - date.resolution
    return Period(f"{year:04d}-{month:02d}", start, end)


def shift_month(key: PeriodKey, months: int) -> PeriodKey:
    total = key.year * 12 + (key.month - 1) + months
    return PeriodKey(total % 12 + 1, total // 12)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Optional[Period]:
    today = today or local_today()
    if not period or period == "all":
        return None
    if period == "last_month":
        key = shift_month(period_key_of(today), -1)
        return month_bounds(key.month, key.year)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period == "this_month":
        return month_bounds(today.month, today.year)
    raise ValueError(f"Unknown period: {period}")
