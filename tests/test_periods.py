from datetime import date

import pytest

from periods import PeriodKey, month_bounds, period_key_of, resolve_period, shift_month


def test_month_bounds_handles_leap_february_and_december() -> None:
    february = month_bounds(2, 2024)
    assert (february.start, february.end) == (date(2024, 2, 1), date(2024, 2, 29))
    assert february.slug == "2024-02"

    december = month_bounds(12, 2025)
    assert december.end == date(2025, 12, 31)


def test_month_bounds_rejects_invalid_month() -> None:
    with pytest.raises(ValueError):
        month_bounds(13, 2025)


def test_shift_month_crosses_years() -> None:
    assert shift_month(PeriodKey(1, 2025), -1) == PeriodKey(12, 2024)
    assert shift_month(PeriodKey(11, 2025), 3) == PeriodKey(2, 2026)
    assert shift_month(PeriodKey(6, 2025), -12) == PeriodKey(6, 2024)


def test_period_key_uses_transaction_date() -> None:
    assert period_key_of(date(2025, 8, 31)) == PeriodKey(8, 2025)


def test_resolve_period_variants() -> None:
    today = date(2025, 1, 15)

    assert resolve_period(None, None, None, today=today) is None
    assert resolve_period("all", None, None, today=today) is None

    last = resolve_period("last_month", None, None, today=today)
    assert (last.start, last.end) == (date(2024, 12, 1), date(2024, 12, 31))

    custom = resolve_period("custom", "2025-01-02", "2025-01-09", today=today)
    assert (custom.start, custom.end) == (date(2025, 1, 2), date(2025, 1, 9))

    with pytest.raises(ValueError):
        resolve_period("custom", "2025-01-09", "2025-01-02", today=today)
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None, today=today)
