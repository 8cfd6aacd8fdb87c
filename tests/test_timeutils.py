from datetime import date, datetime, time
from decimal import Decimal

import pytest

from crewpay_api.common import timeutils as tu


def test_combine_local_and_to_utc():
    dt = tu.combine_local(date(2026, 1, 15), time(9, 0), "America/Chicago")
    assert tu.to_utc_naive(dt) == datetime(2026, 1, 15, 15, 0)


def test_hours_across_dst_start_are_real_hours():
    start = tu.combine_local(date(2026, 3, 7), time(22, 0), "America/Chicago")
    end = tu.combine_local(date(2026, 3, 8), time(6, 0), "America/Chicago")
    assert tu.hours_between(tu.to_utc_naive(start), tu.to_utc_naive(end)) == Decimal(7)


def test_parse_iso_datetime_requires_offset():
    assert tu.parse_iso_datetime("2026-03-12T08:00:00-05:00") == datetime(2026, 3, 12, 13, 0)
    assert tu.parse_iso_datetime("2026-03-12T08:00:00Z") == datetime(2026, 3, 12, 8, 0)
    assert tu.parse_iso_datetime("") is None
    with pytest.raises(ValueError):
        tu.parse_iso_datetime("2026-03-12T08:00:00")
    with pytest.raises(ValueError):
        tu.parse_iso_datetime("next tuesday")


def test_iso_renders_z_suffix():
    assert tu.iso(datetime(2026, 1, 15, 15, 0)) == "2026-01-15T15:00:00Z"
    assert tu.iso(None) is None


def test_unknown_zone():
    with pytest.raises(ValueError):
        tu.get_zone("Mars/Olympus_Mons")


def test_period_window_week_starts_monday():
    today = date(2026, 1, 15)  # Thursday
    assert tu.period_window("week", 0, today) == (date(2026, 1, 12), date(2026, 1, 18))
    assert tu.period_window("week", -1, today) == (date(2026, 1, 5), date(2026, 1, 11))


def test_period_window_month_and_all():
    today = date(2026, 1, 15)
    assert tu.period_window("month", 0, today) == (date(2026, 1, 1), date(2026, 1, 31))
    assert tu.period_window("month", -1, today) == (date(2025, 12, 1), date(2025, 12, 31))
    assert tu.period_window("month", 1, today) == (date(2026, 2, 1), date(2026, 2, 28))
    assert tu.period_window("all", 3, today) == (None, None)
    with pytest.raises(ValueError):
        tu.period_window("fortnight", 0, today)


def test_local_date_of_stored_timestamp():
    # 03:30 UTC is still the previous evening in Chicago
    assert tu.local_date(datetime(2026, 1, 16, 3, 30), "America/Chicago") == date(2026, 1, 15)
