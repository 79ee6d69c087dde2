from datetime import datetime, timezone

import pytest

from tsme_metering.metering import (
    PROVIDER_TZ,
    MeteringParseError,
    default_end_date,
    default_start_date,
    format_wire_date,
    normalize_date_range,
    parse_local_date,
    parse_measures,
)

NOW = datetime(2025, 7, 15, 10, 30, tzinfo=PROVIDER_TZ)
YESTERDAY_END = datetime(2025, 7, 14, 23, 59, 59, 999999, tzinfo=PROVIDER_TZ)
MONTH_START = datetime(2025, 7, 1, tzinfo=PROVIDER_TZ)


def test_defaults_to_month_start_and_yesterday():
    start, end = normalize_date_range(None, None, now=NOW)
    assert end == YESTERDAY_END
    assert start == MONTH_START


def test_future_end_is_clamped():
    start, end = normalize_date_range(
        datetime(2025, 7, 3, tzinfo=PROVIDER_TZ),
        datetime(2026, 1, 1, tzinfo=PROVIDER_TZ),
        now=NOW,
    )
    assert end == YESTERDAY_END
    assert start == datetime(2025, 7, 3, tzinfo=PROVIDER_TZ)


def test_reversed_range_resets_start():
    start, end = normalize_date_range(
        datetime(2025, 7, 10, tzinfo=PROVIDER_TZ),
        datetime(2025, 7, 5, tzinfo=PROVIDER_TZ),
        now=NOW,
    )
    assert end == datetime(2025, 7, 5, tzinfo=PROVIDER_TZ)
    assert start == MONTH_START


def test_month_start_follows_clamped_end_on_first_day():
    # On the 1st, yesterday belongs to the previous month
    now = datetime(2025, 8, 1, 8, 0, tzinfo=PROVIDER_TZ)
    start, end = normalize_date_range(None, None, now=now)
    assert end.date() == datetime(2025, 7, 31).date()
    assert start == MONTH_START


def test_range_is_always_well_formed():
    candidates = [None, datetime(2020, 1, 1), datetime(2025, 7, 20), datetime(2030, 5, 5)]
    for from_date in candidates:
        for to_date in candidates:
            start, end = normalize_date_range(from_date, to_date, now=NOW)
            assert start <= end <= YESTERDAY_END


def test_aware_dates_are_read_in_provider_tz():
    # 23:30 UTC on July 4th is already July 5th in Paris
    start, end = normalize_date_range(
        datetime(2025, 7, 4, 23, 30, tzinfo=timezone.utc),
        datetime(2025, 7, 6, 12, 0, tzinfo=timezone.utc),
        now=NOW,
    )
    assert format_wire_date(start) == "2025-07-05"
    assert format_wire_date(end) == "2025-07-06"


def test_naive_now_is_provider_local():
    _, end = normalize_date_range(None, None, now=datetime(2025, 7, 15, 0, 30))
    assert end == YESTERDAY_END


def test_parse_local_date():
    assert parse_local_date("2025-01-15") == datetime(2025, 1, 15, tzinfo=PROVIDER_TZ)
    with pytest.raises(ValueError):
        parse_local_date("15/01/2025")


def test_cli_defaults():
    assert default_end_date(NOW) == YESTERDAY_END
    assert default_start_date(NOW) == datetime(2025, 7, 8, 23, 59, 59, 999999, tzinfo=PROVIDER_TZ)


def test_parse_measures():
    records = parse_measures([
        {"date": "2025-07-01 00:00:00", "index": 100, "volume": 2.5},
        {"date": "2025-01-01 00:00:00", "index": None, "volume": 1},
    ])

    assert records[0].date == datetime(2025, 7, 1, tzinfo=PROVIDER_TZ)
    assert records[0].index == 100
    assert records[0].volume == 2.5
    assert records[1].index is None
    # Winter time
    assert records[1].date.utcoffset().total_seconds() == 3600


@pytest.mark.parametrize("measure", [{"date": None, "volume": 1}, {"date": "2025-07-01", "volume": 1}, "oops"])
def test_parse_measures_rejects_malformed(measure):
    with pytest.raises(MeteringParseError):
        parse_measures([measure])
