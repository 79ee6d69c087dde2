"""Metering data model and date handling module.

This module handles:
- The MeteringRecord type returned by the scraper
- Shaping raw telemetry measures into records
- Date range normalization in the provider timezone

All dates are interpreted in the provider's home timezone (Europe/Paris),
never in UTC or in the local timezone of the machine running the scraper.
The telemetry wire format is timezone-less: "yyyy-MM-dd" for query
parameters and "yyyy-MM-dd HH:mm:ss" for measure dates.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

PROVIDER_TZ = ZoneInfo("Europe/Paris")

WIRE_DATE_FORMAT = "%Y-%m-%d"
MEASURE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class MeteringRecord:
    """A single daily metering record.

    Attributes:
        date: Timestamp in the provider timezone
        index: Cumulative meter reading (None when the portal has none)
        volume: Consumption over the day
    """
    date: datetime
    index: Optional[float]
    volume: float


class MeteringParseError(Exception):
    """Exception raised for malformed telemetry measures."""
    pass


def to_provider_tz(value: datetime) -> datetime:
    """Express a datetime in the provider timezone.

    Naive datetimes are taken as provider-local wall time.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=PROVIDER_TZ)
    return value.astimezone(PROVIDER_TZ)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def now_in_provider_tz() -> datetime:
    return datetime.now(PROVIDER_TZ)


def max_end_date(now: Optional[datetime] = None) -> datetime:
    """Latest date data can exist for: end of yesterday, provider time."""
    now = to_provider_tz(now) if now is not None else now_in_provider_tz()
    return end_of_day(now - timedelta(days=1))


def normalize_date_range(
    from_date: Optional[datetime],
    to_date: Optional[datetime],
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Clamp a requested range to what the portal can serve.

    - ``to_date`` unset or after the end of yesterday becomes the end of
      yesterday.
    - ``from_date`` unset or after ``to_date`` becomes the first day of the
      month containing ``to_date`` (after clamping).

    Args:
        from_date: Requested start (optional)
        to_date: Requested end (optional)
        now: Reference time, defaults to the current time

    Returns:
        Tuple of (from_date, to_date) in the provider timezone with
        from_date <= to_date <= end of yesterday
    """
    max_to = max_end_date(now)

    if to_date is not None:
        to_date = to_provider_tz(to_date)
    if to_date is None or to_date > max_to:
        to_date = max_to

    if from_date is not None:
        from_date = to_provider_tz(from_date)
    if from_date is None or from_date > to_date:
        from_date = start_of_day(to_date.replace(day=1))

    return from_date, to_date


def format_wire_date(value: datetime) -> str:
    """Format a datetime as the provider-local calendar day (yyyy-MM-dd)."""
    return to_provider_tz(value).strftime(WIRE_DATE_FORMAT)


def parse_local_date(value: str) -> datetime:
    """Parse "YYYY-MM-DD" as midnight in the provider timezone.

    Raises:
        ValueError: If the string is not a valid date
    """
    return datetime.strptime(value, WIRE_DATE_FORMAT).replace(tzinfo=PROVIDER_TZ)


def default_start_date(now: Optional[datetime] = None) -> datetime:
    """End of the day one week ago, provider time."""
    now = to_provider_tz(now) if now is not None else now_in_provider_tz()
    return end_of_day(now - timedelta(days=7))


def default_end_date(now: Optional[datetime] = None) -> datetime:
    """End of yesterday, provider time."""
    return max_end_date(now)


def parse_measure_date(value: str) -> datetime:
    """Reinterpret a telemetry date string as provider-local time."""
    try:
        return datetime.strptime(value, MEASURE_DATE_FORMAT).replace(tzinfo=PROVIDER_TZ)
    except (TypeError, ValueError) as e:
        raise MeteringParseError(f"Invalid measure date: {value!r}") from e


def parse_measures(measures: Iterable[dict]) -> List[MeteringRecord]:
    """Shape raw telemetry measures into MeteringRecords.

    Index and volume are passed through untouched and the server order is
    preserved.

    Args:
        measures: The ``content.measures`` list of a telemetry response

    Returns:
        List of MeteringRecord

    Raises:
        MeteringParseError: If a measure is not an object or has a bad date

    Example:
        >>> records = parse_measures([{"date": "2025-07-01 00:00:00", "index": 100, "volume": 2.5}])
        >>> records[0].date.isoformat()
        '2025-07-01T00:00:00+02:00'
    """
    records = []
    for position, measure in enumerate(measures):
        if not isinstance(measure, dict):
            raise MeteringParseError(f"Measure {position} is not an object")

        records.append(MeteringRecord(
            date=parse_measure_date(measure.get("date")),
            index=measure.get("index"),
            volume=measure.get("volume"),
        ))

    return records
