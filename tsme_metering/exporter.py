"""Metering output formatting module.

This module handles:
- Rendering metering records as JSON documents
- Rendering metering records as CSV rows (one row per meter and day)

Record dates are written as provider-local calendar days (yyyy-MM-dd).
"""

import csv
import io
import json
from typing import Dict, Iterable, List, Sequence, Tuple

from tsme_metering.metering import MeteringRecord, format_wire_date

CSV_FIELDS = ["meterId", "date", "index", "volume"]

MeterData = Tuple[str, Sequence[MeteringRecord]]


def prepare_records(records: Iterable[MeteringRecord]) -> List[Dict]:
    """Convert records to plain dicts with formatted dates."""
    return [
        {
            "date": format_wire_date(record.date),
            "index": record.index,
            "volume": record.volume,
        }
        for record in records
    ]


def meter_data_to_json(meter_id: str, records: Sequence[MeteringRecord]) -> str:
    return json.dumps({"meterId": meter_id, "values": prepare_records(records)}, indent=2)


def meters_data_to_json(meters_data: Iterable[MeterData]) -> str:
    prepared = [
        {"meterId": meter_id, "values": prepare_records(records)}
        for meter_id, records in meters_data
    ]
    return json.dumps(prepared, indent=2)


def meters_data_to_csv(meters_data: Iterable[MeterData]) -> str:
    """Render several meters as a single CSV document.

    Args:
        meters_data: Iterable of (meter_id, records) pairs

    Returns:
        CSV text with a meterId,date,index,volume header. A missing index is
        written as an empty cell.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()

    for meter_id, records in meters_data:
        for row in prepare_records(records):
            writer.writerow({"meterId": meter_id, **row})

    return buffer.getvalue()


def meter_data_to_csv(meter_id: str, records: Sequence[MeteringRecord]) -> str:
    return meters_data_to_csv([(meter_id, records)])
