import json
from datetime import datetime

from tsme_metering.exporter import (
    meter_data_to_csv,
    meter_data_to_json,
    meters_data_to_csv,
    meters_data_to_json,
)
from tsme_metering.metering import PROVIDER_TZ, MeteringRecord


def make_records():
    return [
        MeteringRecord(datetime(2025, 7, 1, tzinfo=PROVIDER_TZ), 100, 2.5),
        MeteringRecord(datetime(2025, 7, 2, tzinfo=PROVIDER_TZ), None, 0.0),
    ]


def test_meter_data_to_json():
    document = json.loads(meter_data_to_json("A1", make_records()))
    assert document == {
        "meterId": "A1",
        "values": [
            {"date": "2025-07-01", "index": 100, "volume": 2.5},
            {"date": "2025-07-02", "index": None, "volume": 0.0},
        ],
    }


def test_meters_data_to_json():
    document = json.loads(meters_data_to_json([("A1", make_records()), ("B7", [])]))
    assert [entry["meterId"] for entry in document] == ["A1", "B7"]
    assert document[1]["values"] == []


def test_meter_data_to_csv():
    lines = meter_data_to_csv("A1", make_records()).splitlines()
    assert lines == [
        "meterId,date,index,volume",
        "A1,2025-07-01,100,2.5",
        "A1,2025-07-02,,0.0",
    ]


def test_meters_data_to_csv_single_header():
    lines = meters_data_to_csv([("A1", make_records()[:1]), ("B7", make_records()[1:])]).splitlines()
    assert lines[0] == "meterId,date,index,volume"
    assert lines[1:] == ["A1,2025-07-01,100,2.5", "B7,2025-07-02,,0.0"]
