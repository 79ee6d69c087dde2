"""InfluxDB exporter module.

This module handles:
- Pushing daily water metering records to InfluxDB
- Each record is stored at its provider-local date
- Enables proper time-series graphing in Grafana
"""

import logging
from typing import List, Optional, Sequence

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from tsme_metering.metering import MeteringRecord

# Configure module logger
logger = logging.getLogger(__name__)

MEASUREMENT = "tsme_water"


class InfluxDBExporter:
    """InfluxDB exporter for TSME water metering data.

    Measurements:
    - tsme_water: Daily records, fields ``volume`` and ``index``
      (``index`` is left out when the portal has no reading)

    Tags:
    - meter_id: Meter identifier (PDS)

    Attributes:
        url: InfluxDB server URL
        token: InfluxDB API token
        org: InfluxDB organization
        bucket: InfluxDB bucket name
    """

    def __init__(
        self,
        url: str = "http://localhost:8086",
        token: str = "",
        org: str = "tsme",
        bucket: str = "water",
    ):
        self.url = url
        self.token = token
        self.org = org
        self.bucket = bucket
        self._client: Optional[InfluxDBClient] = None
        self._write_api = None

    def connect(self) -> bool:
        """Open the client and check the server answers before writing.

        Returns:
            True if the server is reachable, False otherwise
        """
        client = InfluxDBClient(url=self.url, token=self.token, org=self.org)
        try:
            reachable = client.ping()
        except Exception as e:
            logger.error(f"Cannot reach InfluxDB at {self.url}: {e}")
            reachable = False

        if not reachable:
            logger.error(f"InfluxDB at {self.url} did not answer the ping")
            client.close()
            return False

        self._client = client
        self._write_api = client.write_api(write_options=SYNCHRONOUS)
        logger.info(f"Writing metering to InfluxDB bucket {self.bucket} at {self.url}")
        return True

    def close(self) -> None:
        """Flush and release the write API and the client."""
        if self._write_api is not None:
            self._write_api.close()
            self._write_api = None
        if self._client is not None:
            self._client.close()
            self._client = None

    @staticmethod
    def build_points(meter_id: str, records: Sequence[MeteringRecord]) -> List[Point]:
        points: List[Point] = []
        for record in records:
            point = (
                Point(MEASUREMENT)
                .tag("meter_id", meter_id)
                .field("volume", float(record.volume))
                .time(record.date, WritePrecision.S)
            )
            if record.index is not None:
                point = point.field("index", float(record.index))
            points.append(point)
        return points

    def write_metering(self, meter_id: str, records: Sequence[MeteringRecord]) -> int:
        """Write metering records for one meter.

        Args:
            meter_id: Meter identifier
            records: Records returned by TSMEScraper.get_metering()

        Returns:
            Number of points written

        Raises:
            RuntimeError: If not connected to InfluxDB
        """
        if not self._write_api:
            raise RuntimeError("Not connected to InfluxDB. Call connect() first.")

        if not records:
            logger.warning(f"No records to write for meter {meter_id}")
            return 0

        points = self.build_points(meter_id, records)

        try:
            self._write_api.write(bucket=self.bucket, org=self.org, record=points)
            logger.info(f"Wrote {len(points)} records to InfluxDB for meter {meter_id}")
        except Exception as e:
            logger.error(f"Failed to write to InfluxDB: {e}")
            raise

        return len(points)
