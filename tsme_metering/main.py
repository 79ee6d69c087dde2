"""Main entry point for the TSME metering extractor.

This module handles:
- Loading configuration from environment variables (and a .env file)
- Parsing the command line (extract, extract-all)
- Coordinating the scraper and the output formatters
- Optionally pushing the extracted records to InfluxDB
"""

import argparse
import logging
import os
import re
import sys
import time
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from tsme_metering import __version__
from tsme_metering.exporter import (
    meter_data_to_csv,
    meter_data_to_json,
    meters_data_to_csv,
    meters_data_to_json,
)
from tsme_metering.influxdb_exporter import InfluxDBExporter
from tsme_metering.metering import (
    MeteringRecord,
    default_end_date,
    default_start_date,
    format_wire_date,
    parse_local_date,
)
from tsme_metering.providers import DEFAULT_PROVIDER, PROVIDERS, get_client
from tsme_metering.scraper import TSMEError, TSMEScraper

# Configure module logger
logger = logging.getLogger(__name__)

# Pause between two meters to be gentle with the portal
METER_DELAY = 0.75  # seconds

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Configuration from environment
config = {
    "email": "",
    "password": "",
    # InfluxDB config
    "influxdb_url": "http://localhost:8086",
    "influxdb_token": "",
    "influxdb_org": "tsme",
    "influxdb_bucket": "water",
}


def load_config(require_influxdb: bool = False) -> bool:
    """Load configuration from environment variables.

    Required:
        TSME_EMAIL: Portal login e-mail
        TSME_PASSWORD: Portal password
        INFLUXDB_TOKEN: InfluxDB API token (only when pushing to InfluxDB)

    Optional:
        INFLUXDB_URL: InfluxDB server URL (default: http://localhost:8086)
        INFLUXDB_ORG: InfluxDB organization (default: tsme)
        INFLUXDB_BUCKET: InfluxDB bucket (default: water)

    Args:
        require_influxdb: Whether the InfluxDB token is required

    Returns:
        True if all required config loaded, False otherwise
    """
    config["email"] = os.getenv("TSME_EMAIL", "")
    config["password"] = os.getenv("TSME_PASSWORD", "")

    config["influxdb_url"] = os.getenv("INFLUXDB_URL", "http://localhost:8086")
    config["influxdb_token"] = os.getenv("INFLUXDB_TOKEN", "")
    config["influxdb_org"] = os.getenv("INFLUXDB_ORG", "tsme")
    config["influxdb_bucket"] = os.getenv("INFLUXDB_BUCKET", "water")

    # Validate required config
    missing = []
    if not config["email"]:
        missing.append("TSME_EMAIL")
    if not config["password"]:
        missing.append("TSME_PASSWORD")
    if require_influxdb and not config["influxdb_token"]:
        missing.append("INFLUXDB_TOKEN")

    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        return False

    invalid = []
    if not EMAIL_PATTERN.match(config["email"]):
        invalid.append("TSME_EMAIL (not an e-mail address)")
    if len(config["password"]) < 3:
        invalid.append("TSME_PASSWORD (too short)")

    if invalid:
        logger.error(f"Invalid environment variables: {', '.join(invalid)}")
        return False

    logger.debug(f"Configuration loaded: email={config['email']}")
    return True


def cli_date(value: str) -> datetime:
    """argparse type for YYYY-MM-DD dates in the provider timezone."""
    try:
        return parse_local_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}'. Use YYYY-MM-DD.") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tsme-metering",
        description="Retrieve water meter data from TSME group portals (Suez, ...)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-s", "--start", type=cli_date, help="The starting date (YYYY-MM-DD).")
    common.add_argument("-e", "--end", type=cli_date, help="The ending date (YYYY-MM-DD).")
    common.add_argument(
        "-p", "--provider",
        default=DEFAULT_PROVIDER,
        choices=sorted(PROVIDERS),
        help="The provider to use.",
    )
    common.add_argument(
        "-f", "--format",
        default="json",
        choices=["json", "csv"],
        help="The output format to use.",
    )
    common.add_argument(
        "--influxdb",
        action="store_true",
        help="Also write the records to InfluxDB (INFLUXDB_* variables).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "extract-all",
        parents=[common],
        help="Launch data extraction for all water meters in the account.",
    )
    extract = subparsers.add_parser(
        "extract",
        parents=[common],
        help="Launch data extraction for a specific meter id.",
    )
    extract.add_argument("meter_id", help="The meter ID.")

    return parser


def display_summary(provider: str, start: datetime, end: datetime) -> None:
    logger.info(f"Provider: {provider}")
    logger.info(f"Email: {config['email']}")
    logger.info("Password: ***")
    logger.info(f"From: {format_wire_date(start)} => To: {format_wire_date(end)}")


def extract_all(
    client: TSMEScraper, start: datetime, end: datetime
) -> List[Tuple[str, List[MeteringRecord]]]:
    """Fetch metering data for every compatible meter of the account.

    Raises:
        TSMEError: If the account has no compatible meter or a call fails
    """
    meter_ids = client.list_meter_ids()
    if not meter_ids:
        raise TSMEError("There is no compatible water meter in your account")

    meters_data = []
    for position, meter_id in enumerate(meter_ids):
        if position > 0:
            time.sleep(METER_DELAY)
        meters_data.append((meter_id, client.get_metering(meter_id, start, end)))

    return meters_data


def extract_one(
    client: TSMEScraper, meter_id: str, start: datetime, end: datetime
) -> List[MeteringRecord]:
    """Fetch metering data for one meter after checking it belongs to the account.

    Raises:
        TSMEError: If the meter is unknown or a call fails
    """
    if meter_id not in client.list_meter_ids():
        raise TSMEError(f"The meter ID {meter_id} was not found, check your account")

    return client.get_metering(meter_id, start, end)


def push_to_influxdb(meters_data: Sequence[Tuple[str, Sequence[MeteringRecord]]]) -> bool:
    influxdb_exporter = InfluxDBExporter(
        url=config["influxdb_url"],
        token=config["influxdb_token"],
        org=config["influxdb_org"],
        bucket=config["influxdb_bucket"],
    )
    if not influxdb_exporter.connect():
        return False

    try:
        for meter_id, records in meters_data:
            influxdb_exporter.write_metering(meter_id, records)
    except Exception as e:
        logger.error(f"InfluxDB write failed: {e}")
        return False
    finally:
        influxdb_exporter.close()

    return True


def run(args: argparse.Namespace) -> int:
    """Execute the extraction described by parsed arguments.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    if not load_config(require_influxdb=args.influxdb):
        logger.error("Configuration failed, exiting")
        return 1

    start = args.start or default_start_date()
    end = args.end or default_end_date()

    try:
        client = get_client(args.provider, config["email"], config["password"])
        display_summary(args.provider, start, end)

        if args.command == "extract":
            logger.info(f"Meter ID: {args.meter_id}")
            records = extract_one(client, args.meter_id, start, end)
            meters_data = [(args.meter_id, records)]
            if args.format == "csv":
                output = meter_data_to_csv(args.meter_id, records)
            else:
                output = meter_data_to_json(args.meter_id, records)
        else:
            meters_data = extract_all(client, start, end)
            if args.format == "csv":
                output = meters_data_to_csv(meters_data)
            else:
                output = meters_data_to_json(meters_data)

    except TSMEError as e:
        logger.error(f"Extraction failed: {e}")
        return 1

    print(output)

    if args.influxdb and not push_to_influxdb(meters_data):
        logger.error("Failed to push records to InfluxDB")
        return 1

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point.

    1. Parse the command line
    2. Load .env file with python-dotenv
    3. Load and validate configuration
    4. Run the extraction and print the result on stdout

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    # Logs go to stderr, stdout carries the extracted data
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    load_dotenv()

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
