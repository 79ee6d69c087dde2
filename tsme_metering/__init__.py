"""TSME water metering extractor package.

A command-line tool that authenticates with the TSME group customer portals
(Suez "Tout sur mon eau"), downloads daily water meter readings and prints
them as JSON or CSV, optionally writing them to InfluxDB.
"""

__version__ = "0.1.0"
