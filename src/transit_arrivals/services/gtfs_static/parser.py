"""GTFS CSV parsing for the tables the arrivals engine reads."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import TYPE_CHECKING

from transit_arrivals.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from transit_arrivals.services.gtfs_static.reader import GtfsZipReader

logger = get_logger(__name__)


class MissingColumnError(Exception):
    """Raised when a table's header lacks a column the engine needs."""


@dataclass(frozen=True, slots=True)
class GtfsTable:
    """A GTFS file and the columns the engine cannot do without."""

    filename: str
    required: frozenset[str]
    optional: bool = False


STOPS = GtfsTable("stops.txt", frozenset({"stop_id", "stop_name", "stop_lat", "stop_lon"}))
TRIPS = GtfsTable("trips.txt", frozenset({"route_id", "service_id", "trip_id"}))
STOP_TIMES = GtfsTable("stop_times.txt", frozenset({"trip_id", "stop_id", "stop_sequence"}))
CALENDAR_DATES = GtfsTable(
    "calendar_dates.txt",
    frozenset({"service_id", "date", "exception_type"}),
    optional=True,
)


def _clean_header(fieldnames: list[str], table: GtfsTable) -> list[str]:
    header = [name.strip() for name in fieldnames]
    duplicates = sorted({name for name in header if header.count(name) > 1})
    if duplicates:
        # csv.DictReader would silently keep the last occurrence
        logger.warning("Duplicate GTFS columns", filename=table.filename, columns=duplicates)
    return header


class GtfsParser:
    """Streams rows of GTFS tables as dicts of stripped strings.

    Headers are validated before the first row is produced. Rows made only
    of separators are dropped here so normalization never sees them.
    """

    def __init__(self, reader: GtfsZipReader) -> None:
        self._reader = reader

    def parse_table(self, table: GtfsTable) -> Iterator[dict[str, str]]:
        """Yield the rows of ``table``; nothing when an optional table is absent.

        Raises:
            MissingColumnError: If the file is empty or a required column is missing.
        """
        if table.optional and not self._reader.has_file(table.filename):
            logger.warning("Optional GTFS file absent", filename=table.filename)
            return

        csv_reader = csv.reader(self._reader.open_file(table.filename))
        first = next(csv_reader, None)
        if not first or not any(name.strip() for name in first):
            msg = f"Empty CSV file: {table.filename}"
            raise MissingColumnError(msg)

        header = _clean_header(first, table)
        missing = table.required - set(header)
        if missing:
            msg = f"Missing required columns in {table.filename}: {sorted(missing)}"
            raise MissingColumnError(msg)

        logger.info(
            "Parsing GTFS file",
            filename=table.filename,
            ignored_columns=sorted(set(header) - table.required) or None,
        )

        blank = 0
        for values in csv_reader:
            if not any(value.strip() for value in values):
                blank += 1
                continue
            # Short rows read as blank fields; surplus trailing fields are dropped
            padded = values + [""] * (len(header) - len(values))
            yield {name: value.strip() for name, value in zip(header, padded)}

        if blank:
            logger.debug("Skipped blank GTFS rows", filename=table.filename, count=blank)

    def parse_stops(self) -> Iterator[dict[str, str]]:
        return self.parse_table(STOPS)

    def parse_trips(self) -> Iterator[dict[str, str]]:
        return self.parse_table(TRIPS)

    def parse_stop_times(self) -> Iterator[dict[str, str]]:
        return self.parse_table(STOP_TIMES)

    def parse_calendar_dates(self) -> Iterator[dict[str, str]]:
        """Exceptions only; without the file no service runs on any date."""
        return self.parse_table(CALENDAR_DATES)
