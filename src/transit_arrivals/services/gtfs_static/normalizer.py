"""GTFS data normalizer - cleans and converts raw CSV rows into records."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from transit_arrivals.logging import get_logger
from transit_arrivals.models import (
    EXCEPTION_ADDED,
    EXCEPTION_REMOVED,
    CalendarException,
    Stop,
    StopTime,
    Trip,
)

logger = get_logger(__name__)


class TimeParseError(Exception):
    """Raised when a GTFS time string cannot be parsed."""


class NormalizationError(Exception):
    """Raised when a row cannot be normalized."""


class GtfsNormalizer:
    """Normalizes raw GTFS CSV rows into immutable model records."""

    @staticmethod
    def normalize_stop(row: dict[str, Any]) -> Stop:
        """Normalize a stops.txt row.

        Raises:
            NormalizationError: If required fields are missing/invalid.
        """
        stop_id = _clean_str(row.get("stop_id", ""))
        name = _clean_str(row.get("stop_name", ""))
        lat_str = _clean_str(row.get("stop_lat", ""))
        lon_str = _clean_str(row.get("stop_lon", ""))

        if not stop_id:
            raise NormalizationError("Missing stop_id")
        if not name:
            raise NormalizationError(f"Missing stop_name for stop_id={stop_id}")

        try:
            lat = float(lat_str)
            lon = float(lon_str)
        except (ValueError, TypeError) as exc:
            raise NormalizationError(
                f"Invalid lat/lon for stop_id={stop_id}: lat={lat_str!r}, lon={lon_str!r}"
            ) from exc

        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            raise NormalizationError(
                f"Out of range lat/lon for stop_id={stop_id}: lat={lat}, lon={lon}"
            )

        return Stop(stop_id=stop_id, name=name, lat=lat, lon=lon)

    @staticmethod
    def normalize_trip(row: dict[str, Any]) -> Trip:
        """Normalize a trips.txt row.

        service_id is kept exactly as written; calendar lookups are exact.

        Raises:
            NormalizationError: If required fields are missing.
        """
        trip_id = _clean_str(row.get("trip_id", ""))
        route_id = _clean_str(row.get("route_id", ""))
        service_id = _clean_str(row.get("service_id", ""))
        direction_id_str = _clean_str(row.get("direction_id", ""))

        if not trip_id:
            raise NormalizationError("Missing trip_id")
        if not route_id:
            raise NormalizationError(f"Missing route_id for trip_id={trip_id}")
        if not service_id:
            raise NormalizationError(f"Missing service_id for trip_id={trip_id}")

        # direction_id is optional in GTFS, default to 0
        direction_id = 0
        if direction_id_str:
            try:
                direction_id = int(direction_id_str)
                if direction_id not in (0, 1):
                    logger.warning(
                        "Invalid direction_id, defaulting to 0",
                        trip_id=trip_id,
                        direction_id=direction_id_str,
                    )
                    direction_id = 0
            except ValueError:
                logger.warning(
                    "Non-integer direction_id, defaulting to 0",
                    trip_id=trip_id,
                    direction_id=direction_id_str,
                )
                direction_id = 0

        return Trip(
            trip_id=trip_id,
            route_id=route_id,
            service_id=service_id,
            headsign=_clean_str(row.get("trip_headsign", "")).replace('"', ""),
            short_name=_clean_str(row.get("trip_short_name", "")),
            direction_id=direction_id,
            shape_id=_clean_str(row.get("shape_id", "")),
        )

    @staticmethod
    def normalize_stop_time(row: dict[str, Any]) -> StopTime:
        """Normalize a stop_times.txt row.

        arrival_time may be blank (untimed stop); it then becomes None and
        the stop time sorts after every timed one.

        Raises:
            NormalizationError: If required fields are missing/invalid.
            TimeParseError: If arrival_time is present but malformed.
        """
        trip_id = _clean_str(row.get("trip_id", ""))
        stop_id = _clean_str(row.get("stop_id", ""))
        seq_str = _clean_str(row.get("stop_sequence", ""))
        arrival_str = _clean_str(row.get("arrival_time", ""))

        if not trip_id:
            raise NormalizationError("Missing trip_id in stop_times")
        if not stop_id:
            raise NormalizationError(f"Missing stop_id in stop_times for trip_id={trip_id}")
        if not seq_str:
            raise NormalizationError(
                f"Missing stop_sequence for trip_id={trip_id}, stop_id={stop_id}"
            )

        try:
            stop_sequence = int(seq_str)
        except ValueError as exc:
            raise NormalizationError(
                f"Invalid stop_sequence={seq_str!r} for trip_id={trip_id}"
            ) from exc

        if stop_sequence < 0:
            raise NormalizationError(
                f"Negative stop_sequence={stop_sequence} for trip_id={trip_id}"
            )

        arrival_sec = parse_gtfs_time(arrival_str) if arrival_str else None

        return StopTime(
            trip_id=trip_id,
            stop_id=stop_id,
            stop_sequence=stop_sequence,
            arrival_sec=arrival_sec,
        )

    @staticmethod
    def normalize_calendar_date(row: dict[str, Any]) -> CalendarException:
        """Normalize a calendar_dates.txt row.

        Raises:
            NormalizationError: If a field is missing or unparsable.
        """
        service_id = _clean_str(row.get("service_id", ""))
        date_str = _clean_str(row.get("date", ""))
        type_str = _clean_str(row.get("exception_type", ""))

        if not service_id or not date_str or not type_str:
            raise NormalizationError(
                f"Missing field in calendar_dates row: service_id={service_id!r}, "
                f"date={date_str!r}, exception_type={type_str!r}"
            )

        day = parse_gtfs_date(date_str)

        try:
            exception_type = int(type_str)
        except ValueError as exc:
            raise NormalizationError(f"Non-integer exception_type={type_str!r}") from exc

        if exception_type not in (EXCEPTION_ADDED, EXCEPTION_REMOVED):
            raise NormalizationError(
                f"Unknown exception_type={exception_type} for service_id={service_id}"
            )

        return CalendarException(service_id=service_id, date=day, exception_type=exception_type)


def parse_gtfs_time(time_str: str) -> int:
    """Parse a GTFS time string (HH:MM:SS) to seconds from midnight.

    Supports times >= 24:00:00 for trips spanning past midnight.

    Examples:
        "08:30:00" -> 30600
        "25:01:30" -> 90090

    Raises:
        TimeParseError: If the format is invalid.
    """
    time_str = time_str.strip()
    parts = time_str.split(":")
    if len(parts) != 3:
        msg = f"Invalid GTFS time format: {time_str!r} (expected HH:MM:SS)"
        raise TimeParseError(msg)

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(parts[2])
    except ValueError as exc:
        msg = f"Non-numeric components in GTFS time: {time_str!r}"
        raise TimeParseError(msg) from exc

    if minutes < 0 or minutes > 59 or seconds < 0 or seconds > 59:
        msg = f"Invalid minutes/seconds in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    if hours < 0:
        msg = f"Negative hours in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    return hours * 3600 + minutes * 60 + seconds


def parse_gtfs_date(date_str: str) -> date:
    """Parse a GTFS service date (YYYYMMDD).

    Raises:
        NormalizationError: If the string is not a valid date.
    """
    try:
        return datetime.strptime(date_str.strip(), "%Y%m%d").date()
    except ValueError as exc:
        raise NormalizationError(f"Invalid GTFS date: {date_str!r}") from exc


def _clean_str(value: Any) -> str:
    """Trim whitespace from a value, return empty string for None."""
    if value is None:
        return ""
    return str(value).strip()
