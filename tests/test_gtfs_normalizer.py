"""Tests for GtfsNormalizer and time parsing."""

from __future__ import annotations

from datetime import date

import pytest

from transit_arrivals.models import CalendarException, Stop, StopTime, Trip
from transit_arrivals.services.gtfs_static.normalizer import (
    GtfsNormalizer,
    NormalizationError,
    TimeParseError,
    parse_gtfs_date,
    parse_gtfs_time,
)


class TestParseGtfsTime:
    """Tests for GTFS time string parsing (supports >24h)."""

    def test_normal_time(self) -> None:
        assert parse_gtfs_time("08:30:00") == 30600

    def test_midnight(self) -> None:
        assert parse_gtfs_time("00:00:00") == 0

    def test_past_midnight_25h(self) -> None:
        assert parse_gtfs_time("25:01:30") == 90090

    def test_whitespace_stripped(self) -> None:
        assert parse_gtfs_time("  08:30:00  ") == 30600

    def test_invalid_format_too_few_parts(self) -> None:
        with pytest.raises(TimeParseError, match="Invalid GTFS time format"):
            parse_gtfs_time("08:30")

    def test_invalid_non_numeric(self) -> None:
        with pytest.raises(TimeParseError, match="Non-numeric"):
            parse_gtfs_time("ab:cd:ef")

    def test_invalid_minutes_over_59(self) -> None:
        with pytest.raises(TimeParseError, match="Invalid minutes"):
            parse_gtfs_time("08:60:00")

    def test_negative_hours(self) -> None:
        with pytest.raises(TimeParseError, match="Negative hours"):
            parse_gtfs_time("-1:00:00")


class TestParseGtfsDate:
    """Tests for YYYYMMDD service dates."""

    def test_valid_date(self) -> None:
        assert parse_gtfs_date("20250312") == date(2025, 3, 12)

    def test_invalid_date(self) -> None:
        with pytest.raises(NormalizationError, match="Invalid GTFS date"):
            parse_gtfs_date("2025-03-12")

    def test_impossible_date(self) -> None:
        with pytest.raises(NormalizationError):
            parse_gtfs_date("20250230")


class TestNormalizeStop:
    """Tests for stop normalization."""

    def test_valid_stop(self) -> None:
        row = {
            "stop_id": "70001",
            "stop_name": "Termini",
            "stop_lat": "41.9009",
            "stop_lon": "12.5016",
        }
        assert GtfsNormalizer.normalize_stop(row) == Stop("70001", "Termini", 41.9009, 12.5016)

    def test_whitespace_trimmed(self) -> None:
        row = {
            "stop_id": " 70001 ",
            "stop_name": " Termini ",
            "stop_lat": " 41.9 ",
            "stop_lon": " 12.5 ",
        }
        result = GtfsNormalizer.normalize_stop(row)
        assert result.stop_id == "70001"
        assert result.name == "Termini"
        assert result.is_line is False

    def test_missing_stop_id_raises(self) -> None:
        row = {"stop_id": "", "stop_name": "Test", "stop_lat": "41", "stop_lon": "12"}
        with pytest.raises(NormalizationError, match="Missing stop_id"):
            GtfsNormalizer.normalize_stop(row)

    def test_invalid_lat_raises(self) -> None:
        row = {"stop_id": "1", "stop_name": "Test", "stop_lat": "abc", "stop_lon": "12"}
        with pytest.raises(NormalizationError, match="Invalid lat/lon"):
            GtfsNormalizer.normalize_stop(row)

    def test_out_of_range_raises(self) -> None:
        row = {"stop_id": "1", "stop_name": "Test", "stop_lat": "141.9", "stop_lon": "12"}
        with pytest.raises(NormalizationError, match="Out of range"):
            GtfsNormalizer.normalize_stop(row)

    def test_missing_name_raises(self) -> None:
        row = {"stop_id": "1", "stop_name": "", "stop_lat": "41", "stop_lon": "12"}
        with pytest.raises(NormalizationError, match="Missing stop_name"):
            GtfsNormalizer.normalize_stop(row)


class TestNormalizeTrip:
    """Tests for trip normalization."""

    def test_valid_trip(self) -> None:
        row = {
            "trip_id": "64-A-0800",
            "route_id": "64",
            "service_id": "FER",
            "trip_headsign": '"San Pietro"',
            "direction_id": "1",
            "shape_id": "shp64a",
        }
        assert GtfsNormalizer.normalize_trip(row) == Trip(
            trip_id="64-A-0800",
            route_id="64",
            service_id="FER",
            headsign="San Pietro",
            direction_id=1,
            shape_id="shp64a",
        )

    def test_direction_id_defaults_to_zero(self) -> None:
        row = {"trip_id": "t1", "route_id": "r1", "service_id": "FER", "direction_id": ""}
        assert GtfsNormalizer.normalize_trip(row).direction_id == 0

    def test_invalid_direction_id_defaults_to_zero(self) -> None:
        row = {"trip_id": "t1", "route_id": "r1", "service_id": "FER", "direction_id": "5"}
        assert GtfsNormalizer.normalize_trip(row).direction_id == 0

    def test_non_integer_direction_id_defaults_to_zero(self) -> None:
        row = {"trip_id": "t1", "route_id": "r1", "service_id": "FER", "direction_id": "abc"}
        assert GtfsNormalizer.normalize_trip(row).direction_id == 0

    def test_missing_trip_id_raises(self) -> None:
        row = {"trip_id": "", "route_id": "r1", "service_id": "FER"}
        with pytest.raises(NormalizationError, match="Missing trip_id"):
            GtfsNormalizer.normalize_trip(row)

    def test_missing_service_id_raises(self) -> None:
        row = {"trip_id": "t1", "route_id": "r1", "service_id": ""}
        with pytest.raises(NormalizationError, match="Missing service_id"):
            GtfsNormalizer.normalize_trip(row)


class TestNormalizeStopTime:
    """Tests for stop_time normalization."""

    def test_valid_stop_time(self) -> None:
        row = {
            "trip_id": "t1",
            "stop_id": "70001",
            "stop_sequence": "1",
            "arrival_time": "06:30:00",
        }
        assert GtfsNormalizer.normalize_stop_time(row) == StopTime("t1", "70001", 1, 23400)

    def test_blank_arrival_time_is_none(self) -> None:
        row = {"trip_id": "t1", "stop_id": "70001", "stop_sequence": "4", "arrival_time": ""}
        assert GtfsNormalizer.normalize_stop_time(row).arrival_sec is None

    def test_malformed_arrival_time_raises(self) -> None:
        row = {"trip_id": "t1", "stop_id": "70001", "stop_sequence": "1", "arrival_time": "8:30"}
        with pytest.raises(TimeParseError):
            GtfsNormalizer.normalize_stop_time(row)

    def test_invalid_sequence_raises(self) -> None:
        row = {"trip_id": "t1", "stop_id": "70001", "stop_sequence": "abc"}
        with pytest.raises(NormalizationError, match="Invalid stop_sequence"):
            GtfsNormalizer.normalize_stop_time(row)

    def test_negative_sequence_raises(self) -> None:
        row = {"trip_id": "t1", "stop_id": "70001", "stop_sequence": "-1"}
        with pytest.raises(NormalizationError, match="Negative stop_sequence"):
            GtfsNormalizer.normalize_stop_time(row)

    def test_missing_stop_id_raises(self) -> None:
        row = {"trip_id": "t1", "stop_id": "", "stop_sequence": "1"}
        with pytest.raises(NormalizationError, match="Missing stop_id"):
            GtfsNormalizer.normalize_stop_time(row)


class TestNormalizeCalendarDate:
    """Tests for calendar_dates normalization."""

    def test_valid_row(self) -> None:
        row = {"service_id": "FER", "date": "20250312", "exception_type": "1"}
        assert GtfsNormalizer.normalize_calendar_date(row) == CalendarException(
            "FER", date(2025, 3, 12), 1
        )

    def test_unknown_exception_type_raises(self) -> None:
        row = {"service_id": "FER", "date": "20250312", "exception_type": "3"}
        with pytest.raises(NormalizationError, match="Unknown exception_type"):
            GtfsNormalizer.normalize_calendar_date(row)

    def test_short_row_raises(self) -> None:
        row = {"service_id": "FER", "date": None, "exception_type": None}
        with pytest.raises(NormalizationError, match="Missing field"):
            GtfsNormalizer.normalize_calendar_date(row)
