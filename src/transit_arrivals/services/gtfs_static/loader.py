"""GTFS static loader - orchestrates fetch, parse, normalize, and index building."""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from transit_arrivals.config import get_settings
from transit_arrivals.logging import get_logger
from transit_arrivals.models import CalendarException, Stop, StopTime, Trip
from transit_arrivals.services.gtfs_static.calendar import ServiceCalendar
from transit_arrivals.services.gtfs_static.fetcher import GtfsStaticFetcher
from transit_arrivals.services.gtfs_static.index import StopTripIndex
from transit_arrivals.services.gtfs_static.normalizer import (
    GtfsNormalizer,
    NormalizationError,
    TimeParseError,
)
from transit_arrivals.services.gtfs_static.parser import GtfsParser
from transit_arrivals.services.gtfs_static.reader import GtfsZipReader
from transit_arrivals.services.matching.registry import TripRegistry

logger = get_logger(__name__)

T = TypeVar("T")

MAX_REPORTED_WARNINGS = 100


class LoadReport:
    """Collects load metrics and per-row warnings."""

    def __init__(self, source: str, feed_hash: str) -> None:
        self.source = source
        self.feed_hash = feed_hash
        self.started_at = datetime.now(timezone.utc)
        self.ended_at: datetime | None = None
        self.duration_ms: int | None = None
        self.counts: dict[str, dict[str, int]] = {}
        self.warnings: list[str] = []
        self.dropped_warnings = 0

    def add_warning(self, message: str) -> None:
        """Record a warning; past MAX_REPORTED_WARNINGS only the count grows."""
        if len(self.warnings) >= MAX_REPORTED_WARNINGS:
            self.dropped_warnings += 1
            return
        self.warnings.append(message)

    def init_table(self, table: str) -> None:
        self.counts[table] = {"read": 0, "loaded": 0, "skipped": 0}

    def finish(self) -> None:
        self.ended_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "feed_hash": self.feed_hash,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "counts": self.counts,
            "warnings": self.warnings,
            "dropped_warnings": self.dropped_warnings,
        }


@dataclass(frozen=True, slots=True)
class StaticSchedule:
    """Static data a running engine reads from.

    Fields cannot be reassigned; a reload builds a new schedule.
    """

    stops: dict[str, Stop]
    registry: TripRegistry
    index: StopTripIndex
    calendar: ServiceCalendar
    line_stops: dict[str, Stop] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        stops: list[Stop],
        trips: list[Trip],
        stop_times: list[StopTime],
        exceptions: list[CalendarException],
    ) -> StaticSchedule:
        """Build indices from already normalized records."""
        registry = TripRegistry(trips)

        line_stops: dict[str, Stop] = {}
        for trip in registry:
            line = Stop.line(trip.route_id, trip.headsign)
            line_stops.setdefault(line.stop_id, line)

        return cls(
            stops={stop.stop_id: stop for stop in stops},
            registry=registry,
            index=StopTripIndex(stop_times),
            calendar=ServiceCalendar.from_exceptions(exceptions),
            line_stops=line_stops,
        )

    @property
    def trip_count(self) -> int:
        return len(self.registry)

    def summary(self) -> dict[str, int]:
        return {
            "stops": len(self.stops),
            "trips": len(self.registry),
            "lines": len(self.line_stops),
            "services": self.calendar.service_count,
        }


class StaticScheduleLoader:
    """Loads a static GTFS feed into a `StaticSchedule`.

    Malformed rows are skipped and recorded in the report; they never abort
    the load. Structural faults (bad ZIP, missing file or column) do.
    """

    def __init__(self, fetcher: GtfsStaticFetcher | None = None) -> None:
        settings = get_settings()
        self._fetcher = fetcher or GtfsStaticFetcher(
            timeout_sec=settings.gtfs_static_fetch_timeout_sec
        )
        self._normalizer = GtfsNormalizer()

    async def load(
        self,
        path: str | None = None,
        url: str | None = None,
    ) -> tuple[StaticSchedule, LoadReport]:
        """Fetch a feed from a local path (preferred) or a URL and load it.

        Raises:
            FetchError: If no source is given or it cannot be read.
        """
        zip_bytes, feed_hash = await self._fetcher.fetch(path=path, url=url)
        return self.load_bytes(zip_bytes, source=path or url or "", feed_hash=feed_hash)

    def load_bytes(
        self,
        zip_bytes: bytes,
        source: str = "bytes",
        feed_hash: str | None = None,
    ) -> tuple[StaticSchedule, LoadReport]:
        """Parse, normalize and index a GTFS ZIP held in memory."""
        report = LoadReport(
            source=source,
            feed_hash=feed_hash or hashlib.sha256(zip_bytes).hexdigest(),
        )
        logger.info("Loading GTFS static schedule", source=source)

        with GtfsZipReader(zip_bytes) as reader:
            parser = GtfsParser(reader)

            stops = self._parse_and_normalize(
                parser.parse_stops, self._normalizer.normalize_stop, "stops", report
            )
            trips = self._parse_and_normalize(
                parser.parse_trips, self._normalizer.normalize_trip, "trips", report
            )
            stop_times = self._parse_and_normalize(
                parser.parse_stop_times,
                self._normalizer.normalize_stop_time,
                "stop_times",
                report,
            )
            exceptions = self._parse_and_normalize(
                parser.parse_calendar_dates,
                self._normalizer.normalize_calendar_date,
                "calendar_dates",
                report,
            )

        schedule = StaticSchedule.build(stops, trips, stop_times, exceptions)
        self._check_stop_references(schedule, report)
        report.finish()

        logger.info(
            "GTFS static schedule loaded",
            source=source,
            duration_ms=report.duration_ms,
            warnings=len(report.warnings) + report.dropped_warnings,
            **schedule.summary(),
        )
        return schedule, report

    @staticmethod
    def _parse_and_normalize(
        parse_fn: Callable[[], Iterator[dict[str, Any]]],
        normalize_fn: Callable[[dict[str, Any]], T],
        table_name: str,
        report: LoadReport,
    ) -> list[T]:
        """Parse and normalize rows from a GTFS file, skipping bad rows."""
        report.init_table(table_name)
        results: list[T] = []

        for row in parse_fn():
            report.counts[table_name]["read"] += 1
            try:
                results.append(normalize_fn(row))
            except (NormalizationError, TimeParseError) as exc:
                report.counts[table_name]["skipped"] += 1
                report.add_warning(f"{table_name} row error: {exc}")
                logger.debug("Skipping malformed row", table=table_name, error=str(exc))
                continue
            report.counts[table_name]["loaded"] += 1

        return results

    @staticmethod
    def _check_stop_references(schedule: StaticSchedule, report: LoadReport) -> None:
        """Note stop_times pointing at stops missing from stops.txt.

        Such rows stay indexed; only the stop metadata is unavailable.
        """
        dangling = [
            stop_id
            for stop_id in schedule.index.stop_ids()
            if stop_id not in schedule.stops
        ]
        if dangling:
            report.add_warning(
                f"stop_times reference {len(dangling)} stop(s) missing from stops.txt"
            )
            logger.warning(
                "stop_times reference unknown stops",
                count=len(dangling),
                sample=dangling[:5],
            )
