"""Transit engine: the loaded schedule plus the live realtime state."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from transit_arrivals.logging import get_logger
from transit_arrivals.models import ConnectionMode, TripUpdateRecord, VehiclePosition
from transit_arrivals.services.arrivals.aggregator import (
    ArrivalAggregator,
    ArrivalBoard,
    ArrivalWindows,
)
from transit_arrivals.services.gtfs_rt.simulator import StaticSimulator
from transit_arrivals.services.gtfs_rt.snapshot import RealtimeSnapshotStore
from transit_arrivals.services.gtfs_static.lines import LineCatalog
from transit_arrivals.services.gtfs_static.loader import StaticSchedule
from transit_arrivals.services.matching.registry import StrictRouteResolver

logger = get_logger(__name__)


class ScheduleNotLoadedError(Exception):
    """Raised when a query needs the static schedule before it is loaded."""


class TransitEngine:
    """Owns every piece of state a running service answers queries from.

    The static schedule and its indices are immutable once loaded. The
    realtime snapshot, route cache and vehicle positions are replaced by the
    refresh worker and read concurrently by request handlers.

    Usage:
        engine = TransitEngine()
        engine.load_schedule(schedule)
        engine.update_realtime_arrivals(records, feed_timestamp=feed_ts)
        engine.compute_arrivals("70001")
    """

    def __init__(
        self,
        schedule: StaticSchedule | None = None,
        mode: ConnectionMode = ConnectionMode.LIVE,
        windows: ArrivalWindows | None = None,
        timezone_name: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._windows = windows
        self._timezone_name = timezone_name
        self._clock = clock
        self._lock = threading.Lock()

        self._mode = mode
        self._feed_timestamp: int | None = None
        self._vehicle_positions: list[VehiclePosition] = []
        self._vehicles_updated_at: datetime | None = None

        self._store = RealtimeSnapshotStore()
        self._schedule: StaticSchedule | None = None
        self._resolver: StrictRouteResolver | None = None
        self._aggregator: ArrivalAggregator | None = None
        self._catalog: LineCatalog | None = None
        self._simulator: StaticSimulator | None = None

        if schedule is not None:
            self.load_schedule(schedule)

    # -- schedule -----------------------------------------------------------

    def load_schedule(self, schedule: StaticSchedule) -> None:
        """Install a schedule and rebuild everything derived from it.

        Realtime state from a previous schedule is discarded.
        """
        resolver = StrictRouteResolver(schedule.registry)
        aggregator = ArrivalAggregator(
            schedule,
            self._store,
            resolver,
            windows=self._windows,
            timezone=self._timezone_name,
            clock=self._clock,
        )
        with self._lock:
            self._schedule = schedule
            self._resolver = resolver
            self._aggregator = aggregator
            self._catalog = LineCatalog(schedule)
            self._simulator = StaticSimulator(schedule)
            self._vehicle_positions = []
            self._feed_timestamp = None
        self._store.replace([])
        logger.info("Schedule installed in engine", **schedule.summary())

    @property
    def is_loaded(self) -> bool:
        return self._schedule is not None

    @property
    def schedule(self) -> StaticSchedule:
        if self._schedule is None:
            raise ScheduleNotLoadedError("Static GTFS schedule is not loaded")
        return self._schedule

    @property
    def catalog(self) -> LineCatalog:
        if self._catalog is None:
            raise ScheduleNotLoadedError("Static GTFS schedule is not loaded")
        return self._catalog

    @property
    def simulator(self) -> StaticSimulator:
        if self._simulator is None:
            raise ScheduleNotLoadedError("Static GTFS schedule is not loaded")
        return self._simulator

    def _require_aggregator(self) -> ArrivalAggregator:
        if self._aggregator is None:
            raise ScheduleNotLoadedError("Static GTFS schedule is not loaded")
        return self._aggregator

    # -- realtime state -----------------------------------------------------

    @property
    def mode(self) -> ConnectionMode:
        return self._mode

    def set_mode(self, mode: ConnectionMode) -> None:
        with self._lock:
            previous = self._mode
            self._mode = mode
        if previous != mode:
            logger.info("Connection mode changed", previous=previous.value, mode=mode.value)

    @property
    def store(self) -> RealtimeSnapshotStore:
        return self._store

    @property
    def current_feed_timestamp(self) -> int | None:
        return self._feed_timestamp

    def now(self) -> int:
        return int(self._clock())

    def reference_epoch(self) -> int:
        """Feed header time when known, wall clock otherwise."""
        return self._feed_timestamp or self.now()

    def update_realtime_arrivals(
        self,
        records: Iterable[TripUpdateRecord],
        feed_timestamp: int | None = None,
    ) -> None:
        """Replace the realtime snapshot with a new cycle of records."""
        self._store.replace(records)
        if self._resolver is not None:
            self._resolver.clear()
        if feed_timestamp:
            with self._lock:
                self._feed_timestamp = feed_timestamp

    def update_vehicle_positions(self, positions: Iterable[VehiclePosition]) -> None:
        snapshot = list(positions)
        with self._lock:
            self._vehicle_positions = snapshot
            self._vehicles_updated_at = datetime.now(timezone.utc)

    @property
    def vehicle_positions(self) -> list[VehiclePosition]:
        with self._lock:
            return list(self._vehicle_positions)

    # -- queries ------------------------------------------------------------

    def compute_board(self, stop_id: str, mode: ConnectionMode | None = None) -> ArrivalBoard:
        """Arrival board for a stop in the given (or current) mode; never raises."""
        return self._require_aggregator().compute_board(
            stop_id, mode or self._mode, self.reference_epoch()
        )

    def compute_arrivals(self, stop_id: str, mode: ConnectionMode | None = None) -> list[str]:
        """Formatted arrival board for a stop in the given (or current) mode."""
        return list(self.compute_board(stop_id, mode).arrivals)

    def realtime_arrivals_by_route(self, stop_id: str, limit: int = 12) -> dict[str, int]:
        return self._require_aggregator().realtime_arrivals_by_route(stop_id, limit)

    def lines_for_stop(self, stop_id: str) -> list[str]:
        return self.catalog.lines_for_stop(stop_id)

    def status(self) -> dict[str, Any]:
        with self._lock:
            vehicles = len(self._vehicle_positions)
            vehicles_updated_at = self._vehicles_updated_at
        replaced_at = self._store.replaced_at
        return {
            "loaded": self.is_loaded,
            "mode": self._mode.value,
            "feed_timestamp": self._feed_timestamp,
            "realtime_trips": self._store.trip_count,
            "snapshot_replaced_at": replaced_at.isoformat() if replaced_at else None,
            "vehicle_count": vehicles,
            "vehicles_updated_at": (
                vehicles_updated_at.isoformat() if vehicles_updated_at else None
            ),
            "schedule": self._schedule.summary() if self._schedule is not None else None,
        }


# Singleton instance for the app lifecycle
_engine_instance: TransitEngine | None = None


def get_engine() -> TransitEngine:
    """Get or create the singleton engine instance."""
    global _engine_instance
    if _engine_instance is None:
        _engine_instance = TransitEngine()
    return _engine_instance


def set_engine(engine: TransitEngine) -> None:
    """Install a pre-built engine as the singleton (for testing)."""
    global _engine_instance
    _engine_instance = engine


def reset_engine() -> None:
    """Reset the singleton (for testing)."""
    global _engine_instance
    _engine_instance = None
