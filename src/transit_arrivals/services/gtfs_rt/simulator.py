"""Offline vehicle positions derived from the static schedule."""

from __future__ import annotations

from typing import TYPE_CHECKING

from transit_arrivals.logging import get_logger
from transit_arrivals.models import VehiclePosition

if TYPE_CHECKING:
    from transit_arrivals.services.gtfs_static.loader import StaticSchedule

logger = get_logger(__name__)

SIMULATED_VEHICLE_PREFIX = "SIM-"


class StaticSimulator:
    """Places a simulated vehicle at every stop of every scheduled trip.

    Used in offline mode so map consumers still have positions to draw.
    Output depends only on the schedule and is computed once.
    """

    def __init__(self, schedule: StaticSchedule) -> None:
        self._schedule = schedule
        self._positions: list[VehiclePosition] | None = None

    def simulate_all_trips(self) -> list[VehiclePosition]:
        if self._positions is None:
            self._positions = self._build()
        return list(self._positions)

    def _build(self) -> list[VehiclePosition]:
        stops = self._schedule.stops
        positions: list[VehiclePosition] = []

        for trip in self._schedule.registry:
            for st in self._schedule.index.stop_times_for_trip(trip.trip_id):
                stop = stops.get(st.stop_id)
                if stop is None:
                    continue
                positions.append(
                    VehiclePosition(
                        trip_id=trip.trip_id,
                        vehicle_id=SIMULATED_VEHICLE_PREFIX + trip.trip_id,
                        lat=stop.lat,
                        lon=stop.lon,
                        stop_sequence=st.stop_sequence,
                    )
                )

        logger.info("Simulated vehicle positions built", position_count=len(positions))
        return positions
