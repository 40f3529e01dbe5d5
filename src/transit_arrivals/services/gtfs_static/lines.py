"""Stop and line lookups used by the search endpoints."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from transit_arrivals.logging import get_logger
from transit_arrivals.models import Stop, StopTime, Trip

if TYPE_CHECKING:
    from transit_arrivals.services.gtfs_static.loader import StaticSchedule

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def bounding_box(lat: float, lon: float, radius_km: float) -> tuple[float, float, float, float]:
    """Return (lat_min, lat_max, lon_min, lon_max) enclosing the radius."""
    lat_delta = radius_km / 111.0
    lon_delta = radius_km / max(0.001, 111.0 * math.cos(math.radians(lat)))
    return (
        lat - lat_delta,
        lat + lat_delta,
        lon - lon_delta,
        lon + lon_delta,
    )


class LineCatalog:
    """Read-only search over the stops and lines of a loaded schedule."""

    def __init__(self, schedule: StaticSchedule) -> None:
        self._schedule = schedule

    def search_stops(self, query: str, limit: int = 100) -> list[Stop]:
        """Stops whose name or id contains ``query`` (case-insensitive)."""
        needle = query.strip().lower()
        if not needle:
            return []

        results: list[Stop] = []
        for stop in self._schedule.stops.values():
            if needle in stop.name.lower() or needle in stop.stop_id.lower():
                results.append(stop)
                if len(results) >= limit:
                    break
        return results

    def search_lines(self, query: str, limit: int = 100) -> list[Stop]:
        """Line pseudo-stops whose route id contains ``query``."""
        needle = query.strip().lower()
        if not needle:
            return []

        seen: set[str] = set()
        results: list[Stop] = []
        for trip in self._schedule.registry:
            if needle not in trip.route_id.lower():
                continue
            line = Stop.line(trip.route_id, trip.headsign)
            if line.stop_id in seen:
                continue
            seen.add(line.stop_id)
            results.append(line)
            if len(results) >= limit:
                break
        return results

    def lines_for_stop(self, stop_id: str) -> list[str]:
        """Distinct "route - headsign" labels of trips calling at a stop."""
        labels: dict[str, None] = {}
        for trip_id in self._schedule.index.trip_ids_for_stop(stop_id):
            trip = self._schedule.registry.match_by_trip_id(trip_id)
            if trip is not None:
                labels.setdefault(trip.line_label, None)
        return list(labels)

    def stops_for_route(self, route_id: str, headsign: str | None = None) -> list[Stop]:
        """Stops of a route in calling order.

        Uses the trip with the most stop times among those matching the
        route (and headsign, when given).
        """
        trips = self._schedule.registry.trips_for_route(route_id)
        if headsign is not None:
            trips = [trip for trip in trips if trip.headsign == headsign]

        best: tuple[StopTime, ...] = ()
        best_trip: Trip | None = None
        for trip in trips:
            stop_times = self._schedule.index.stop_times_for_trip(trip.trip_id)
            if len(stop_times) > len(best):
                best = stop_times
                best_trip = trip

        if best_trip is None:
            return []

        logger.debug(
            "Route stops resolved",
            route_id=route_id,
            headsign=headsign,
            trip_id=best_trip.trip_id,
            stop_count=len(best),
        )
        return [
            self._schedule.stops[st.stop_id] for st in best if st.stop_id in self._schedule.stops
        ]

    def nearby_stops(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        limit: int = 50,
    ) -> list[tuple[Stop, float]]:
        """Geolocated stops within ``radius_km``, nearest first, with distance in km."""
        lat_min, lat_max, lon_min, lon_max = bounding_box(lat, lon, radius_km)

        results: list[tuple[Stop, float]] = []
        for stop in self._schedule.stops.values():
            if not stop.is_geolocated:
                continue
            if not (lat_min <= stop.lat <= lat_max and lon_min <= stop.lon <= lon_max):
                continue
            distance = haversine_km(lat, lon, stop.lat, stop.lon)
            if distance <= radius_km:
                results.append((stop, distance))

        results.sort(key=lambda item: item[1])
        return results[:limit]
