"""Trip lookup and strict route attribution."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

from transit_arrivals.logging import get_logger
from transit_arrivals.models import Trip
from transit_arrivals.services.matching.trip_ids import normalize_feed_trip_id

logger = get_logger(__name__)


class TripRegistry:
    """Resolves trip ids to static trip records.

    Resolution is strict: an exact id match, else a match after removing
    only the numeric feed prefix. Fuzzy variants are deliberately not used
    here, since the route of a trip ends up in user-facing labels.
    """

    def __init__(self, trips: Iterable[Trip]) -> None:
        self._by_id: dict[str, Trip] = {}
        self._by_route: dict[str, list[Trip]] = {}
        duplicates = 0

        for trip in trips:
            if trip.trip_id in self._by_id:
                duplicates += 1
                continue
            self._by_id[trip.trip_id] = trip
            self._by_route.setdefault(trip.route_id, []).append(trip)

        if duplicates:
            logger.warning("Duplicate trip ids ignored", duplicate_count=duplicates)

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Trip]:
        return iter(self._by_id.values())

    def match_by_trip_id(self, trip_id: str | None) -> Trip | None:
        if not trip_id:
            return None

        trip = self._by_id.get(trip_id)
        if trip is not None:
            return trip

        stripped = normalize_feed_trip_id(trip_id)
        if stripped and stripped != trip_id:
            return self._by_id.get(stripped)
        return None

    def trips_for_route(self, route_id: str) -> list[Trip]:
        return list(self._by_route.get(route_id, ()))

    def routes(self) -> list[str]:
        return sorted(self._by_route)


class StrictRouteResolver:
    """Cache of feed trip id -> route id, including negative results.

    Owned by the engine so its lifetime matches the loaded schedule.
    """

    def __init__(self, registry: TripRegistry) -> None:
        self._registry = registry
        self._cache: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def resolve(self, feed_trip_id: str | None) -> str | None:
        """Return the route for a feed trip id, or None if unattributable."""
        if not feed_trip_id:
            return None

        with self._lock:
            if feed_trip_id in self._cache:
                return self._cache[feed_trip_id]

        trip = self._registry.match_by_trip_id(feed_trip_id)
        route_id = trip.route_id if trip is not None and trip.route_id else None

        with self._lock:
            self._cache[feed_trip_id] = route_id
        return route_id

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
