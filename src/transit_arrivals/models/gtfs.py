"""GTFS static data models.

All records are immutable once loaded; indices built from them are shared
across threads without synchronization.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

LINE_STOP_PREFIX = "line-"

EXCEPTION_ADDED = 1
EXCEPTION_REMOVED = 2


@dataclass(frozen=True, slots=True)
class Stop:
    """Transit stop, or a synthetic line entry used by search.

    Line pseudo-stops carry zero coordinates and must never be geolocated.
    """

    stop_id: str
    name: str
    lat: float
    lon: float
    is_line: bool = False

    @classmethod
    def line(cls, route_id: str, headsign: str) -> Stop:
        """Build the pseudo-stop representing a route + headsign pair."""
        label = f"{route_id} - {headsign}"
        return cls(
            stop_id=LINE_STOP_PREFIX + label.replace(" ", ""),
            name=label,
            lat=0.0,
            lon=0.0,
            is_line=True,
        )

    @property
    def is_geolocated(self) -> bool:
        return not self.is_line and not (self.lat == 0.0 and self.lon == 0.0)


@dataclass(frozen=True, slots=True)
class Trip:
    """A specific run of a route."""

    trip_id: str
    route_id: str
    service_id: str
    headsign: str = ""
    short_name: str = ""
    direction_id: int = 0
    shape_id: str = ""

    @property
    def line_label(self) -> str:
        return f"{self.route_id} - {self.headsign}"


@dataclass(frozen=True, slots=True)
class StopTime:
    """Scheduled call of a trip at a stop.

    ``arrival_sec`` is seconds after midnight of the service day and may
    exceed 86400 for trips running past midnight.
    """

    trip_id: str
    stop_id: str
    stop_sequence: int
    arrival_sec: int | None = None


@dataclass(frozen=True, slots=True)
class CalendarException:
    """One calendar_dates.txt row."""

    service_id: str
    date: date
    exception_type: int
