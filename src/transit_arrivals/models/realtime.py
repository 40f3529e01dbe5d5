"""GTFS-RT derived records and arrival results."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ConnectionMode(str, enum.Enum):
    """Whether realtime predictions should be consulted."""

    LIVE = "live"
    OFFLINE = "offline"


@dataclass(frozen=True, slots=True)
class TripUpdateRecord:
    """One predicted arrival decoded from a TripUpdate.

    ``trip_id`` keeps the feed's own spelling; matching normalizes later.
    """

    trip_id: str
    stop_id: str
    arrival_epoch: int


@dataclass(frozen=True, slots=True)
class VehiclePosition:
    trip_id: str
    vehicle_id: str
    lat: float
    lon: float
    stop_sequence: int = -1


@dataclass(frozen=True, slots=True)
class ArrivalInfo:
    """Most imminent arrival of one route at a stop."""

    route_id: str
    trip_id: str
    headsign: str
    stop_id: str
    scheduled_epoch: int
    predicted_epoch: int | None = None

    @property
    def is_realtime(self) -> bool:
        return self.predicted_epoch is not None

    @property
    def sort_key(self) -> int:
        return self.predicted_epoch if self.predicted_epoch is not None else self.scheduled_epoch

    @property
    def delay_minutes(self) -> int | None:
        """Prediction minus schedule, truncated toward zero."""
        if self.predicted_epoch is None:
            return None
        return int((self.predicted_epoch - self.scheduled_epoch) / 60)
