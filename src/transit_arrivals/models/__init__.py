"""Domain models for static schedules and realtime feeds."""

from transit_arrivals.models.gtfs import (
    EXCEPTION_ADDED,
    EXCEPTION_REMOVED,
    CalendarException,
    Stop,
    StopTime,
    Trip,
)
from transit_arrivals.models.realtime import (
    ArrivalInfo,
    ConnectionMode,
    TripUpdateRecord,
    VehiclePosition,
)

__all__ = [
    "EXCEPTION_ADDED",
    "EXCEPTION_REMOVED",
    "ArrivalInfo",
    "CalendarException",
    "ConnectionMode",
    "Stop",
    "StopTime",
    "Trip",
    "TripUpdateRecord",
    "VehiclePosition",
]
