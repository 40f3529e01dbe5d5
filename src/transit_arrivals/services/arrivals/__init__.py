"""Arrival board computation."""

from transit_arrivals.services.arrivals.aggregator import (
    NO_ARRIVALS,
    ArrivalAggregator,
    ArrivalBoard,
    ArrivalWindows,
    format_arrival,
    scheduled_epoch_near,
)

__all__ = [
    "NO_ARRIVALS",
    "ArrivalAggregator",
    "ArrivalBoard",
    "ArrivalWindows",
    "format_arrival",
    "scheduled_epoch_near",
]
