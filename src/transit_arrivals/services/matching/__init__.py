"""Trip identity normalization and static trip resolution."""

from transit_arrivals.services.matching.registry import StrictRouteResolver, TripRegistry
from transit_arrivals.services.matching.trip_ids import (
    normalize_feed_trip_id,
    normalize_trip_id,
    ordered_trip_id_variants,
    trip_id_variants,
)

__all__ = [
    "StrictRouteResolver",
    "TripRegistry",
    "normalize_feed_trip_id",
    "normalize_trip_id",
    "ordered_trip_id_variants",
    "trip_id_variants",
]
