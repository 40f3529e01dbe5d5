"""GTFS-RT normalizer: FeedMessage entities to trip-update and vehicle records.

All wire-format quirks (schedule relationships, millisecond epochs,
micro-degree coordinates) are absorbed here so matching and aggregation only
ever see clean records.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from google.transit import gtfs_realtime_pb2

from transit_arrivals.logging import get_logger
from transit_arrivals.models import TripUpdateRecord, VehiclePosition
from transit_arrivals.services.gtfs_rt.decoder import FeedDecodeError, GtfsRtDecoder
from transit_arrivals.services.matching.trip_ids import normalize_trip_id

if TYPE_CHECKING:
    from transit_arrivals.services.gtfs_static.index import StopTripIndex

logger = get_logger(__name__)

MILLIS_THRESHOLD = 10**12
SECONDS_THRESHOLD = 10**9
MICRO_DEGREES = 1_000_000.0

_StopTimeUpdate = gtfs_realtime_pb2.TripUpdate.StopTimeUpdate
IGNORED_STOP_RELATIONSHIPS = frozenset(
    {
        _StopTimeUpdate.SKIPPED,
        _StopTimeUpdate.NO_DATA,
    }
)


def normalize_epoch(raw: int | None) -> int | None:
    """Convert a feed timestamp to epoch seconds.

    Values from 10**12 upward are milliseconds; values in [10**9, 10**12)
    are seconds; anything smaller is not a plausible wall-clock time.

    Examples:
        1700000000000 -> 1700000000
        1700000000 -> 1700000000
        86400 -> None
    """
    if raw is None or raw <= 0:
        return None
    if raw >= MILLIS_THRESHOLD:
        return raw // 1000
    if raw >= SECONDS_THRESHOLD:
        return raw
    return None


def plausible_feed_timestamp(raw: int | None, now: int, max_skew_sec: int) -> int | None:
    """Feed header time in epoch seconds, or None when it cannot be trusted.

    A header must be a real epoch (see `normalize_epoch`) and lie within
    ``max_skew_sec`` of ``now``; otherwise the local clock is the reference.
    """
    epoch = normalize_epoch(raw)
    if epoch is None or abs(epoch - now) > max_skew_sec:
        return None
    return epoch


def _valid_coordinates(lat: float, lon: float) -> bool:
    return abs(lat) <= 90.0 and abs(lon) <= 180.0


def normalize_coordinates(lat: float, lon: float) -> tuple[float, float] | None:
    """Return valid (lat, lon) degrees, undoing micro-degree encoding if needed."""
    if _valid_coordinates(lat, lon):
        return lat, lon

    lat_c = lat / MICRO_DEGREES
    lon_c = lon / MICRO_DEGREES
    if _valid_coordinates(lat_c, lon_c):
        return lat_c, lon_c
    return None


def _predicted_time(stu: Any) -> int | None:
    """Arrival time when present, else departure time, normalized."""
    if stu.HasField("arrival") and stu.arrival.HasField("time"):
        return normalize_epoch(stu.arrival.time)
    if stu.HasField("departure") and stu.departure.HasField("time"):
        return normalize_epoch(stu.departure.time)
    return None


class GtfsRtNormalizer:
    """Normalizes decoded GTFS-RT entities into immutable records."""

    @staticmethod
    def normalize_trip_updates(
        feed: gtfs_realtime_pb2.FeedMessage | None,
        index: StopTripIndex | None = None,
        reference_epoch: int | None = None,
    ) -> list[TripUpdateRecord]:
        """Flatten TripUpdate entities into one record per usable stop update.

        Stop updates marked SKIPPED or NO_DATA are dropped. A missing stop id
        is recovered from the stop sequence through ``index`` (raw trip id
        first, then its normalized form). Records without a stop id or a
        plausible time are dropped.
        """
        if feed is None:
            return []

        records: list[TripUpdateRecord] = []
        dropped = 0

        for entity in feed.entity:
            if not entity.HasField("trip_update"):
                continue

            try:
                tu = entity.trip_update
                trip_id = tu.trip.trip_id if tu.HasField("trip") else ""
                if not trip_id:
                    dropped += len(tu.stop_time_update)
                    continue

                for stu in tu.stop_time_update:
                    if (
                        stu.HasField("schedule_relationship")
                        and stu.schedule_relationship in IGNORED_STOP_RELATIONSHIPS
                    ):
                        continue

                    stop_id = stu.stop_id.strip() if stu.HasField("stop_id") else ""
                    if not stop_id and index is not None and stu.HasField("stop_sequence"):
                        stop_id = _recover_stop_id(index, trip_id, stu.stop_sequence) or ""

                    arrival_epoch = _predicted_time(stu)
                    if not stop_id or arrival_epoch is None:
                        dropped += 1
                        continue

                    records.append(
                        TripUpdateRecord(
                            trip_id=trip_id,
                            stop_id=stop_id,
                            arrival_epoch=arrival_epoch,
                        )
                    )
            except (AttributeError, ValueError) as exc:
                logger.debug(
                    "Skipping malformed trip update entity", entity_id=entity.id, error=str(exc)
                )

        logger.info(
            "Trip updates normalized",
            record_count=len(records),
            dropped=dropped,
            reference_epoch=reference_epoch,
        )
        return records

    @staticmethod
    def normalize_vehicle_positions(
        feed: gtfs_realtime_pb2.FeedMessage | None,
    ) -> list[VehiclePosition]:
        """Extract vehicle positions with sanitized coordinates.

        Entities without a position, or whose coordinates stay out of range
        after micro-degree correction, are dropped.
        """
        if feed is None:
            return []

        positions: list[VehiclePosition] = []
        dropped = 0

        for entity in feed.entity:
            if not entity.HasField("vehicle"):
                continue

            vp = entity.vehicle
            if not vp.HasField("position"):
                dropped += 1
                continue

            coords = normalize_coordinates(vp.position.latitude, vp.position.longitude)
            if coords is None:
                logger.debug(
                    "Dropping vehicle with invalid coordinates",
                    entity_id=entity.id,
                    lat=vp.position.latitude,
                    lon=vp.position.longitude,
                )
                dropped += 1
                continue

            positions.append(
                VehiclePosition(
                    trip_id=vp.trip.trip_id if vp.HasField("trip") else "",
                    vehicle_id=vp.vehicle.id if vp.HasField("vehicle") else "",
                    lat=coords[0],
                    lon=coords[1],
                    stop_sequence=(
                        vp.current_stop_sequence if vp.HasField("current_stop_sequence") else -1
                    ),
                )
            )

        logger.info("Vehicle positions normalized", position_count=len(positions), dropped=dropped)
        return positions

    @classmethod
    def trip_updates_from_bytes(
        cls,
        data: bytes,
        index: StopTripIndex | None = None,
        reference_epoch: int | None = None,
    ) -> list[TripUpdateRecord]:
        """Decode wire bytes and delegate; undecodable input yields no records."""
        feed = _decode_or_none(data, "trip_updates")
        if feed is None:
            return []
        return cls.normalize_trip_updates(feed, index, reference_epoch)

    @classmethod
    def vehicle_positions_from_bytes(cls, data: bytes) -> list[VehiclePosition]:
        """Decode wire bytes and delegate; undecodable input yields no records."""
        feed = _decode_or_none(data, "vehicle_positions")
        if feed is None:
            return []
        return cls.normalize_vehicle_positions(feed)


def _recover_stop_id(index: StopTripIndex, trip_id: str, sequence: int) -> str | None:
    stop_id = index.stop_id_for(trip_id, sequence)
    if stop_id is not None:
        return stop_id

    normalized = normalize_trip_id(trip_id)
    if normalized is not None and normalized != trip_id:
        return index.stop_id_for(normalized, sequence)
    return None


def _decode_or_none(data: bytes, feed_type: str) -> gtfs_realtime_pb2.FeedMessage | None:
    if not data:
        return None
    try:
        return GtfsRtDecoder.decode(data, feed_type, poll_id="bytes")
    except FeedDecodeError:
        return None
