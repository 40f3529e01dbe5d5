"""GTFS-Realtime decoding, snapshot storage and refresh worker."""

from transit_arrivals.services.gtfs_rt.decoder import FeedDecodeError, GtfsRtDecoder
from transit_arrivals.services.gtfs_rt.fetcher import (
    FeedFetchError,
    FeedNotModifiedError,
    GtfsRtFetcher,
)
from transit_arrivals.services.gtfs_rt.normalizer import (
    GtfsRtNormalizer,
    normalize_coordinates,
    normalize_epoch,
    plausible_feed_timestamp,
)
from transit_arrivals.services.gtfs_rt.simulator import StaticSimulator
from transit_arrivals.services.gtfs_rt.snapshot import RealtimeSnapshotStore

__all__ = [
    "FeedDecodeError",
    "FeedFetchError",
    "FeedNotModifiedError",
    "GtfsRtDecoder",
    "GtfsRtFetcher",
    "GtfsRtNormalizer",
    "RealtimeSnapshotStore",
    "StaticSimulator",
    "normalize_coordinates",
    "normalize_epoch",
    "plausible_feed_timestamp",
]
