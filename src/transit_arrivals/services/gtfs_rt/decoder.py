"""GTFS-RT protobuf decode layer."""

from __future__ import annotations

from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from transit_arrivals.logging import get_logger

logger = get_logger(__name__)


class FeedDecodeError(Exception):
    """Raised when a feed body is not a decodable FeedMessage."""


class GtfsRtDecoder:
    """Decodes raw protobuf bytes into GTFS-RT FeedMessage objects."""

    @staticmethod
    def decode(data: bytes, feed_type: str, poll_id: str) -> gtfs_realtime_pb2.FeedMessage:
        """Decode protobuf bytes into a FeedMessage.

        Raises:
            FeedDecodeError: If the body is empty or protobuf parsing fails.
        """
        if not data:
            msg = f"Empty {feed_type} payload"
            logger.error(msg, feed_type=feed_type, poll_id=poll_id)
            raise FeedDecodeError(msg)

        feed = gtfs_realtime_pb2.FeedMessage()
        try:
            feed.ParseFromString(data)
        except DecodeError as exc:
            msg = f"Failed to decode {feed_type} protobuf"
            logger.error(msg, feed_type=feed_type, poll_id=poll_id, error=str(exc))
            raise FeedDecodeError(msg) from exc

        logger.debug(
            "GTFS-RT feed decoded",
            feed_type=feed_type,
            poll_id=poll_id,
            entity_count=len(feed.entity),
            feed_timestamp=GtfsRtDecoder.get_feed_timestamp(feed),
            gtfs_rt_version=feed.header.gtfs_realtime_version,
        )
        return feed

    @staticmethod
    def get_feed_timestamp(feed: gtfs_realtime_pb2.FeedMessage) -> int:
        """Header timestamp in epoch seconds, or 0 if not set.

        Millisecond headers are converted like any other feed time.
        """
        raw = feed.header.timestamp if feed.header.HasField("timestamp") else 0
        if raw >= 10**12:
            return raw // 1000
        return raw

    @staticmethod
    def get_entity_count(feed: gtfs_realtime_pb2.FeedMessage) -> int:
        return len(feed.entity)
