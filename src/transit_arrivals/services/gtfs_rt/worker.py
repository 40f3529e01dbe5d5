"""GTFS-RT polling worker feeding the transit engine."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any

from transit_arrivals.config import get_settings
from transit_arrivals.logging import get_logger
from transit_arrivals.models import ConnectionMode
from transit_arrivals.services.engine import TransitEngine, get_engine
from transit_arrivals.services.gtfs_rt.decoder import FeedDecodeError, GtfsRtDecoder
from transit_arrivals.services.gtfs_rt.fetcher import (
    FeedFetchError,
    FeedNotModifiedError,
    GtfsRtFetcher,
)
from transit_arrivals.services.gtfs_rt.normalizer import GtfsRtNormalizer, plausible_feed_timestamp

logger = get_logger(__name__)

# Feed type constants
FEED_TRIP_UPDATES = "trip_updates"
FEED_VEHICLE_POSITIONS = "vehicle_positions"


class RealtimeWorker:
    """Polls GTFS-RT feeds on a schedule and pushes them into the engine.

    A feed that fails to download or decode, or that yields no usable
    records, leaves the engine's previous state untouched. In offline mode
    nothing is fetched and simulated positions are published instead.

    Usage:
        worker = RealtimeWorker(engine)
        await worker.start()   # launches background task
        await worker.stop()    # cancels background task

        # Or run a single poll cycle:
        report = await worker.run_once()
    """

    def __init__(
        self,
        engine: TransitEngine | None = None,
        fetcher: GtfsRtFetcher | None = None,
    ) -> None:
        settings = get_settings()
        self._engine = engine or get_engine()
        self._poll_interval = settings.gtfs_rt_poll_interval_sec
        self._stale_threshold = settings.stale_feed_threshold_sec
        self._max_clock_skew = settings.max_feed_clock_skew_sec
        self._fetcher = fetcher or GtfsRtFetcher(
            timeout_sec=settings.gtfs_rt_fetch_timeout_sec,
            max_retries=settings.gtfs_rt_max_retries,
            backoff_base=settings.gtfs_rt_backoff_base,
        )
        self._decoder = GtfsRtDecoder()
        self._normalizer = GtfsRtNormalizer()

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._poll_count = 0
        self._last_poll_at: datetime | None = None
        self._last_success_at: datetime | None = None
        self._last_report: dict[str, Any] | None = None
        self._feed_urls = {
            FEED_TRIP_UPDATES: settings.gtfs_trip_updates_url,
            FEED_VEHICLE_POSITIONS: settings.gtfs_vehicle_positions_url,
        }

    @property
    def engine(self) -> TransitEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def poll_count(self) -> int:
        return self._poll_count

    @property
    def last_poll_at(self) -> datetime | None:
        return self._last_poll_at

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            logger.warning("Worker already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(
            "GTFS-RT worker started",
            poll_interval_sec=self._poll_interval,
            mode=self._engine.mode.value,
        )

    async def stop(self) -> None:
        """Stop the background polling loop."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("GTFS-RT worker stopped")

    async def run_once(self) -> dict[str, Any]:
        """Execute a single refresh cycle.

        Returns:
            Report dict with per-feed results.
        """
        poll_id = str(uuid.uuid4())[:8]
        self._poll_count += 1
        self._last_poll_at = datetime.now(timezone.utc)
        mode = self._engine.mode

        logger.info(
            "Starting poll cycle",
            poll_id=poll_id,
            poll_count=self._poll_count,
            mode=mode.value,
        )

        report: dict[str, Any] = {
            "poll_id": poll_id,
            "poll_count": self._poll_count,
            "mode": mode.value,
            "started_at": self._last_poll_at.isoformat(),
            "feeds": {},
        }

        if not self._engine.is_loaded:
            logger.warning("Static schedule not loaded, skipping poll cycle", poll_id=poll_id)
            report["skipped"] = "schedule_not_loaded"
        elif mode == ConnectionMode.OFFLINE:
            report["feeds"]["simulated_positions"] = self._publish_simulated_positions()
        else:
            report["feeds"][FEED_TRIP_UPDATES] = await self._refresh_trip_updates(poll_id)
            report["feeds"][FEED_VEHICLE_POSITIONS] = await self._refresh_vehicle_positions(
                poll_id
            )
            if any(feed["status"] == "ok" for feed in report["feeds"].values()):
                self._last_success_at = datetime.now(timezone.utc)

        report["ended_at"] = datetime.now(timezone.utc).isoformat()
        self._last_report = report
        logger.info("Poll cycle complete", poll_id=poll_id, report=report)
        return report

    async def get_status(self) -> dict[str, Any]:
        """Get current worker status for health/meta endpoints."""
        return {
            "running": self._running,
            "mode": self._engine.mode.value,
            "poll_count": self._poll_count,
            "last_poll_at": self._last_poll_at.isoformat() if self._last_poll_at else None,
            "last_success_at": (
                self._last_success_at.isoformat() if self._last_success_at else None
            ),
            "poll_interval_sec": self._poll_interval,
            "stale_threshold_sec": self._stale_threshold,
            "last_report": self._last_report,
        }

    async def _poll_loop(self) -> None:
        """Main polling loop that runs until stopped."""
        while self._running:
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Poll cycle failed unexpectedly", exc_info=exc)

            try:
                await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                break

    def _new_feed_result(self) -> dict[str, Any]:
        return {
            "status": "error",
            "entity_count": 0,
            "record_count": 0,
            "feed_timestamp": None,
            "rejected_feed_timestamp": None,
            "stale": False,
            "error": None,
        }

    async def _fetch_and_decode(
        self, feed_type: str, poll_id: str, result: dict[str, Any], has_state: bool
    ) -> Any | None:
        """Fetch and decode one feed, recording failures in ``result``.

        Without state built from an earlier body a conditional request could
        be answered 304 forever, so validators are dropped first.
        """
        url = self._feed_urls[feed_type]
        if not has_state:
            self._fetcher.forget_validators(url)

        try:
            data, _feed_hash = await self._fetcher.fetch(url, feed_type, poll_id)
            feed = self._decoder.decode(data, feed_type, poll_id)
        except FeedNotModifiedError:
            logger.info(
                "Feed unchanged, keeping previous state", feed_type=feed_type, poll_id=poll_id
            )
            result["status"] = "unchanged"
            return None
        except (FeedFetchError, FeedDecodeError) as exc:
            result["error"] = str(exc)
            logger.error(
                "Feed refresh failed, keeping previous state",
                feed_type=feed_type,
                poll_id=poll_id,
                error=str(exc),
            )
            return None

        now = self._engine.now()
        raw_ts = self._decoder.get_feed_timestamp(feed)
        feed_ts = plausible_feed_timestamp(raw_ts, now, self._max_clock_skew)
        result["entity_count"] = self._decoder.get_entity_count(feed)
        result["feed_timestamp"] = feed_ts

        if raw_ts and feed_ts is None:
            logger.warning(
                "Implausible feed header timestamp, using local clock",
                feed_type=feed_type,
                poll_id=poll_id,
                header_timestamp=raw_ts,
                now=now,
            )
            result["rejected_feed_timestamp"] = raw_ts

        if feed_ts:
            age_sec = now - feed_ts
            if age_sec > self._stale_threshold:
                logger.warning(
                    "Stale GTFS-RT feed detected",
                    feed_type=feed_type,
                    poll_id=poll_id,
                    feed_age_sec=int(age_sec),
                    threshold_sec=self._stale_threshold,
                )
                result["stale"] = True
        return feed

    async def _refresh_trip_updates(self, poll_id: str) -> dict[str, Any]:
        result = self._new_feed_result()
        feed = await self._fetch_and_decode(
            FEED_TRIP_UPDATES, poll_id, result, has_state=not self._engine.store.is_empty
        )
        if feed is None:
            return result

        reference_epoch = result["feed_timestamp"] or self._engine.now()
        records = self._normalizer.normalize_trip_updates(
            feed, self._engine.schedule.index, reference_epoch
        )
        result["record_count"] = len(records)

        if not records:
            logger.warning(
                "Trip update feed yielded no usable records, keeping previous snapshot",
                poll_id=poll_id,
                entity_count=result["entity_count"],
            )
            result["status"] = "empty"
            return result

        self._engine.update_realtime_arrivals(records, feed_timestamp=reference_epoch)
        result["status"] = "ok"
        return result

    async def _refresh_vehicle_positions(self, poll_id: str) -> dict[str, Any]:
        result = self._new_feed_result()
        has_positions = bool(self._engine.vehicle_positions)
        feed = await self._fetch_and_decode(
            FEED_VEHICLE_POSITIONS, poll_id, result, has_state=has_positions
        )
        if feed is None:
            return result

        positions = self._normalizer.normalize_vehicle_positions(feed)
        result["record_count"] = len(positions)

        if not positions:
            logger.warning(
                "Vehicle position feed yielded no usable records, keeping previous positions",
                poll_id=poll_id,
                entity_count=result["entity_count"],
            )
            result["status"] = "empty"
            return result

        self._engine.update_vehicle_positions(positions)
        result["status"] = "ok"
        return result

    def _publish_simulated_positions(self) -> dict[str, Any]:
        positions = self._engine.simulator.simulate_all_trips()
        self._engine.update_vehicle_positions(positions)
        return {"status": "ok", "record_count": len(positions)}


# Singleton instance for the app lifecycle
_worker_instance: RealtimeWorker | None = None


def get_worker() -> RealtimeWorker:
    """Get or create the singleton worker instance."""
    global _worker_instance
    if _worker_instance is None:
        _worker_instance = RealtimeWorker()
    return _worker_instance


def reset_worker() -> None:
    """Reset the singleton (for testing)."""
    global _worker_instance
    _worker_instance = None
