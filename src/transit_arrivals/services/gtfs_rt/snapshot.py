"""In-memory store of the latest realtime predictions."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from transit_arrivals.logging import get_logger
from transit_arrivals.models import TripUpdateRecord
from transit_arrivals.services.matching.trip_ids import ordered_trip_id_variants

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    by_variant: dict[str, dict[str, int]] = field(default_factory=dict)
    by_stop: dict[str, dict[str, int]] = field(default_factory=dict)
    trip_count: int = 0
    replaced_at: datetime | None = None


class RealtimeSnapshotStore:
    """Holds one refresh cycle worth of trip-update predictions.

    Every ``replace`` builds a new snapshot off to the side and swaps it in
    under the lock, so a reader sees either the previous cycle or the new one
    in full. Snapshots are never merged: a trip missing from the latest feed
    has no prediction.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = _Snapshot()

    def replace(self, records: Iterable[TripUpdateRecord]) -> None:
        by_variant: dict[str, dict[str, int]] = {}
        by_stop: dict[str, dict[str, int]] = {}
        trips: set[str] = set()

        for record in records:
            trips.add(record.trip_id)
            for key in ordered_trip_id_variants(record.trip_id):
                by_variant.setdefault(key, {})[record.stop_id] = record.arrival_epoch
            by_stop.setdefault(record.stop_id, {})[record.trip_id] = record.arrival_epoch

        snapshot = _Snapshot(
            by_variant=by_variant,
            by_stop=by_stop,
            trip_count=len(trips),
            replaced_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._snapshot = snapshot

        logger.info(
            "Realtime snapshot replaced",
            trip_count=snapshot.trip_count,
            key_count=len(by_variant),
            stop_count=len(by_stop),
        )

    def _current(self) -> _Snapshot:
        with self._lock:
            return self._snapshot

    def lookup(self, trip_id: str | None, stop_id: str) -> int | None:
        """Predicted epoch for a trip at exactly ``stop_id``.

        Exact variant keys are tried first, then any stored key containing
        one of the query variants.
        """
        if not trip_id:
            return None

        snapshot = self._current()
        variants = ordered_trip_id_variants(trip_id)

        for variant in variants:
            epoch = snapshot.by_variant.get(variant, {}).get(stop_id)
            if epoch is not None:
                return epoch

        for key, by_stop in snapshot.by_variant.items():
            if stop_id not in by_stop:
                continue
            if any(variant in key for variant in variants):
                logger.debug(
                    "Realtime prediction matched by partial key",
                    trip_id=trip_id,
                    key=key,
                    stop_id=stop_id,
                )
                return by_stop[stop_id]
        return None

    def raw_arrivals_for_stop(self, stop_id: str) -> dict[str, int]:
        """Feed trip id (as spelled in the feed) -> predicted epoch at a stop."""
        return dict(self._current().by_stop.get(stop_id, {}))

    @property
    def trip_count(self) -> int:
        return self._current().trip_count

    @property
    def replaced_at(self) -> datetime | None:
        return self._current().replaced_at

    @property
    def is_empty(self) -> bool:
        return not self._current().by_variant
