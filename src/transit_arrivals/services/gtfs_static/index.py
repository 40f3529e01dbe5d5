"""Stop and trip indices over the static stop_times table."""

from __future__ import annotations

from collections.abc import Iterable

from transit_arrivals.logging import get_logger
from transit_arrivals.models import StopTime
from transit_arrivals.services.matching.trip_ids import (
    normalize_trip_id,
    ordered_trip_id_variants,
)

logger = get_logger(__name__)


def _arrival_order(st: StopTime) -> tuple[bool, int]:
    # Absent times sort after every real time
    return (st.arrival_sec is None, st.arrival_sec or 0)


class StopTripIndex:
    """Read-only lookups built once from the full stop-time table.

    * stop id -> stop times ordered by scheduled arrival
    * (trip key, stop sequence) -> stop id, indexed under the normalized key
      and every variant of each static trip id, so a realtime update that
      only carries a stop sequence can still be placed at a stop whatever
      spelling the feed uses for the trip.
    """

    def __init__(self, stop_times: Iterable[StopTime]) -> None:
        by_stop: dict[str, list[StopTime]] = {}
        by_trip: dict[str, list[StopTime]] = {}
        seq_to_stop: dict[str, dict[int, str]] = {}

        for st in stop_times:
            by_stop.setdefault(st.stop_id, []).append(st)
            by_trip.setdefault(st.trip_id, []).append(st)

            for key in ordered_trip_id_variants(st.trip_id):
                seq_to_stop.setdefault(key, {})[st.stop_sequence] = st.stop_id

        self._by_stop = {
            stop_id: tuple(sorted(times, key=_arrival_order)) for stop_id, times in by_stop.items()
        }
        self._by_trip = {
            trip_id: tuple(sorted(times, key=lambda st: st.stop_sequence))
            for trip_id, times in by_trip.items()
        }
        self._seq_to_stop = seq_to_stop

        logger.info(
            "Stop/trip index built",
            stop_count=len(self._by_stop),
            trip_count=len(self._by_trip),
            trip_key_count=len(self._seq_to_stop),
        )

    def stop_times_for(self, stop_id: str) -> tuple[StopTime, ...]:
        return self._by_stop.get(stop_id, ())

    def stop_times_for_trip(self, trip_id: str) -> tuple[StopTime, ...]:
        return self._by_trip.get(trip_id, ())

    def trip_ids_for_stop(self, stop_id: str) -> list[str]:
        """Distinct trip ids calling at a stop, in arrival order."""
        return list(dict.fromkeys(st.trip_id for st in self.stop_times_for(stop_id)))

    def stop_id_for(self, trip_id: str | None, sequence: int) -> str | None:
        """Recover the stop a trip serves at ``sequence``.

        Tries the normalized key first, then each variant; first hit wins.
        """
        if not trip_id:
            return None

        norm = normalize_trip_id(trip_id)
        if norm is not None:
            stop_id = self._seq_to_stop.get(norm, {}).get(sequence)
            if stop_id is not None:
                return stop_id

        for key in ordered_trip_id_variants(trip_id):
            stop_id = self._seq_to_stop.get(key, {}).get(sequence)
            if stop_id is not None:
                logger.debug(
                    "Stop recovered via trip id variant",
                    trip_id=trip_id,
                    variant=key,
                    stop_sequence=sequence,
                    stop_id=stop_id,
                )
                return stop_id
        return None

    def stop_ids(self) -> list[str]:
        return list(self._by_stop)

    def is_known_stop(self, stop_id: str | None) -> bool:
        return stop_id is not None and stop_id in self._by_stop

    @property
    def stop_count(self) -> int:
        return len(self._by_stop)

    @property
    def trip_key_count(self) -> int:
        return len(self._seq_to_stop)
