"""Per-route arrival aggregation for a stop.

Merges the static schedule with realtime predictions into one entry per
route, ranked by the most imminent expected arrival.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from datetime import time as dt_time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from transit_arrivals.config import Settings, get_settings
from transit_arrivals.logging import get_logger
from transit_arrivals.models import ArrivalInfo, ConnectionMode

if TYPE_CHECKING:
    from transit_arrivals.services.gtfs_rt.snapshot import RealtimeSnapshotStore
    from transit_arrivals.services.gtfs_static.loader import StaticSchedule
    from transit_arrivals.services.matching.registry import StrictRouteResolver

logger = get_logger(__name__)

NO_ARRIVALS = "Nessun arrivo imminente"

SECONDS_PER_DAY = 86400


@dataclass(frozen=True, slots=True)
class ArrivalWindows:
    """Plausibility thresholds, in minutes."""

    imminent: int = 2
    past_tolerance: int = 2
    static_ahead: int = 120
    realtime_ahead: int = 90
    override_gap: int = 30
    route_horizon: int = 360

    @classmethod
    def from_settings(cls, settings: Settings) -> ArrivalWindows:
        return cls(
            imminent=settings.arrival_imminent_min,
            past_tolerance=settings.arrival_past_tolerance_min,
            static_ahead=settings.arrival_static_window_min,
            realtime_ahead=settings.arrival_rt_window_min,
            override_gap=settings.arrival_rt_override_gap_min,
            route_horizon=settings.arrival_rt_route_horizon_min,
        )


@dataclass(frozen=True, slots=True)
class ArrivalBoard:
    """One point-in-time read of a stop: the ranked entries and their display strings."""

    stop_id: str
    mode: ConnectionMode
    reference_epoch: int
    items: tuple[ArrivalInfo, ...]
    arrivals: tuple[str, ...]


def scheduled_epoch_near(arrival_sec: int, reference_epoch: int, tz: ZoneInfo) -> int:
    """Place a GTFS time of day on the service date closest to ``reference_epoch``.

    Candidates are the reference's local date and the days either side;
    on equal distance the earlier date wins.
    """
    feed_date = datetime.fromtimestamp(reference_epoch, tz).date()
    seconds = arrival_sec % SECONDS_PER_DAY
    time_of_day = dt_time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)

    candidates = [
        int(datetime.combine(feed_date + timedelta(days=delta), time_of_day, tzinfo=tz).timestamp())
        for delta in (-1, 0, 1)
    ]
    # min() keeps the first of equal distances
    return min(candidates, key=lambda epoch: abs(epoch - reference_epoch))


def format_arrival(info: ArrivalInfo, now: int, imminent_min: int = 2) -> str:
    """Render one route entry for display."""
    if info.predicted_epoch is None:
        minutes = max(0, (info.scheduled_epoch - now) // 60)
        return f"{info.route_id} - {minutes} min (statico)"

    minutes = max(0, (info.predicted_epoch - now) // 60)
    delay = info.delay_minutes or 0
    if delay > 0:
        status = f"ritardo di {delay} min"
    elif delay < 0:
        status = f"anticipo di {abs(delay)} min"
    else:
        status = "in orario"

    if minutes <= imminent_min:
        return f"{info.route_id} - In arrivo ({status})"
    return f"{info.route_id} - {minutes} min ({status})"


class ArrivalAggregator:
    """Computes the arrival board of a stop.

    Static indices are read without locking; the realtime store handles its
    own synchronization, so calls are safe from any thread.
    """

    def __init__(
        self,
        schedule: StaticSchedule,
        store: RealtimeSnapshotStore,
        resolver: StrictRouteResolver,
        windows: ArrivalWindows | None = None,
        timezone: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self._schedule = schedule
        self._store = store
        self._resolver = resolver
        self._windows = windows or ArrivalWindows.from_settings(settings)
        self._tz = ZoneInfo(timezone or settings.agency_timezone)
        self._clock = clock

    @property
    def windows(self) -> ArrivalWindows:
        return self._windows

    def feed_date(self, reference_epoch: int) -> date:
        return datetime.fromtimestamp(reference_epoch, self._tz).date()

    def compute_arrival_infos(
        self,
        stop_id: str,
        mode: ConnectionMode,
        reference_epoch: int | None = None,
        now: int | None = None,
    ) -> list[ArrivalInfo]:
        """Most imminent candidate per route, ordered by sort key.

        May raise on a corrupt reference epoch; `compute_board` is the guarded entry point.
        """
        stop_times = self._schedule.index.stop_times_for(stop_id)
        if not stop_times:
            return []

        if now is None:
            now = int(self._clock())
        reference = reference_epoch or now
        feed_date = self.feed_date(reference)
        w = self._windows

        earliest = now - w.past_tolerance * 60
        static_latest = now + w.static_ahead * 60
        realtime_latest = now + w.realtime_ahead * 60
        override_gap = w.override_gap * 60

        per_route: dict[str, ArrivalInfo] = {}
        skipped = {"unmatched": 0, "not_running": 0, "untimed": 0, "out_of_window": 0}

        for st in stop_times:
            trip = self._schedule.registry.match_by_trip_id(st.trip_id)
            if trip is None:
                skipped["unmatched"] += 1
                continue
            if not self._schedule.calendar.runs_on(trip.service_id, feed_date):
                skipped["not_running"] += 1
                continue
            if st.arrival_sec is None:
                skipped["untimed"] += 1
                continue

            scheduled = scheduled_epoch_near(st.arrival_sec, reference, self._tz)
            if not earliest <= scheduled <= static_latest:
                skipped["out_of_window"] += 1
                continue

            predicted: int | None = None
            if mode == ConnectionMode.LIVE:
                predicted = self._store.lookup(st.trip_id, stop_id)
                if predicted is not None and not earliest <= predicted <= realtime_latest:
                    logger.debug(
                        "Discarding implausible prediction",
                        trip_id=st.trip_id,
                        stop_id=stop_id,
                        predicted_epoch=predicted,
                        now=now,
                    )
                    predicted = None

            candidate = ArrivalInfo(
                route_id=trip.route_id,
                trip_id=trip.trip_id,
                headsign=trip.headsign,
                stop_id=stop_id,
                scheduled_epoch=scheduled,
                predicted_epoch=predicted,
            )

            current = per_route.get(trip.route_id)
            if current is None or candidate.sort_key < current.sort_key:
                per_route[trip.route_id] = candidate
            elif (
                candidate.is_realtime
                and not current.is_realtime
                and candidate.sort_key - current.sort_key < override_gap
            ):
                per_route[trip.route_id] = candidate

        logger.debug(
            "Arrivals computed",
            stop_id=stop_id,
            mode=mode.value,
            feed_date=feed_date.isoformat(),
            route_count=len(per_route),
            **skipped,
        )
        return sorted(per_route.values(), key=lambda info: info.sort_key)

    def compute_board(
        self,
        stop_id: str,
        mode: ConnectionMode,
        reference_epoch: int | None = None,
    ) -> ArrivalBoard:
        """Entries and display strings from a single computation.

        Never raises: any fault is logged and yields an empty board whose
        only display string is the sentinel.
        """
        now = int(self._clock())
        reference = reference_epoch or now
        try:
            infos = self.compute_arrival_infos(stop_id, mode, reference, now=now)
        except Exception as exc:
            logger.error(
                "Arrival computation failed",
                stop_id=stop_id,
                reference_epoch=reference,
                exc_info=exc,
            )
            infos = []

        arrivals = tuple(format_arrival(info, now, self._windows.imminent) for info in infos)
        return ArrivalBoard(
            stop_id=stop_id,
            mode=mode,
            reference_epoch=reference,
            items=tuple(infos),
            arrivals=arrivals or (NO_ARRIVALS,),
        )

    def compute_arrivals(
        self,
        stop_id: str,
        mode: ConnectionMode,
        reference_epoch: int | None = None,
    ) -> list[str]:
        """Formatted arrival board; the sentinel when nothing is due."""
        return list(self.compute_board(stop_id, mode, reference_epoch).arrivals)

    def realtime_arrivals_by_route(self, stop_id: str, limit: int = 12) -> dict[str, int]:
        """Route -> most imminent prediction at a stop, strictly attributed.

        Feed trip ids are resolved to routes only by exact or prefix-stripped
        match. Predictions that cannot be attributed, or that lie further than
        the route horizon from now, are left out.
        """
        now = int(self._clock())
        horizon = self._windows.route_horizon * 60
        by_route: dict[str, int] = {}

        for feed_trip_id, epoch in self._store.raw_arrivals_for_stop(stop_id).items():
            if epoch <= 0 or abs(epoch - now) > horizon:
                continue
            route_id = self._resolver.resolve(feed_trip_id)
            if route_id is None:
                continue
            existing = by_route.get(route_id)
            if existing is None or epoch < existing:
                by_route[route_id] = epoch

        ranked = sorted(by_route.items(), key=lambda item: item[1])[:limit]
        return dict(ranked)
