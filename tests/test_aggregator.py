"""Tests for ArrivalAggregator - windows, override rule, formatting."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from transit_arrivals.models import ArrivalInfo, ConnectionMode, TripUpdateRecord
from transit_arrivals.services.arrivals.aggregator import (
    NO_ARRIVALS,
    ArrivalAggregator,
    ArrivalWindows,
    format_arrival,
    scheduled_epoch_near,
)
from transit_arrivals.services.gtfs_rt.snapshot import RealtimeSnapshotStore
from transit_arrivals.services.gtfs_static.loader import StaticSchedule
from transit_arrivals.services.matching.registry import StrictRouteResolver

from .fixtures.gtfs_fixture import FIXED_NOW, ROME, FrozenClock, local_epoch

LIVE = ConnectionMode.LIVE
OFFLINE = ConnectionMode.OFFLINE
NEXT_DAY = date(2025, 3, 13)


@pytest.fixture
def store() -> RealtimeSnapshotStore:
    return RealtimeSnapshotStore()


@pytest.fixture
def aggregator(
    schedule: StaticSchedule, store: RealtimeSnapshotStore, clock: FrozenClock
) -> ArrivalAggregator:
    return ArrivalAggregator(
        schedule,
        store,
        StrictRouteResolver(schedule.registry),
        windows=ArrivalWindows(),
        timezone="Europe/Rome",
        clock=clock,
    )


def _predict(store: RealtimeSnapshotStore, *records: tuple[str, str, int]) -> None:
    store.replace([TripUpdateRecord(*record) for record in records])


def _route(infos: list[ArrivalInfo], route_id: str) -> ArrivalInfo:
    return next(info for info in infos if info.route_id == route_id)


class TestScheduledEpochNear:
    """Placement of a GTFS time of day on a calendar date."""

    def test_same_day(self) -> None:
        assert scheduled_epoch_near(8 * 3600, FIXED_NOW, ROME) == local_epoch(8)

    def test_after_midnight_time_maps_to_time_of_day(self) -> None:
        reference = local_epoch(0, 30)
        assert scheduled_epoch_near(25 * 3600, reference, ROME) == local_epoch(1)

    def test_late_evening_picks_next_day(self) -> None:
        reference = local_epoch(23, 50)
        assert scheduled_epoch_near(10 * 60, reference, ROME) == local_epoch(0, 10, day=NEXT_DAY)

    def test_early_morning_picks_previous_day(self) -> None:
        reference = local_epoch(0, 5)
        expected = local_epoch(23, 55, day=date(2025, 3, 11))
        assert scheduled_epoch_near(23 * 3600 + 55 * 60, reference, ROME) == expected

    def test_tie_prefers_earlier_date(self) -> None:
        reference = local_epoch(12)
        assert scheduled_epoch_near(0, reference, ROME) == local_epoch(0)


class TestFormatArrival:
    """Display strings."""

    def test_static(self) -> None:
        info = ArrivalInfo("64", "t", "San Pietro", "70001", FIXED_NOW + 300)
        assert format_arrival(info, FIXED_NOW) == "64 - 5 min (statico)"

    def test_static_in_the_past_clamped(self) -> None:
        info = ArrivalInfo("64", "t", "San Pietro", "70001", FIXED_NOW - 90)
        assert format_arrival(info, FIXED_NOW) == "64 - 0 min (statico)"

    def test_delay(self) -> None:
        info = ArrivalInfo("64", "t", "", "70001", FIXED_NOW + 300, FIXED_NOW + 540)
        assert format_arrival(info, FIXED_NOW) == "64 - 9 min (ritardo di 4 min)"

    def test_early(self) -> None:
        info = ArrivalInfo("64", "t", "", "70001", FIXED_NOW + 900, FIXED_NOW + 600)
        assert format_arrival(info, FIXED_NOW) == "64 - 10 min (anticipo di 5 min)"

    def test_on_time_within_a_minute(self) -> None:
        info = ArrivalInfo("64", "t", "", "70001", FIXED_NOW + 600, FIXED_NOW + 650)
        assert format_arrival(info, FIXED_NOW) == "64 - 10 min (in orario)"

    def test_imminent(self) -> None:
        info = ArrivalInfo("H", "t", "", "70001", FIXED_NOW + 60, FIXED_NOW + 120)
        assert format_arrival(info, FIXED_NOW) == "H - In arrivo (ritardo di 1 min)"

    def test_imminent_threshold_configurable(self) -> None:
        info = ArrivalInfo("H", "t", "", "70001", FIXED_NOW + 240, FIXED_NOW + 240)
        assert format_arrival(info, FIXED_NOW, imminent_min=4) == "H - In arrivo (in orario)"


class TestComputeArrivalsStatic:
    """Schedule-only boards."""

    def test_one_entry_per_route_most_imminent_first(self, aggregator: ArrivalAggregator) -> None:
        assert aggregator.compute_arrivals("70001", LIVE) == [
            "64 - 5 min (statico)",
            "H - 10 min (statico)",
        ]

    def test_infos_carry_trip_details(self, aggregator: ArrivalAggregator) -> None:
        infos = aggregator.compute_arrival_infos("70001", LIVE)

        assert [(i.route_id, i.trip_id, i.headsign) for i in infos] == [
            ("64", "64-A-0800", "San Pietro"),
            ("H", "H-0805", "Capolinea H"),
        ]
        assert infos[0].scheduled_epoch == local_epoch(8)

    def test_unknown_stop_returns_sentinel(self, aggregator: ArrivalAggregator) -> None:
        assert aggregator.compute_arrival_infos("99999", LIVE) == []
        assert aggregator.compute_arrivals("99999", LIVE) == [NO_ARRIVALS]

    def test_service_not_running_on_feed_date(self, aggregator: ArrivalAggregator) -> None:
        reference = local_epoch(7, 55, day=NEXT_DAY)
        assert aggregator.compute_arrival_infos("70001", LIVE, reference_epoch=reference) == []

    def test_feed_date_from_reference(self, aggregator: ArrivalAggregator) -> None:
        assert aggregator.feed_date(local_epoch(23, 59)) == date(2025, 3, 12)
        assert aggregator.feed_date(local_epoch(0, 1, day=NEXT_DAY)) == NEXT_DAY


class TestStaticWindow:
    """now - 2 min <= scheduled <= now + 120 min."""

    def test_past_edge_included(self, aggregator: ArrivalAggregator, clock: FrozenClock) -> None:
        clock.now = local_epoch(8, 2)
        infos = aggregator.compute_arrival_infos("70001", OFFLINE)
        assert infos[0].trip_id == "64-A-0800"

    def test_past_edge_exceeded(self, aggregator: ArrivalAggregator, clock: FrozenClock) -> None:
        clock.now = local_epoch(8, 2, 1)
        infos = aggregator.compute_arrival_infos("70001", OFFLINE)
        assert _route(infos, "64").trip_id == "64-R-0830"

    def test_future_edge_included(self, aggregator: ArrivalAggregator, clock: FrozenClock) -> None:
        clock.now = local_epoch(6)
        infos = aggregator.compute_arrival_infos("70001", OFFLINE)
        assert [i.route_id for i in infos] == ["64"]

    def test_future_edge_exceeded(self, aggregator: ArrivalAggregator, clock: FrozenClock) -> None:
        clock.now = local_epoch(5, 59, 59)
        assert aggregator.compute_arrival_infos("70001", OFFLINE) == []


class TestRealtime:
    """Predictions merged into the board."""

    def test_delay_reported(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("0#64-A-0800", "70001", local_epoch(8, 4)))
        assert aggregator.compute_arrivals("70001", LIVE) == [
            "64 - 9 min (ritardo di 4 min)",
            "H - 10 min (statico)",
        ]

    def test_offline_ignores_predictions(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("64-A-0800", "70001", local_epoch(8, 4)))
        assert aggregator.compute_arrivals("70001", OFFLINE)[0] == "64 - 5 min (statico)"

    def test_prediction_matched_across_spellings(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("64_a_0800", "70004", local_epoch(8, 16)))
        info = aggregator.compute_arrival_infos("70004", LIVE)[0]
        assert info.predicted_epoch == local_epoch(8, 16)

    def test_prediction_for_other_stop_ignored(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("64-A-0800", "70003", local_epoch(8, 11)))
        info = aggregator.compute_arrival_infos("70004", LIVE)[0]
        assert info.predicted_epoch is None

    def test_imminent_and_early(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("64-A-0800", "70004", FIXED_NOW + 60))
        assert aggregator.compute_arrivals("70004", LIVE) == ["64 - In arrivo (anticipo di 18 min)"]

    def test_on_time(self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore) -> None:
        _predict(store, ("64-A-0800", "70004", local_epoch(8, 14, 50)))
        assert aggregator.compute_arrivals("70004", LIVE) == ["64 - 19 min (in orario)"]


class TestRealtimeWindow:
    """now - 2 min <= predicted <= now + 90 min; outside it the prediction is dropped."""

    @pytest.mark.parametrize(
        ("offset", "kept"),
        [
            (-120, True),
            (-121, False),
            (90 * 60, True),
            (90 * 60 + 1, False),
        ],
    )
    def test_edges(
        self,
        aggregator: ArrivalAggregator,
        store: RealtimeSnapshotStore,
        offset: int,
        kept: bool,
    ) -> None:
        _predict(store, ("64-A-0800", "70004", FIXED_NOW + offset))
        info = aggregator.compute_arrival_infos("70004", LIVE)[0]

        assert info.trip_id == "64-A-0800"
        assert info.is_realtime is kept
        if not kept:
            assert info.sort_key == local_epoch(8, 14)


class TestOverrideRule:
    """A realtime candidate may displace an earlier static-only one within 30 min."""

    @pytest.mark.parametrize(
        ("gap_sec", "replaced"),
        [
            (29 * 60, True),
            (30 * 60 - 1, True),
            (30 * 60, False),
            (31 * 60, False),
        ],
    )
    def test_gap(
        self,
        aggregator: ArrivalAggregator,
        store: RealtimeSnapshotStore,
        gap_sec: int,
        replaced: bool,
    ) -> None:
        # incumbent: 64-A-0800 static at 08:00
        _predict(store, ("64-R-0830", "70001", local_epoch(8) + gap_sec))
        info = _route(aggregator.compute_arrival_infos("70001", LIVE), "64")

        if replaced:
            assert info.trip_id == "64-R-0830"
            assert info.predicted_epoch == local_epoch(8) + gap_sec
        else:
            assert info.trip_id == "64-A-0800"
            assert not info.is_realtime

    def test_realtime_incumbent_not_displaced_by_later_realtime(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(
            store,
            ("64-A-0800", "70001", local_epoch(8, 1)),
            ("64-R-0830", "70001", local_epoch(8, 10)),
        )
        info = aggregator.compute_arrival_infos("70001", LIVE)[0]
        assert info.trip_id == "64-A-0800"

    def test_lower_sort_key_always_wins(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("64-R-0830", "70001", local_epoch(7, 58)))
        info = aggregator.compute_arrival_infos("70001", LIVE)[0]
        assert info.trip_id == "64-R-0830"
        assert info.delay_minutes == -38


class TestFailureHandling:
    """Unexpected faults degrade to the sentinel."""

    def test_store_failure_returns_sentinel(
        self, schedule: StaticSchedule, clock: FrozenClock
    ) -> None:
        store = MagicMock()
        store.lookup.side_effect = RuntimeError("boom")
        aggregator = ArrivalAggregator(
            schedule,
            store,
            StrictRouteResolver(schedule.registry),
            timezone="Europe/Rome",
            clock=clock,
        )
        assert aggregator.compute_arrivals("70001", LIVE) == [NO_ARRIVALS]

    def test_unrepresentable_reference_epoch_gives_empty_board(
        self, aggregator: ArrivalAggregator
    ) -> None:
        board = aggregator.compute_board("70001", LIVE, reference_epoch=10**16)

        assert board.items == ()
        assert board.arrivals == (NO_ARRIVALS,)
        assert board.reference_epoch == 10**16


class TestComputeBoard:
    """Entries and strings come from the same computation."""

    def test_strings_match_items(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(store, ("64-A-0800", "70001", local_epoch(8, 4)))

        board = aggregator.compute_board("70001", LIVE)

        assert [info.route_id for info in board.items] == ["64", "H"]
        assert board.arrivals == ("64 - 9 min (ritardo di 4 min)", "H - 10 min (statico)")
        assert board.mode is LIVE
        assert board.reference_epoch == FIXED_NOW

    def test_empty_board_has_sentinel(self, aggregator: ArrivalAggregator) -> None:
        board = aggregator.compute_board("99999", OFFLINE)
        assert board.items == ()
        assert board.arrivals == (NO_ARRIVALS,)


class TestRealtimeArrivalsByRoute:
    """Strict route attribution of raw feed predictions."""

    def test_most_imminent_per_route(
        self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore
    ) -> None:
        _predict(
            store,
            ("0#64-A-0800", "70001", local_epoch(8, 1)),
            ("64-A-0900", "70001", local_epoch(9, 2)),
            ("H-0805", "70001", local_epoch(8, 6)),
            ("64_A_0800", "70001", local_epoch(7, 56)),
            ("UNKNOWN", "70001", local_epoch(7, 57)),
        )
        assert aggregator.realtime_arrivals_by_route("70001") == {
            "64": local_epoch(8, 1),
            "H": local_epoch(8, 6),
        }

    def test_limit(self, aggregator: ArrivalAggregator, store: RealtimeSnapshotStore) -> None:
        _predict(
            store,
            ("64-A-0800", "70001", local_epoch(8, 1)),
            ("H-0805", "70001", local_epoch(8, 6)),
        )
        assert list(aggregator.realtime_arrivals_by_route("70001", limit=1)) == ["64"]

    @pytest.mark.parametrize(("offset", "included"), [(6 * 3600, True), (6 * 3600 + 1, False)])
    def test_horizon(
        self,
        aggregator: ArrivalAggregator,
        store: RealtimeSnapshotStore,
        offset: int,
        included: bool,
    ) -> None:
        _predict(store, ("H-0805", "70001", FIXED_NOW + offset))
        assert ("H" in aggregator.realtime_arrivals_by_route("70001")) is included
