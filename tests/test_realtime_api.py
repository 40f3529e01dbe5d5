"""Tests for realtime control, status and vehicle endpoints."""

from __future__ import annotations

from httpx import AsyncClient

from transit_arrivals.models import ConnectionMode, VehiclePosition
from transit_arrivals.services.engine import TransitEngine


class TestRealtimeStatus:
    async def test_status(self, client: AsyncClient) -> None:
        resp = await client.get("/realtime/status")

        assert resp.status_code == 200
        body = resp.json()
        assert body["running"] is False
        assert body["mode"] == "live"
        assert body["poll_count"] == 0
        assert body["engine"]["loaded"] is True
        assert body["engine"]["realtime_trips"] == 0

    async def test_status_without_schedule(self, client_no_schedule: AsyncClient) -> None:
        body = (await client_no_schedule.get("/realtime/status")).json()
        assert body["engine"]["loaded"] is False


class TestMode:
    async def test_switch_to_offline(self, client: AsyncClient, engine: TransitEngine) -> None:
        resp = await client.put("/realtime/mode", json={"mode": "offline"})

        assert resp.status_code == 200
        assert resp.json() == {"mode": "offline"}
        assert engine.mode is ConnectionMode.OFFLINE

    async def test_invalid_mode(self, client: AsyncClient) -> None:
        resp = await client.put("/realtime/mode", json={"mode": "sometimes"})
        assert resp.status_code == 422


class TestRunOnce:
    async def test_offline_cycle_publishes_simulated_vehicles(
        self, client: AsyncClient, engine: TransitEngine
    ) -> None:
        engine.set_mode(ConnectionMode.OFFLINE)

        resp = await client.post("/realtime/run-once")

        assert resp.status_code == 200
        body = resp.json()
        assert body["mode"] == "offline"
        assert body["poll_count"] == 1
        assert body["feeds"]["simulated_positions"]["record_count"] == 11

        vehicles = (await client.get("/vehicles")).json()
        assert vehicles["mode"] == "offline"
        assert vehicles["count"] == 11

    async def test_503_without_schedule(self, client_no_schedule: AsyncClient) -> None:
        resp = await client_no_schedule.post("/realtime/run-once")
        assert resp.status_code == 503


class TestVehicles:
    async def test_filter_and_limit(self, client: AsyncClient, engine: TransitEngine) -> None:
        engine.update_vehicle_positions(
            [
                VehiclePosition("64-A-0800", "bus_1", 41.9009, 12.5016, 1),
                VehiclePosition("64-A-0800", "bus_2", 41.9022, 12.4963, 2),
                VehiclePosition("H-0805", "bus_3", 41.9037, 12.4886),
            ]
        )

        by_trip = (await client.get("/vehicles", params={"trip_id": "64-A-0800"})).json()
        assert [item["vehicle_id"] for item in by_trip["items"]] == ["bus_1", "bus_2"]

        limited = (await client.get("/vehicles", params={"limit": 1})).json()
        assert limited["count"] == 1

        everything = (await client.get("/vehicles")).json()
        assert everything["items"][2] == {
            "trip_id": "H-0805",
            "vehicle_id": "bus_3",
            "lat": 41.9037,
            "lon": 12.4886,
            "stop_sequence": -1,
        }

    async def test_empty(self, client: AsyncClient) -> None:
        body = (await client.get("/vehicles")).json()
        assert body == {"mode": "live", "items": [], "count": 0}
