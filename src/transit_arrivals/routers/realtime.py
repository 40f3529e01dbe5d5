"""Realtime refresh control, status and vehicle endpoints."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from transit_arrivals.logging import get_logger
from transit_arrivals.models import ConnectionMode
from transit_arrivals.routers.deps import LoadedEngine
from transit_arrivals.services.engine import get_engine
from transit_arrivals.services.gtfs_rt.worker import get_worker

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])


# --- Response schemas ---


class WorkerStatusResponse(BaseModel):
    """Worker state plus the engine's realtime state."""

    running: bool
    mode: ConnectionMode
    poll_count: int
    last_poll_at: Optional[str] = None
    last_success_at: Optional[str] = None
    poll_interval_sec: int
    engine: Dict[str, Any]


class RunOnceResponse(BaseModel):
    """Response for run-once endpoint."""

    poll_id: str
    poll_count: int
    mode: ConnectionMode
    started_at: str
    ended_at: str = ""
    skipped: Optional[str] = None
    feeds: Dict[str, Any]


class ModeRequest(BaseModel):
    mode: ConnectionMode


class ModeResponse(BaseModel):
    mode: ConnectionMode


class VehicleItem(BaseModel):
    trip_id: str
    vehicle_id: str
    lat: float
    lon: float
    stop_sequence: int


class VehiclesResponse(BaseModel):
    mode: ConnectionMode
    items: List[VehicleItem]
    count: int


# --- Endpoints ---


@router.get(
    "/realtime/status",
    response_model=WorkerStatusResponse,
    summary="Realtime worker and snapshot status",
)
async def realtime_status() -> dict[str, Any]:
    worker = get_worker()
    status = await worker.get_status()
    status["engine"] = get_engine().status()
    return status


@router.post(
    "/realtime/run-once",
    response_model=RunOnceResponse,
    summary="Trigger a single realtime refresh cycle",
)
async def run_once(_engine: LoadedEngine) -> dict[str, Any]:
    """Execute one refresh cycle immediately."""
    worker = get_worker()
    return await worker.run_once()


@router.put(
    "/realtime/mode",
    response_model=ModeResponse,
    summary="Switch between live and offline mode",
)
async def set_mode(body: ModeRequest) -> dict[str, Any]:
    engine = get_engine()
    engine.set_mode(body.mode)
    return {"mode": engine.mode}


@router.get(
    "/vehicles",
    response_model=VehiclesResponse,
    summary="Latest vehicle positions",
    description="Live positions in live mode, simulated ones in offline mode.",
)
async def get_vehicles(
    engine: LoadedEngine,
    trip_id: Annotated[Optional[str], Query(description="Only vehicles on this trip")] = None,
    limit: Annotated[int, Query(ge=1, le=5000)] = 500,
) -> dict[str, Any]:
    positions = engine.vehicle_positions
    if trip_id is not None:
        positions = [vp for vp in positions if vp.trip_id == trip_id]
    positions = positions[:limit]

    return {
        "mode": engine.mode,
        "items": [
            {
                "trip_id": vp.trip_id,
                "vehicle_id": vp.vehicle_id,
                "lat": vp.lat,
                "lon": vp.lon,
                "stop_sequence": vp.stop_sequence,
            }
            for vp in positions
        ],
        "count": len(positions),
    }
