"""Public stops endpoints.

Endpoints
---------
GET /stops/search                  – stops whose name or id matches a query
GET /stops/nearby                  – stops within a radius, nearest first
GET /stops/{stop_id}/arrivals      – per-route arrival board
GET /stops/{stop_id}/lines         – distinct lines serving a stop
GET /stops/{stop_id}/realtime      – strictly attributed predictions per route
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from transit_arrivals.config import get_settings
from transit_arrivals.logging import get_logger
from transit_arrivals.models import ConnectionMode
from transit_arrivals.routers.deps import LoadedEngine

logger = get_logger(__name__)

router = APIRouter(tags=["stops"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class StopItem(BaseModel):
    stop_id: str
    name: str
    lat: float
    lon: float


class StopSearchResponse(BaseModel):
    query: str
    items: list[StopItem]
    count: int


class StopNearby(StopItem):
    distance_m: float


class NearbyStopsResponse(BaseModel):
    items: list[StopNearby]
    radius_km: float
    count: int


class ArrivalItem(BaseModel):
    route_id: str
    trip_id: str
    headsign: str
    scheduled_epoch: int
    predicted_epoch: Optional[int] = None
    delay_minutes: Optional[int] = None
    realtime: bool


class StopArrivalsResponse(BaseModel):
    stop_id: str
    stop_name: Optional[str] = None
    mode: ConnectionMode
    reference_epoch: int
    arrivals: list[str]
    items: list[ArrivalItem]


class StopLinesResponse(BaseModel):
    stop_id: str
    lines: list[str]


class RouteRealtimeItem(BaseModel):
    route_id: str
    predicted_epoch: int


class StopRealtimeResponse(BaseModel):
    stop_id: str
    items: list[RouteRealtimeItem]


# ---------------------------------------------------------------------------
# GET /stops/search
# ---------------------------------------------------------------------------


@router.get(
    "/stops/search",
    response_model=StopSearchResponse,
    summary="Search stops by name or id",
)
async def search_stops(
    engine: LoadedEngine,
    q: Annotated[str, Query(min_length=1, description="Case-insensitive substring")],
    limit: Annotated[Optional[int], Query(ge=1, le=1000)] = None,
) -> dict[str, Any]:
    """Return stops whose name or id contains the query."""
    stops = engine.catalog.search_stops(q, limit or get_settings().search_result_limit)
    return {
        "query": q,
        "items": [
            {"stop_id": s.stop_id, "name": s.name, "lat": s.lat, "lon": s.lon} for s in stops
        ],
        "count": len(stops),
    }


# ---------------------------------------------------------------------------
# GET /stops/nearby
# ---------------------------------------------------------------------------


@router.get(
    "/stops/nearby",
    response_model=NearbyStopsResponse,
    summary="Find stops near a location",
    description=(
        "Return stops within `radius_km` of the given coordinates, ordered by "
        "distance ascending. Line entries are never included."
    ),
)
async def get_nearby_stops(
    engine: LoadedEngine,
    lat: Annotated[float, Query(ge=-90, le=90, description="Latitude of the search centre")],
    lon: Annotated[float, Query(ge=-180, le=180, description="Longitude of the search centre")],
    radius_km: Annotated[
        Optional[float],
        Query(gt=0, description="Search radius in kilometres"),
    ] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> dict[str, Any]:
    """Return stops within radius ordered by distance (nearest first)."""
    settings = get_settings()
    radius = min(radius_km or settings.default_nearby_radius_km, settings.max_nearby_radius_km)

    results = engine.catalog.nearby_stops(lat, lon, radius, limit)
    return {
        "items": [
            {
                "stop_id": stop.stop_id,
                "name": stop.name,
                "lat": stop.lat,
                "lon": stop.lon,
                "distance_m": round(distance_km * 1000.0, 1),
            }
            for stop, distance_km in results
        ],
        "radius_km": radius,
        "count": len(results),
    }


# ---------------------------------------------------------------------------
# GET /stops/{stop_id}/arrivals
# ---------------------------------------------------------------------------


@router.get(
    "/stops/{stop_id}/arrivals",
    response_model=StopArrivalsResponse,
    summary="Upcoming arrivals at a stop, one per route",
    description=(
        "Unknown stops and stops with nothing due return the single entry "
        "'Nessun arrivo imminente' rather than an error."
    ),
)
async def get_stop_arrivals(
    engine: LoadedEngine,
    stop_id: str,
    mode: Annotated[
        Optional[ConnectionMode],
        Query(description="Override the engine's current connection mode"),
    ] = None,
) -> dict[str, Any]:
    stop = engine.schedule.stops.get(stop_id)
    board = engine.compute_board(stop_id, mode)

    return {
        "stop_id": stop_id,
        "stop_name": stop.name if stop else None,
        "mode": board.mode,
        "reference_epoch": board.reference_epoch,
        "arrivals": list(board.arrivals),
        "items": [
            {
                "route_id": info.route_id,
                "trip_id": info.trip_id,
                "headsign": info.headsign,
                "scheduled_epoch": info.scheduled_epoch,
                "predicted_epoch": info.predicted_epoch,
                "delay_minutes": info.delay_minutes,
                "realtime": info.is_realtime,
            }
            for info in board.items
        ],
    }


# ---------------------------------------------------------------------------
# GET /stops/{stop_id}/lines
# ---------------------------------------------------------------------------


@router.get(
    "/stops/{stop_id}/lines",
    response_model=StopLinesResponse,
    summary="Lines serving a stop",
)
async def get_stop_lines(engine: LoadedEngine, stop_id: str) -> dict[str, Any]:
    """Return distinct "route - headsign" lines, or 404 if the stop is unknown."""
    if stop_id not in engine.schedule.stops and not engine.schedule.index.is_known_stop(stop_id):
        raise HTTPException(status_code=404, detail=f"Stop '{stop_id}' not found")

    return {"stop_id": stop_id, "lines": engine.lines_for_stop(stop_id)}


# ---------------------------------------------------------------------------
# GET /stops/{stop_id}/realtime
# ---------------------------------------------------------------------------


@router.get(
    "/stops/{stop_id}/realtime",
    response_model=StopRealtimeResponse,
    summary="Realtime predictions per route at a stop",
    description=(
        "Predictions whose feed trip cannot be attributed to a static route "
        "are omitted."
    ),
)
async def get_stop_realtime(
    engine: LoadedEngine,
    stop_id: str,
    limit: Annotated[Optional[int], Query(ge=1, le=100)] = None,
) -> dict[str, Any]:
    by_route = engine.realtime_arrivals_by_route(
        stop_id, limit or get_settings().arrival_max_rt_results
    )
    return {
        "stop_id": stop_id,
        "items": [
            {"route_id": route_id, "predicted_epoch": epoch} for route_id, epoch in by_route.items()
        ],
    }
