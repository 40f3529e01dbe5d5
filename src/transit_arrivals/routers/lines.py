"""Public lines endpoints.

Endpoints
---------
GET /lines/search               – lines (route + headsign) matching a route query
GET /lines/{route_id}/stops     – stops of a route in calling order
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from transit_arrivals.config import get_settings
from transit_arrivals.logging import get_logger
from transit_arrivals.routers.deps import LoadedEngine

logger = get_logger(__name__)

router = APIRouter(tags=["lines"])


class LineItem(BaseModel):
    line_id: str
    label: str


class LineSearchResponse(BaseModel):
    query: str
    items: list[LineItem]
    count: int


class RouteStop(BaseModel):
    stop_id: str
    name: str
    lat: float
    lon: float


class RouteStopsResponse(BaseModel):
    route_id: str
    headsign: Optional[str] = None
    stops: list[RouteStop]


@router.get(
    "/lines/search",
    response_model=LineSearchResponse,
    summary="Search lines by route id",
)
async def search_lines(
    engine: LoadedEngine,
    q: Annotated[str, Query(min_length=1, description="Case-insensitive route id substring")],
    limit: Annotated[Optional[int], Query(ge=1, le=1000)] = None,
) -> dict[str, Any]:
    lines = engine.catalog.search_lines(q, limit or get_settings().search_result_limit)
    return {
        "query": q,
        "items": [{"line_id": line.stop_id, "label": line.name} for line in lines],
        "count": len(lines),
    }


@router.get(
    "/lines/{route_id}/stops",
    response_model=RouteStopsResponse,
    summary="Stops served by a route",
    description="Uses the longest trip of the route (optionally filtered by headsign).",
)
async def get_route_stops(
    engine: LoadedEngine,
    route_id: str,
    headsign: Annotated[Optional[str], Query(description="Restrict to one direction")] = None,
) -> dict[str, Any]:
    stops = engine.catalog.stops_for_route(route_id, headsign)
    if not stops and not engine.schedule.registry.trips_for_route(route_id):
        raise HTTPException(status_code=404, detail=f"Route '{route_id}' not found")

    return {
        "route_id": route_id,
        "headsign": headsign,
        "stops": [
            {"stop_id": s.stop_id, "name": s.name, "lat": s.lat, "lon": s.lon} for s in stops
        ],
    }
