"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException

from transit_arrivals.services.engine import TransitEngine, get_engine


def require_loaded_engine() -> TransitEngine:
    """Return the engine, or answer 503 while no schedule is loaded."""
    engine = get_engine()
    if not engine.is_loaded:
        raise HTTPException(status_code=503, detail="Static GTFS schedule is not loaded")
    return engine


LoadedEngine = Annotated[TransitEngine, Depends(require_loaded_engine)]
