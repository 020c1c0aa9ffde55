"""REST API endpoints for the client app (runs, GPS fixes, districts, fog, export/import).

Handlers are `async def` so every state mutation runs on the event loop one at a
time. Only the Overpass fetch (and its normalization) is pushed to a worker
thread; its result is applied back on the loop.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from schemas import Bounds, GeoPoint, RunSummary
from session import GameSession
from storage import InvalidExportError
from tracker import RejectReason

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class FixRequest(BaseModel):
    lat: float
    lng: float
    accuracy: Optional[float] = None
    t: Optional[int] = None


class FixResponse(BaseModel):
    accepted: bool
    reason: Optional[RejectReason] = None
    step_m: float = 0.0
    unlocked: list[str] = []
    run_distance_m: float
    district_refresh_scheduled: bool = False


class LocationRequest(BaseModel):
    lat: float
    lon: float
    force: bool = False


class StartResponse(BaseModel):
    started_at: int


class StopResponse(BaseModel):
    summary: Optional[RunSummary] = None


class DistrictResponse(BaseModel):
    id: int
    name: str
    bounds: Bounds
    polygons: list[list[GeoPoint]]
    unlocked: bool


class RefreshResponse(BaseModel):
    applied: bool
    districts: int
    error: Optional[str] = None


class StateResponse(BaseModel):
    running: bool
    run_points: int
    run_distance_m: float
    revealed_points: int
    runs: int
    unlocked: list[str]
    districts: int
    districts_loading: bool
    district_error: Optional[str] = None
    storage_error: Optional[str] = None


# ---------------------------------------------------------------------------
# Dependencies and helpers
# ---------------------------------------------------------------------------

def get_game(request: Request) -> GameSession:
    game = getattr(request.app.state, "game", None)
    if game is None:
        raise HTTPException(status_code=503, detail="Session not initialized")
    return game


async def refresh_districts(game: GameSession, lat: float, lon: float) -> bool:
    """Fetch (or load cached) districts around a position and swap them in."""
    key, cached = game.begin_district_fetch(lat, lon)
    if cached is not None:
        logger.info("Using cached districts for %s", key)
        return game.complete_district_fetch(key, cached, (lat, lon), cache=False)

    try:
        districts = await run_in_threadpool(game.fetcher, lat, lon)
    except Exception as e:
        logger.exception("District fetch %s raised", key)
        game.fail_district_fetch(key, f"District fetch failed: {e}")
        return False
    if districts is None:
        game.fail_district_fetch(key, "District fetch failed")
        return False
    return game.complete_district_fetch(key, districts, (lat, lon))


# ---------------------------------------------------------------------------
# Run endpoints
# ---------------------------------------------------------------------------

@router.post("/runs/start", response_model=StartResponse)
async def start_run(game: GameSession = Depends(get_game)):
    if game.is_running:
        raise HTTPException(status_code=409, detail="A run is already active")
    return StartResponse(started_at=game.start_run())


@router.post("/runs/stop", response_model=StopResponse)
async def stop_run(game: GameSession = Depends(get_game)):
    if not game.is_running:
        raise HTTPException(status_code=409, detail="No active run")
    return StopResponse(summary=game.stop_run())


@router.get("/runs", response_model=list[RunSummary])
async def list_runs(game: GameSession = Depends(get_game)):
    return game.runs


@router.post("/fixes", response_model=FixResponse)
async def post_fix(fix: FixRequest, background: BackgroundTasks, game: GameSession = Depends(get_game)):
    result = game.accept_point(GeoPoint(lat=fix.lat, lng=fix.lng, t=fix.t), fix.accuracy)

    scheduled = game.needs_district_fetch(fix.lat, fix.lng)
    if scheduled:
        background.add_task(refresh_districts, game, fix.lat, fix.lng)

    return FixResponse(
        accepted=result.accepted,
        reason=result.reason,
        step_m=result.step_m,
        unlocked=result.unlocked,
        run_distance_m=game.tracker.distance_m,
        district_refresh_scheduled=scheduled,
    )


# ---------------------------------------------------------------------------
# District endpoints
# ---------------------------------------------------------------------------

@router.get("/districts", response_model=list[DistrictResponse])
async def list_districts(game: GameSession = Depends(get_game)):
    return [
        DistrictResponse(
            id=d.id,
            name=d.name,
            bounds=d.bounds,
            polygons=d.polygons,
            unlocked=game.unlocks.is_unlocked(d.key),
        )
        for d in game.districts.districts
    ]


@router.post("/districts/refresh", response_model=RefreshResponse)
async def refresh(req: LocationRequest, game: GameSession = Depends(get_game)):
    if not req.force and not game.needs_district_fetch(req.lat, req.lon):
        return RefreshResponse(applied=False, districts=len(game.districts.districts))
    applied = await refresh_districts(game, req.lat, req.lon)
    return RefreshResponse(
        applied=applied,
        districts=len(game.districts.districts),
        error=game.districts.error,
    )


@router.post("/districts/reset")
async def reset_districts(game: GameSession = Depends(get_game)):
    game.reset_districts()
    return {"status": "reset"}


@router.get("/unlocked", response_model=list[str])
async def list_unlocked(game: GameSession = Depends(get_game)):
    return game.unlocked.to_list()


# ---------------------------------------------------------------------------
# Fog, stats and state
# ---------------------------------------------------------------------------

@router.get("/fog", response_model=list[list[GeoPoint]])
async def fog_strokes(
    south: float, west: float, north: float, east: float,
    game: GameSession = Depends(get_game),
):
    if south > north or west > east:
        raise HTTPException(status_code=400, detail="Invalid bounding box")
    return game.visible_strokes(Bounds(minlat=south, minlon=west, maxlat=north, maxlon=east))


@router.get("/stats")
async def stats(game: GameSession = Depends(get_game)):
    return game.lifetime_stats()


@router.get("/state", response_model=StateResponse)
async def state(game: GameSession = Depends(get_game)):
    return StateResponse(
        running=game.is_running,
        run_points=len(game.tracker.path),
        run_distance_m=game.tracker.distance_m,
        revealed_points=len(game.trail),
        runs=len(game.runs),
        unlocked=game.unlocked.to_list(),
        districts=len(game.districts.districts),
        districts_loading=game.districts.is_loading,
        district_error=game.districts.error,
        storage_error=game.storage_error,
    )


# ---------------------------------------------------------------------------
# Export / import / reset
# ---------------------------------------------------------------------------

@router.get("/export")
async def export(game: GameSession = Depends(get_game)):
    return game.export_document()


@router.post("/import")
async def import_history(document: Any = Body(...), game: GameSession = Depends(get_game)):
    try:
        points, runs = game.import_document(document)
    except InvalidExportError as e:
        logger.warning("Rejected import document: %s", e)
        raise HTTPException(status_code=400, detail=f"Invalid export document: {e}")
    return {"imported_points": points, "imported_runs": runs}


@router.post("/reset")
async def reset(game: GameSession = Depends(get_game)):
    game.reset_all()
    return {"status": "reset"}
