"""FastAPI application for GridLog."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from starlette.middleware.cors import CORSMiddleware

from .analytics import (
    AnalysisLap,
    DriverContext,
    PeerDriver,
    RaceAnalyticsParams,
    assign_compounds,
    calculate_race_analytics,
    derive_stint_segments,
    laps_from_records,
    segments_from_tyre_stints,
)
from .buffer import FlushError
from .comparison import build_lap_comparison, build_tire_wear_comparison
from .config import GL_CORS_ORIGINS, get_settings
from .constants import is_lap_valid
from .processor import UDPProcessor
from .schema import Driver, Packet, Season
from .storage import StorageUnavailableError, TelemetryStorage
from .utils_time import format_laptime_ms, sector_total_ms

logger = logging.getLogger(__name__)

_packet_adapter = TypeAdapter(Packet)

_storage: Optional[TelemetryStorage] = None
_processor: Optional[UDPProcessor] = None


def init_storage(db_path: Optional[str] = None) -> TelemetryStorage:
    """
    Open (and create) the database and build a fresh processor on top of it.

    A running processor is stopped first; its unflushed fragments are lost.
    Raises StorageUnavailableError when the database cannot be opened.
    """
    global _storage, _processor
    if _processor is not None and _processor.is_running:
        _processor.stop()
    storage = TelemetryStorage(db_path or get_settings().db_path)
    storage.init_db()
    _storage = storage
    _processor = UDPProcessor(storage)
    return storage


def get_storage() -> TelemetryStorage:
    return _storage


def get_processor() -> UDPProcessor:
    return _processor


# Initialize database on module import
init_storage()

# Create FastAPI app
app = FastAPI(
    title="GridLog API",
    description="API for league telemetry ingestion and race analytics",
    version="0.1.0"
)

# CORS: opt-in via env
origins = [o.strip() for o in (GL_CORS_ORIGINS or "").split(",") if o.strip()]
if origins or GL_CORS_ORIGINS.strip() == "*":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if GL_CORS_ORIGINS.strip() == "*" else origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class EventCreate(BaseModel):
    season_id: str
    track_name: str


class SeasonSelect(BaseModel):
    season_id: Optional[str] = None


class EventSelect(BaseModel):
    event_id: Optional[str] = None


class CompareRequest(BaseModel):
    target_laps: List[AnalysisLap] = Field(default_factory=list)
    comparison_laps: List[AnalysisLap] = Field(default_factory=list)


@app.get("/health")
async def health_check() -> Dict[str, bool]:
    """Health check endpoint."""
    return {"ok": True}


@app.get("/config")
async def get_config() -> Dict[str, Any]:
    """Get application configuration."""
    settings = get_settings()
    return {
        "udp_addr": settings.udp_addr,
        "udp_port": settings.udp_port,
        "flush_dedupe": settings.flush_dedupe,
    }


# --- league setup ---

@app.post("/drivers")
async def create_driver(driver: Driver) -> Dict[str, Any]:
    get_storage().add_driver(driver)
    return {"ok": True, "driver": driver.model_dump()}


@app.get("/drivers")
async def list_drivers() -> Dict[str, Any]:
    return {"drivers": [d.model_dump() for d in get_storage().list_drivers()]}


@app.post("/seasons")
async def create_season(season: Season) -> Dict[str, Any]:
    """Create a season; an active season also becomes the processor's season."""
    get_storage().add_season(season)
    if season.is_active:
        get_processor().set_active_season(season.id)
    return {"ok": True, "season": season.model_dump()}


@app.post("/seasons/{season_id}/activate")
async def activate_season(season_id: str) -> Dict[str, Any]:
    storage = get_storage()
    if not storage.set_active_season(season_id):
        raise HTTPException(status_code=404, detail=f"Season {season_id} not found")

    processor = get_processor()
    processor.set_active_season(season_id)
    event_id = storage.get_current_event_for_season(season_id)
    processor.set_current_event(event_id)
    return {"ok": True, "season_id": season_id, "event_id": event_id}


@app.post("/events")
async def create_event(body: EventCreate) -> Dict[str, Any]:
    """Return the scheduled event for the track, creating one if needed."""
    storage = get_storage()
    event_id = storage.find_or_create_event(body.season_id, body.track_name)
    event = storage.get_event(event_id)
    return {"ok": True, "event": event.model_dump()}


# --- live pipeline ---

@app.post("/udp/start")
async def udp_start() -> Dict[str, Any]:
    processor = get_processor()
    try:
        processor.start()
    except StorageUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail={"code": "storage_unavailable", "message": str(e)}
        ) from e
    return processor.status()


@app.post("/udp/stop")
async def udp_stop() -> Dict[str, Any]:
    processor = get_processor()
    processor.stop()
    return processor.status()


@app.post("/udp/reset")
async def udp_reset() -> Dict[str, Any]:
    """Drop the current session's slot mapping and unflushed fragments."""
    processor = get_processor()
    processor.reset_session()
    return processor.status()


@app.get("/udp/status")
async def udp_status() -> Dict[str, Any]:
    return get_processor().status()


@app.post("/udp/packet")
async def udp_packet(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """
    Feed one decoded telemetry packet to the pipeline.

    The body is a packet object tagged by "packet_type"
    (participants, session_history, session, final_classification).
    """
    try:
        packet = _packet_adapter.validate_python(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "bad_packet",
                "message": f"Invalid packet: {e.error_count()} validation error(s)",
                "details": {"errors": e.errors(include_url=False, include_context=False)},
            }
        ) from e

    return get_processor().dispatch(packet)


@app.post("/udp/flush")
async def udp_flush() -> Dict[str, Any]:
    """Persist all buffered lap history in one write."""
    processor = get_processor()
    try:
        written = processor.flush_pending_lap_history()
    except FlushError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "code": "flush_failed",
                "message": str(e),
                "pending_fragments": processor.pending_fragment_count,
            }
        ) from e
    return {"ok": True, "written": written, "pending_fragments": processor.pending_fragment_count}


@app.put("/udp/season")
async def udp_set_season(body: SeasonSelect) -> Dict[str, Any]:
    get_processor().set_active_season(body.season_id)
    return {"ok": True, "season_id": body.season_id}


@app.put("/udp/event")
async def udp_set_event(body: EventSelect) -> Dict[str, Any]:
    if body.event_id is not None and get_storage().get_event(body.event_id) is None:
        raise HTTPException(status_code=404, detail=f"Event {body.event_id} not found")
    get_processor().set_current_event(body.event_id)
    return {"ok": True, "event_id": body.event_id}


# --- stored session data ---

@app.get("/sessions/{session_uid}/drivers/{driver_id}/laps")
async def get_driver_laps(session_uid: int, driver_id: str) -> Dict[str, Any]:
    records = get_storage().list_lap_records(session_uid=session_uid, driver_id=driver_id)
    if not records:
        raise HTTPException(
            status_code=404,
            detail=f"No laps for driver {driver_id} in session {session_uid}"
        )

    laps = []
    for rec in records:
        laps.append({
            "lap_number": rec.lap_number,
            "lap_time_ms": rec.lap_time_ms,
            "lap_time": format_laptime_ms(rec.lap_time_ms),
            "sector1_ms": sector_total_ms(rec.sector1_time_ms, rec.sector1_time_minutes),
            "sector2_ms": sector_total_ms(rec.sector2_time_ms, rec.sector2_time_minutes),
            "sector3_ms": sector_total_ms(rec.sector3_time_ms, rec.sector3_time_minutes),
            "valid": is_lap_valid(rec.lap_valid_bit_flags),
        })
    return {"session_uid": str(session_uid), "driver_id": driver_id, "laps": laps}


@app.get("/sessions/{session_uid}/drivers/{driver_id}/analytics")
async def get_driver_analytics(session_uid: int, driver_id: str) -> Dict[str, Any]:
    """
    Race analytics for one driver from stored laps.

    Stints come from the stored final classification when there is one,
    otherwise they are derived from the laps.
    """
    storage = get_storage()
    records = storage.list_lap_records(session_uid=session_uid, driver_id=driver_id)
    if not records:
        raise HTTPException(
            status_code=404,
            detail=f"No laps for driver {driver_id} in session {session_uid}"
        )

    laps = laps_from_records(records)
    segments = segments_from_tyre_stints(storage.list_tyre_stints(session_uid, driver_id))
    if segments:
        laps = assign_compounds(laps, segments)
    else:
        segments = derive_stint_segments(laps)

    results = storage.list_session_results(session_uid)
    own = next((r for r in results if r.driver_id == driver_id), None)
    driver = DriverContext(grid_position=own.grid_position, race_position=own.position) if own else None

    best_times = [r.best_lap_time_ms for r in results if r.best_lap_time_ms > 0]
    fastest = min(best_times) if best_times else None
    peers = [
        PeerDriver(fastest_lap=r.best_lap_time_ms == fastest, best_lap_time_ms=r.best_lap_time_ms)
        for r in results
    ]

    analytics = calculate_race_analytics(RaceAnalyticsParams(
        lap_data=laps,
        stint_segments=segments,
        driver=driver,
        session_drivers=peers,
    ))
    if analytics is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "no_valid_laps", "message": f"No valid laps for driver {driver_id}"}
        )
    return {"session_uid": str(session_uid), "driver_id": driver_id, "analytics": analytics.model_dump()}


# --- analytics over posted laps ---

@app.post("/analytics/race")
async def race_analytics(params: RaceAnalyticsParams) -> Dict[str, Any]:
    """Race analytics for posted laps; "analytics" is null without a valid lap."""
    analytics = calculate_race_analytics(params)
    return {"analytics": analytics.model_dump() if analytics else None}


@app.post("/analytics/compare")
async def compare_laps(body: CompareRequest) -> Dict[str, Any]:
    return build_lap_comparison(body.target_laps, body.comparison_laps).model_dump()


@app.post("/analytics/tire-wear/compare")
async def compare_tire_wear(body: CompareRequest) -> Dict[str, Any]:
    rows = build_tire_wear_comparison(body.target_laps, body.comparison_laps)
    return {"laps": [r.model_dump() for r in rows]}


@app.exception_handler(HTTPException)
async def _http_exception_handler(request: Request, exc: HTTPException):
    """Preserve HTTPException status codes and return a unified JSON shape."""
    status = exc.status_code
    detail = exc.detail
    message = None
    details = None

    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail") or str(detail)
        # keep the rest as details, but preserve the "code" field if it exists
        details = {k: v for k, v in detail.items() if k not in ("message", "detail")}
        if "details" in detail and isinstance(detail["details"], dict):
            merged_details = {k: v for k, v in details.items() if k != "details"}
            merged_details.update(detail["details"])
            details = merged_details
    else:
        message = str(detail)

    return JSONResponse(
        status_code=status,
        content={
            "error": {
                "code": status,
                "type": "http_error",
                "message": message,
                "details": details,
            }
        },
    )


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    # HTTPException goes to the handler above
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled server error")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": 500,
                "type": "internal_error",
                "message": str(exc),
                "details": None,
            }
        },
    )
