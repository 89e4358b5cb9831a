from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Body, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from firstaid.core.config import Settings, get_settings
from firstaid.core.errors import IncompleteAssessment, InvalidTransition, SessionNotFound
from firstaid.core.logging import configure_logging
from firstaid.models.schemas import (
    AnswerRequest,
    Assessment,
    EmergencyRecord,
    EmergencyRequest,
    FacilitySearch,
    GuidanceResult,
    Location,
    SessionSnapshot,
    ShareLinks,
)
from firstaid.services.emergency_log import InMemoryEmergencyLog
from firstaid.services.enhancement import EnhancementProvider, build_enhancer
from firstaid.services.instructions import offline_guide
from firstaid.services.merger import GuidanceMerger, first_aid_with_fallback
from firstaid.services.places import search_nearby
from firstaid.services.session import AssessmentSession, SessionStore
from firstaid.services.share import share_links

logger = logging.getLogger(__name__)

api = APIRouter(prefix="/api/v1")


def _session(request: Request, session_id: str) -> AssessmentSession:
    try:
        return request.app.state.sessions.get(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


def _location(lat: Optional[float], lon: Optional[float]) -> Optional[Location]:
    if lat is None or lon is None:
        return None
    try:
        return Location(latitude=lat, longitude=lon)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Latitude and longitude must be valid coordinates") from exc


@api.get("/health")
async def health():
    return {"status": "ok"}


@api.post("/sessions", response_model=SessionSnapshot, status_code=201)
async def create_session(request: Request):
    session = request.app.state.sessions.create()
    return session.current_state()


@api.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, request: Request):
    return _session(request, session_id).current_state()


@api.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, request: Request):
    try:
        request.app.state.sessions.discard(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@api.post("/sessions/{session_id}/start", response_model=SessionSnapshot)
async def start_session(session_id: str, request: Request):
    return _session(request, session_id).start_assessment()


@api.post("/sessions/{session_id}/answer", response_model=SessionSnapshot)
async def answer(session_id: str, body: AnswerRequest, request: Request):
    session = _session(request, session_id)
    try:
        return session.answer(body.question, body.value)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@api.post("/sessions/{session_id}/back", response_model=SessionSnapshot)
async def back(session_id: str, request: Request):
    return _session(request, session_id).back()


@api.post("/sessions/{session_id}/restart", response_model=SessionSnapshot)
async def restart(session_id: str, request: Request):
    return _session(request, session_id).restart()


@api.put("/sessions/{session_id}/location", response_model=SessionSnapshot)
async def set_location(session_id: str, request: Request, body: Optional[Location] = Body(None)):
    return _session(request, session_id).set_location(body)


@api.post("/first-aid", response_model=GuidanceResult)
async def first_aid(body: Assessment, request: Request):
    settings: Settings = request.app.state.settings
    try:
        return await first_aid_with_fallback(body, request.app.state.enhancer, settings.ambulance_number)
    except IncompleteAssessment as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@api.get("/first-aid/offline", response_model=GuidanceResult)
async def first_aid_offline(request: Request):
    settings: Settings = request.app.state.settings
    return offline_guide(settings.ambulance_number, settings.police_number)


@api.post("/emergencies", response_model=EmergencyRecord, status_code=201)
async def log_emergency(body: EmergencyRequest, request: Request):
    return await request.app.state.emergency_log.create(body.assessment, body.location, body.emergency_type)


@api.get("/emergencies", response_model=List[EmergencyRecord])
async def list_emergencies(request: Request):
    return request.app.state.emergency_log.records()


@api.get("/nearby", response_model=FacilitySearch)
async def nearby(
    request: Request,
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    radius_m: Optional[int] = Query(None, ge=200, le=10000),
):
    settings: Settings = request.app.state.settings
    return await search_nearby(
        _location(lat, lon),
        radius_m=radius_m or settings.places_radius_m,
        limit=settings.places_limit,
        overpass_url=settings.overpass_url,
        transport=request.app.state.places_transport,
    )


@api.get("/share", response_model=ShareLinks)
async def share(request: Request, lat: Optional[float] = Query(None), lon: Optional[float] = Query(None)):
    return share_links(_location(lat, lon), request.app.state.settings)


def create_app(
    settings: Optional[Settings] = None,
    enhancer: Optional[EnhancementProvider] = None,
    emergency_log: Optional[InMemoryEmergencyLog] = None,
    places_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    if enhancer is None:
        enhancer = build_enhancer(settings)
    emergency_log = emergency_log or InMemoryEmergencyLog(settings.emergency_type)

    def merger_factory() -> GuidanceMerger:
        return GuidanceMerger(
            enhancer=enhancer,
            emergency_logger=emergency_log,
            is_online=lambda: not settings.offline_mode,
            ambulance=settings.ambulance_number,
        )

    app = FastAPI(title="First Aid Assistant", version="0.1.0", debug=settings.debug)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.enhancer = enhancer
    app.state.emergency_log = emergency_log
    app.state.places_transport = places_transport
    app.state.sessions = SessionStore(
        merger_factory, ttl_s=settings.session_ttl_s, max_sessions=settings.max_sessions
    )
    app.include_router(api)
    logger.info("guidance enhancement: %s", type(enhancer).__name__ if enhancer else "local only")

    @app.get("/")
    async def root():
        return RedirectResponse(url="/docs")

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
