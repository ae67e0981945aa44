"""
HTTP routes for the cone counter API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response

from cone_counter.auth import Principal
from cone_counter.config import Settings
from cone_counter.dependencies import (
    get_current_principal,
    get_event_service,
    get_settings_from_app,
)
from cone_counter.errors import ConfigurationIncomplete
from cone_counter.schemas import (
    AnalysisResponse,
    DeleteEventResponse,
    EventPayload,
    EventResponse,
    ExportResponse,
    FirebaseConfigResponse,
    ImportRequest,
    ImportResponse,
    StatsResponse,
)
from cone_counter.service import EventService

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_FILENAME = "cone-counter-export.json"


@router.get("/events", response_model=list[EventResponse])
def list_events(
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    return [EventResponse.from_record(e) for e in service.list_events(principal.uid)]


@router.get("/events/range/{start}/{end}", response_model=list[EventResponse])
def list_events_in_range(
    start: str,
    end: str,
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    events = service.list_events_in_range(principal.uid, start, end)
    return [EventResponse.from_record(e) for e in events]


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(
    event_id: str,
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    return EventResponse.from_record(service.get_event(principal.uid, event_id))


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    payload: EventPayload,
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    event = service.create_event(principal.uid, payload.instant, payload.note)
    return EventResponse.from_record(event)


@router.put("/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: str,
    payload: EventPayload,
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    event = service.update_event(
        principal.uid, event_id, payload.instant, payload.note
    )
    return EventResponse.from_record(event)


@router.delete("/events/{event_id}", response_model=DeleteEventResponse)
def delete_event(
    event_id: str,
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    service.delete_event(principal.uid, event_id)
    return DeleteEventResponse(message="Event deleted successfully")


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    return StatsResponse.from_stats(service.get_stats(principal.uid))


@router.get("/analysis", response_model=AnalysisResponse)
def get_analysis(
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    return AnalysisResponse.from_analysis(service.get_analysis(principal.uid))


@router.get("/export", response_model=ExportResponse)
def export_events(
    response: Response,
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    events, exported_at, version = service.export_events(principal.uid)
    response.headers["Content-Disposition"] = f'attachment; filename="{EXPORT_FILENAME}"'
    return ExportResponse(
        events=[EventResponse.from_record(e) for e in events],
        exportedAt=exported_at,
        version=version,
    )


@router.post("/import", response_model=ImportResponse)
def import_events(
    payload: ImportRequest,
    mode: str = Query("append", pattern="^(append|replace)$"),
    principal: Principal = Depends(get_current_principal),
    service: EventService = Depends(get_event_service),
):
    """
    Import events from an export document.

    `mode=append` (default) keeps existing events; `mode=replace` deletes
    them first. Clients must confirm with the user before sending replace.
    """
    imported = service.import_events(principal.uid, payload.events, mode)
    return ImportResponse(
        success=True,
        message=f"Successfully imported {imported} events",
        importedCount=imported,
        mode=mode,
    )


@router.get("/firebase-config", response_model=FirebaseConfigResponse)
def firebase_config(settings: Settings = Depends(get_settings_from_app)):
    """Public: the web client needs this before it can sign anyone in."""
    config = settings.firebase_web_config()
    missing = [key for key, value in config.items() if not value]
    if missing:
        logger.error("Missing Firebase web config values: %s", missing)
        raise ConfigurationIncomplete(missing)
    return FirebaseConfigResponse(**config)
