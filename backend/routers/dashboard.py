"""
Dashboard API endpoints.

Exposes the live state blob, full and partial refreshes, the editor
hooks and the action bridge.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.dependencies import get_dashboard_service
from backend.schemas import (
    ActionRequestSchema,
    DashboardStateResponse,
    DocumentSavedRequest,
    HandlerResultSchema,
    RefreshSectionsRequest,
)
from backend.websocket import notify_perspectives_changed
from notedash.dashboard.actions import ActionRequest
from notedash.dashboard.models import to_section_codes
from notedash.dashboard.service import DashboardService

logger = logging.getLogger("backend.dashboard")

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _state_response(service: DashboardService) -> DashboardStateResponse:
    return DashboardStateResponse(**service.state.to_dict())


@router.get("/state", response_model=DashboardStateResponse)
async def get_state(service: DashboardService = Depends(get_dashboard_service)):
    """Current sections, perspectives, settings and done count."""
    return _state_response(service)


@router.post("/refresh", response_model=DashboardStateResponse)
async def refresh_all(service: DashboardService = Depends(get_dashboard_service)):
    """Regenerate every enabled section."""
    try:
        await service.refresh_all("api")
        return _state_response(service)
    except Exception as e:
        logger.error(f"Refresh failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/refresh/sections", response_model=DashboardStateResponse)
async def refresh_sections(
    request: RefreshSectionsRequest,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Regenerate the named sections and merge them into the live list."""
    codes = to_section_codes(request.section_codes)
    if not codes:
        raise HTTPException(status_code=400, detail=f"Unknown section codes: {request.section_codes}")
    try:
        await service.refresh_some(codes)
        return _state_response(service)
    except Exception as e:
        logger.error(f"Partial refresh failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/foreground", response_model=DashboardStateResponse)
async def foreground(service: DashboardService = Depends(get_dashboard_service)):
    """The dashboard window was brought to the front."""
    await service.engine.on_foreground()
    return _state_response(service)


@router.post("/documents/saved", response_model=DashboardStateResponse)
async def document_saved(
    request: DocumentSavedRequest,
    service: DashboardService = Depends(get_dashboard_service),
):
    """A note was saved in the editor."""
    await service.engine.on_document_saved(request.filename)
    return _state_response(service)


@router.post("/actions", response_model=HandlerResultSchema)
async def handle_action(
    request: ActionRequestSchema,
    service: DashboardService = Depends(get_dashboard_service),
):
    """
    Run one action request.

    Handler failures (missing line, bad date, rejected write) come back as
    success=false; only unexpected errors give a 500.
    """
    try:
        result = await service.handle_action(ActionRequest.from_dict(request.model_dump()))
    except Exception as e:
        logger.error(f"Action {request.action_type} crashed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    if result.payload and "perspectives" in result.payload:
        await notify_perspectives_changed(result.payload["perspectives"])
    return HandlerResultSchema(**result.to_dict())
