"""
Perspective API endpoints.

Changes to perspectives go through the action bridge
(POST /dashboard/actions); this router only lists them.
"""

from fastapi import APIRouter, Depends

from backend.dependencies import get_dashboard_service
from backend.schemas import PerspectiveListResponse, PerspectiveSchema
from notedash.dashboard.service import DashboardService

router = APIRouter(prefix="/perspectives", tags=["perspectives"])


@router.get("", response_model=PerspectiveListResponse)
async def list_perspectives(service: DashboardService = Depends(get_dashboard_service)):
    """All perspectives and the name of the active one."""
    store = service.perspectives
    return PerspectiveListResponse(
        perspectives=[PerspectiveSchema(**p) for p in store.to_list()],
        active=store.active().name,
    )
