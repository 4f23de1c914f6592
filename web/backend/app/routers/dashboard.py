"""Dashboard router -- one aggregated view over content, trends and lanes."""

from __future__ import annotations

from fastapi import APIRouter

from web.backend.app.models.api import DashboardOverviewResponse
from web.backend.app.state import get_services

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get(
    "/overview",
    response_model=DashboardOverviewResponse,
    summary="Get dashboard overview stats",
)
async def dashboard_overview():
    """Content volume, flagged share, live trends and warnings, and lane depths."""
    return DashboardOverviewResponse(**get_services().overview())
