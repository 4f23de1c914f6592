"""Trends router -- active trends, the trending summary and on-demand scans."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from sentinel.trends.models import TrendData
from web.backend.app.models.api import (
    ScanRequest,
    ScanResponse,
    TrendResponse,
    TrendSummaryResponse,
)
from web.backend.app.state import get_services

router = APIRouter(prefix="/api/trends", tags=["trends"])


def _trend_response(t: TrendData) -> TrendResponse:
    return TrendResponse(**t.to_dict())


@router.get(
    "",
    response_model=list[TrendResponse],
    summary="List active trends",
)
async def list_trends(limit: int = Query(20, ge=1, le=200)):
    """Return unexpired trends ranked by harmfulness x virality."""
    return [_trend_response(t) for t in get_services().ledger.active_trends(limit=limit)]


@router.get(
    "/summary",
    response_model=TrendSummaryResponse,
    summary="Trending overview",
)
async def trends_summary():
    return TrendSummaryResponse(**get_services().ledger.trending_summary())


@router.get(
    "/{trend_id}",
    response_model=TrendResponse,
    summary="Get a trend",
)
async def get_trend(trend_id: str):
    trend = get_services().ledger.get_trend(trend_id)
    if trend is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Trend '{trend_id}' not found",
        )
    return _trend_response(trend)


@router.post(
    "/scan",
    response_model=ScanResponse,
    summary="Run one trend analysis cycle now",
)
def scan_trends(body: Optional[ScanRequest] = None):
    """Run aggregation, store trends and promote high-risk ones to warnings.

    Returns a skipped report if a cycle is already running.
    """
    lookback = body.lookback_hours if body else None
    report = get_services().cycle.run(lookback_hours=lookback)
    return ScanResponse(
        started_at=report.started_at,
        skipped=report.skipped,
        trend_count=report.trend_count,
        warning_count=report.warning_count,
        trends=[_trend_response(t) for t in report.trends],
        failed=report.failed,
    )
