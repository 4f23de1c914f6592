"""Alerts router -- early warnings raised from high-risk trends."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from sentinel.trends.models import Acknowledgement, EarlyWarning
from web.backend.app.models.api import (
    AcknowledgeRequest,
    AcknowledgementResponse,
    SeverityName,
    WarningResponse,
    WarningStatsResponse,
)
from web.backend.app.state import get_services

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


def _ack_response(a: Acknowledgement) -> AcknowledgementResponse:
    return AcknowledgementResponse(
        warning_id=a.warning_id,
        actor=a.actor,
        comment=a.comment,
        acknowledged_at=a.acknowledged_at,
    )


def _warning_response(w: EarlyWarning, acks: Optional[list[Acknowledgement]] = None) -> WarningResponse:
    data = w.to_dict()
    data["acknowledgements"] = [_ack_response(a) for a in acks or []]
    return WarningResponse(**data)


@router.get(
    "",
    response_model=list[WarningResponse],
    summary="List early warnings",
)
async def list_alerts(
    severity: Optional[SeverityName] = Query(None, description="Only this severity"),
    limit: int = Query(20, ge=1, le=500),
):
    """Return early warnings, newest first.

    Without a severity filter a fixed mix is returned: up to 5 critical,
    10 high, 10 medium and 5 low.
    """
    ledger = get_services().ledger
    return [_warning_response(w) for w in ledger.list_warnings(severity, limit=limit)]


@router.get(
    "/stats/summary",
    response_model=WarningStatsResponse,
    summary="Count live warnings per severity",
)
async def alert_stats():
    return WarningStatsResponse(**get_services().ledger.warning_stats())


@router.get(
    "/{warning_id}",
    response_model=WarningResponse,
    summary="Get an early warning",
)
async def get_alert(warning_id: str):
    ledger = get_services().ledger
    warning = ledger.get_warning(warning_id)
    if warning is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Warning '{warning_id}' not found",
        )
    return _warning_response(warning, ledger.acknowledgements(warning_id))


@router.post(
    "/{warning_id}/acknowledge",
    response_model=AcknowledgementResponse,
    summary="Acknowledge an early warning",
)
async def acknowledge_alert(warning_id: str, body: AcknowledgeRequest):
    """Record who acknowledged a warning. The warning itself is unchanged."""
    ack = get_services().ledger.acknowledge(warning_id, body.actor, body.comment)
    if ack is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Warning '{warning_id}' not found",
        )
    return _ack_response(ack)
