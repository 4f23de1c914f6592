"""Responses router -- escalation rules, automated response and review lanes."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from sentinel.errors import RuleValidationError
from sentinel.jobs.queue import Job, JobQueue
from sentinel.models.content import DetectionResult
from sentinel.response.urgency import job_priority
from sentinel.rules.loader import rule_from_dict, rule_to_dict
from web.backend.app.models.api import (
    EscalationRuleModel,
    JobResponse,
    QueueStatsResponse,
    RespondRequest,
    RespondResponse,
    ResponseLogEntryResponse,
    ReviewEntryResponse,
    RuleSetResponse,
    RuleUpdateRequest,
    SeverityName,
)
from web.backend.app.state import get_services

router = APIRouter(prefix="/api", tags=["responses"])


def _rule_set_response() -> RuleSetResponse:
    snapshot = get_services().engine.snapshot
    return RuleSetResponse(
        version=snapshot.version,
        loaded_at=snapshot.loaded_at,
        rules=[EscalationRuleModel(**rule_to_dict(r)) for r in snapshot.rules],
    )


# ---------------------------------------------------------------------------
# Escalation rules
# ---------------------------------------------------------------------------


@router.get(
    "/rules",
    response_model=RuleSetResponse,
    summary="Current escalation rule set",
)
async def get_rules():
    """Return the rule snapshot the engine is matching against."""
    return _rule_set_response()


@router.put(
    "/rules",
    response_model=RuleSetResponse,
    summary="Replace the escalation rule set",
)
async def replace_rules(body: list[EscalationRuleModel]):
    """Validate and store a complete rule set, then swap it into the engine."""
    services = get_services()
    try:
        rules = [rule_from_dict(r.model_dump(exclude_none=True)) for r in body]
        services.rule_store.replace_all(rules)
    except (RuleValidationError, ValueError) as exc:
        raise HTTPException(
            status_code=422,
            detail=str(exc),
        )
    services.reload_rules()
    return _rule_set_response()


@router.post(
    "/rules",
    response_model=EscalationRuleModel,
    status_code=status.HTTP_201_CREATED,
    summary="Add one escalation rule",
)
async def create_rule(body: EscalationRuleModel):
    services = get_services()
    try:
        stored = services.rule_store.create_rule(body.model_dump(exclude_none=True))
    except RuleValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    services.reload_rules()
    return EscalationRuleModel(**stored)


@router.get(
    "/rules/{rule_id}",
    response_model=EscalationRuleModel,
    summary="Get one stored escalation rule",
)
async def get_rule(rule_id: str):
    rule = get_services().rule_store.get_rule(rule_id)
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Rule '{rule_id}' not found",
        )
    return EscalationRuleModel(**rule)


@router.patch(
    "/rules/{rule_id}",
    response_model=EscalationRuleModel,
    summary="Update one escalation rule",
)
async def update_rule(rule_id: str, body: RuleUpdateRequest):
    """Change the given fields of a rule and swap the new set into the engine."""
    services = get_services()
    try:
        updated = services.rule_store.update_rule(rule_id, **body.model_dump(exclude_unset=True))
    except RuleValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Rule '{rule_id}' not found",
        )
    services.reload_rules()
    return EscalationRuleModel(**updated)


@router.delete(
    "/rules/{rule_id}",
    summary="Delete one escalation rule",
)
async def delete_rule(rule_id: str):
    services = get_services()
    if not services.rule_store.delete_rule(rule_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Rule '{rule_id}' not found",
        )
    services.reload_rules()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Automated response
# ---------------------------------------------------------------------------


@router.post(
    "/content/{content_id}/respond",
    response_model=RespondResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue an automated response for a content item",
)
async def respond_to_content(content_id: str, body: RespondRequest):
    """Attach the detection result to the content and queue its response job."""
    services = get_services()
    if services.store.get(content_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Content '{content_id}' not found",
        )
    try:
        detection = DetectionResult(**body.model_dump())
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail=str(exc),
        )
    services.store.attach_detection(content_id, detection)
    job = services.orchestrator.process_content(content_id, detection)
    urgency = job.data["urgency"]
    return RespondResponse(
        content_id=content_id,
        job_id=job.id,
        urgency=urgency,
        priority=job_priority(urgency),
        state=job.state.value,
    )


@router.get(
    "/queues/stats",
    response_model=QueueStatsResponse,
    summary="Job counts per lane",
)
async def queue_stats():
    return QueueStatsResponse(lanes=get_services().orchestrator.queue_stats())


def _lane_or_404(lane: str) -> JobQueue:
    try:
        return get_services().orchestrator.lane(lane)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job lane '{lane}' not found",
        )


def _job_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        name=job.name,
        state=job.state.value,
        priority=job.priority,
        attempts_made=job.attempts_made,
        max_attempts=job.max_attempts,
        failed_reason=job.failed_reason,
        data=job.data,
    )


@router.get(
    "/queues/{lane}/failed",
    response_model=list[JobResponse],
    summary="Jobs that ran out of attempts in a lane",
)
async def failed_jobs(lane: str):
    return [_job_response(j) for j in _lane_or_404(lane).failed_jobs()]


@router.post(
    "/queues/{lane}/jobs/{job_id}/retry",
    response_model=JobResponse,
    summary="Re-queue a failed job",
)
async def retry_job(lane: str, job_id: str):
    job = _lane_or_404(lane).retry_failed(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No failed job '{job_id}' in lane '{lane}'",
        )
    return _job_response(job)


@router.get(
    "/review/{severity}",
    response_model=list[ReviewEntryResponse],
    summary="Content waiting for human review",
)
async def review_lane(severity: SeverityName, limit: int = Query(50, ge=1, le=500)):
    entries = get_services().review_lanes.list(severity, limit=limit)
    return [ReviewEntryResponse(**vars(e)) for e in entries]


@router.post(
    "/review/{severity}/claim",
    response_model=ReviewEntryResponse,
    summary="Take the oldest entry off a review lane",
)
async def claim_review(severity: SeverityName):
    """Hand the oldest waiting item to a reviewer and remove it from the lane."""
    entry = get_services().review_lanes.claim(severity)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"The {severity} review lane is empty",
        )
    return ReviewEntryResponse(**vars(entry))


@router.get(
    "/responses/log",
    response_model=list[ResponseLogEntryResponse],
    summary="Executed response actions",
)
async def response_log(
    content_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=10000),
):
    entries = get_services().response_log.entries(content_id=content_id, limit=limit)
    return [ResponseLogEntryResponse(**vars(e)) for e in entries]


@router.get(
    "/responses/log/export",
    response_class=PlainTextResponse,
    summary="Export the response log",
)
async def export_response_log(fmt: Literal["json", "csv"] = Query("json")):
    return PlainTextResponse(get_services().response_log.export(fmt))
