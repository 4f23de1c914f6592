"""Pydantic models for API request/response serialization.

These models mirror the sentinel dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

SeverityName = Literal["low", "medium", "high", "critical"]


# ---------------------------------------------------------------------------
# Trend models
# ---------------------------------------------------------------------------


class TrendResponse(BaseModel):
    """Mirrors sentinel.trends.models.TrendData."""

    id: str
    hashtags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    harmfulness_score: float = 0.0
    virality_score: float = 0.0
    growth_rate: float = 0.0
    first_detected: str = ""
    last_updated: str = ""
    content_count: int = 0
    average_engagement: float = 0.0
    categories: list[str] = Field(default_factory=list)
    risk_level: SeverityName = "low"
    source: str = ""


class TrendSummaryResponse(BaseModel):
    total_trends: int = 0
    high_risk_trends: int = 0
    top_categories: dict[str, int] = Field(default_factory=dict)
    top_platforms: dict[str, int] = Field(default_factory=dict)
    trends: list[TrendResponse] = Field(default_factory=list)


class ScanRequest(BaseModel):
    lookback_hours: Optional[float] = Field(None, gt=0)


class ScanResponse(BaseModel):
    started_at: str
    skipped: bool = False
    trend_count: int = 0
    warning_count: int = 0
    trends: list[TrendResponse] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Early warning models
# ---------------------------------------------------------------------------


class AcknowledgementResponse(BaseModel):
    """Mirrors sentinel.trends.models.Acknowledgement."""

    warning_id: str
    actor: str
    comment: str = ""
    acknowledged_at: str = ""


class WarningResponse(BaseModel):
    """Mirrors sentinel.trends.models.EarlyWarning."""

    id: str
    title: str
    description: str = ""
    severity: SeverityName
    trend: TrendResponse
    recommended_actions: list[str] = Field(default_factory=list)
    created_at: str = ""
    acknowledgements: list[AcknowledgementResponse] = Field(default_factory=list)


class AcknowledgeRequest(BaseModel):
    actor: str = Field(..., min_length=1)
    comment: str = ""


class WarningStatsResponse(BaseModel):
    total: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Escalation rule models
# ---------------------------------------------------------------------------


class ScoreRangeModel(BaseModel):
    min: Optional[float] = Field(None, ge=0.0, le=1.0)
    max: Optional[float] = Field(None, ge=0.0, le=1.0)


class RuleConditionsModel(BaseModel):
    harmfulness_score: Optional[ScoreRangeModel] = None
    confidence: Optional[ScoreRangeModel] = None
    categories: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    virality_indicators: bool = False


class ResponseActionModel(BaseModel):
    """Mirrors sentinel.rules.models.ResponseAction."""

    type: Literal["flag", "remove", "escalate", "warn", "quarantine", "notify"]
    severity: SeverityName
    automated: bool = True
    reason: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class EscalationRuleModel(BaseModel):
    """Mirrors sentinel.rules.models.EscalationRule."""

    id: str = Field(..., min_length=1)
    name: str = ""
    conditions: RuleConditionsModel = Field(default_factory=RuleConditionsModel)
    actions: list[ResponseActionModel] = Field(..., min_length=1)
    priority: int = 0
    enabled: bool = True


class RuleUpdateRequest(BaseModel):
    """Fields to change on one rule; omitted fields keep their value."""

    name: Optional[str] = None
    conditions: Optional[RuleConditionsModel] = None
    actions: Optional[list[ResponseActionModel]] = Field(None, min_length=1)
    priority: Optional[int] = None
    enabled: Optional[bool] = None


class RuleSetResponse(BaseModel):
    version: int
    loaded_at: str
    rules: list[EscalationRuleModel] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response lane models
# ---------------------------------------------------------------------------


class RespondRequest(BaseModel):
    """A DetectionResult for a stored content item."""

    harmfulness_score: float = Field(..., ge=0.0, le=1.0)
    categories: list[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    flagged: bool = True
    reasoning: Optional[str] = None


class RespondResponse(BaseModel):
    content_id: str
    job_id: str
    urgency: SeverityName
    priority: int
    state: str


class QueueStatsResponse(BaseModel):
    lanes: dict[str, dict[str, int]] = Field(default_factory=dict)


class JobResponse(BaseModel):
    """Mirrors sentinel.jobs.queue.Job."""

    id: str
    name: str
    state: Literal["waiting", "delayed", "active", "completed", "failed"]
    priority: int
    attempts_made: int = 0
    max_attempts: int = 0
    failed_reason: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class ReviewEntryResponse(BaseModel):
    """Mirrors sentinel.response.review_lanes.ReviewEntry."""

    content_id: str
    severity: SeverityName
    reason: str = ""
    harmfulness_score: float = 0.0
    categories: list[str] = Field(default_factory=list)
    platform: str = ""
    enqueued_at: str = ""


class ResponseLogEntryResponse(BaseModel):
    """Mirrors sentinel.response.response_log.ResponseLogEntry."""

    id: str
    timestamp: str
    content_id: str
    actions: list[dict[str, Any]] = Field(default_factory=list)
    detection: dict[str, Any] = Field(default_factory=dict)
    outcome: Literal["completed", "failed"] = "completed"
    error: str = ""


# ---------------------------------------------------------------------------
# Dashboard models
# ---------------------------------------------------------------------------


class DashboardOverviewResponse(BaseModel):
    content_total: int = 0
    content_last_24h: int = 0
    flagged_last_24h: int = 0
    platforms: dict[str, int] = Field(default_factory=dict)
    active_trends: int = 0
    warnings: WarningStatsResponse = Field(default_factory=WarningStatsResponse)
    queues: dict[str, dict[str, int]] = Field(default_factory=dict)
    review: dict[str, int] = Field(default_factory=dict)
    rules_version: int = 0
