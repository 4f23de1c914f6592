"""Human-readable early-warning text for promoted trends."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sentinel.models.content import utc_now
from sentinel.trends.models import EarlyWarning, RiskLevel, TrendData


def warning_title(trend: TrendData) -> str:
    kind = "hashtag" if trend.hashtags else "keyword"
    identifier = (trend.hashtags or trend.keywords or ["content"])[0]
    return f'{trend.risk_level.value.upper()} Risk: Trending {kind} "{identifier}"'


def warning_description(trend: TrendData) -> str:
    platforms = ", ".join(trend.platforms)
    categories = ", ".join(trend.categories[:3])
    return (
        f"Detected harmful trending content across {platforms}. "
        f"Categories: {categories}. Growth rate: {trend.growth_rate:.1f} posts/hour."
    )


def recommended_actions(trend: TrendData) -> list[str]:
    actions: list[str] = []
    if trend.risk_level == RiskLevel.CRITICAL:
        actions += [
            "Immediate human review required",
            "Consider emergency content removal",
            "Notify platform partners",
        ]
    if trend.risk_level == RiskLevel.HIGH:
        actions += [
            "Escalate to senior moderators",
            "Increase monitoring frequency",
            "Prepare response guidelines",
        ]
    if len(trend.platforms) > 2:
        actions.append("Coordinate cross-platform response")
    if "self_harm" in trend.categories:
        actions.append("Alert mental health support teams")
    if "dangerous_challenge" in trend.categories:
        actions.append("Issue safety warnings")
    return actions


def build_warning(trend: TrendData, created_at: Optional[datetime] = None) -> EarlyWarning:
    """Create a new EarlyWarning carrying a snapshot of *trend*."""
    return EarlyWarning(
        id=f"warning_{trend.id}_{uuid.uuid4().hex[:8]}",
        title=warning_title(trend),
        description=warning_description(trend),
        severity=trend.risk_level,
        trend=TrendData.from_dict(trend.to_dict()),
        recommended_actions=recommended_actions(trend),
        created_at=(created_at or utc_now()).isoformat(),
    )
