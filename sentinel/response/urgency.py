"""Urgency classification for flagged content and its queue scheduling."""

from __future__ import annotations

from sentinel.models.content import DetectionResult

HIGH_RISK_CATEGORIES = frozenset({"self_harm", "violence", "dangerous_challenge", "extremism"})

URGENCY_LEVELS = ("critical", "high", "medium", "low")

_JOB_PRIORITY = {"critical": 1, "high": 2, "medium": 3, "low": 4}


def determine_urgency(detection: DetectionResult) -> str:
    score = detection.harmfulness_score
    if score >= 0.95 or HIGH_RISK_CATEGORIES.intersection(detection.categories):
        return "critical"
    if score >= 0.85:
        return "high"
    if score >= 0.70:
        return "medium"
    return "low"


def job_priority(urgency: str) -> int:
    """Queue priority for an urgency level; lower numbers are served first."""
    return _JOB_PRIORITY[urgency]


def initial_delay(urgency: str, batch_delay: float = 1.0) -> float:
    """Critical jobs run at once; the rest wait briefly so they can batch."""
    return 0.0 if urgency == "critical" else batch_delay
