"""Trend scorer -- virality, growth rate and risk classification.

All functions here are pure: they take raw aggregates and return scores,
so the math can be tested without a content store.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Iterable

from sentinel.trends.models import RiskLevel

DEFAULT_VIRALITY_THRESHOLD = 1000.0

# Risk breakpoints, highest first. Order must stay critical > high > medium > low.
RISK_BREAKPOINTS: tuple[tuple[float, RiskLevel], ...] = (
    (0.85, RiskLevel.CRITICAL),
    (0.70, RiskLevel.HIGH),
    (0.50, RiskLevel.MEDIUM),
)


def virality_score(
    content_count: int,
    average_engagement: float,
    virality_threshold: float = DEFAULT_VIRALITY_THRESHOLD,
) -> float:
    """Blend of volume (saturating at 100 items) and mean engagement."""
    content_part = min(content_count / 100.0, 1.0)
    engagement_part = min(average_engagement / virality_threshold, 1.0)
    return (content_part + engagement_part) / 2.0


def growth_rate(first_seen: datetime, last_seen: datetime, content_count: int) -> float:
    """Items per hour across the observed span; a zero span yields 0."""
    span_hours = (last_seen - first_seen).total_seconds() / 3600.0
    if span_hours <= 0:
        return 0.0
    return content_count / span_hours


def risk_score(harmfulness: float, virality: float, platform_count: int) -> float:
    spread = min(max(platform_count, 1) / 5.0, 1.0)
    return 0.5 * harmfulness + 0.3 * virality + 0.2 * spread


def classify_risk(score: float) -> RiskLevel:
    for threshold, level in RISK_BREAKPOINTS:
        if score >= threshold:
            return level
    return RiskLevel.LOW


def _normalize(values: Iterable[str]) -> list[str]:
    return sorted({v.strip().lower() for v in values if v and v.strip()})


def trend_key(hashtags: Iterable[str], keywords: Iterable[str], categories: Iterable[str]) -> str:
    """Normalized signal-set key used for identity and deduplication."""
    return "|".join(
        ",".join(_normalize(part)) for part in (hashtags, keywords, categories)
    )


def trend_id(key: str) -> str:
    return "trend_" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
