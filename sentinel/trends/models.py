"""Trend and early-warning records kept by the trend ledger."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class RiskLevel(Enum):
    """Four-tier trend risk classification, ordered low to critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @property
    def promotes(self) -> bool:
        """Whether a trend at this level produces an early warning."""
        return self in (RiskLevel.HIGH, RiskLevel.CRITICAL)


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


@dataclass
class TrendData:
    """A candidate cluster of flagged content sharing signals.

    ``id`` is derived from the normalized signal set, so later scan cycles
    observing the same cluster replace this record instead of adding one.
    """

    id: str
    hashtags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    harmfulness_score: float = 0.0
    virality_score: float = 0.0
    growth_rate: float = 0.0
    first_detected: str = ""
    last_updated: str = ""
    content_count: int = 0
    average_engagement: float = 0.0
    categories: list[str] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    source: str = ""  # "hashtag" | "keyword" | "cross_platform"

    @property
    def rank_score(self) -> float:
        return self.harmfulness_score * self.virality_score

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrendData:
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        fields["risk_level"] = RiskLevel(data.get("risk_level", "low"))
        return cls(**fields)


@dataclass
class EarlyWarning:
    """Alert raised for a high/critical trend. Never rewritten once created."""

    id: str
    title: str
    description: str
    severity: RiskLevel
    trend: TrendData
    recommended_actions: list[str] = field(default_factory=list)
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "trend": self.trend.to_dict(),
            "recommended_actions": list(self.recommended_actions),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EarlyWarning:
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            severity=RiskLevel(data["severity"]),
            trend=TrendData.from_dict(data["trend"]),
            recommended_actions=list(data.get("recommended_actions", [])),
            created_at=data.get("created_at", ""),
        )


@dataclass
class Acknowledgement:
    """A moderator acknowledging a warning; stored beside, not inside, it."""

    warning_id: str
    actor: str
    comment: str = ""
    acknowledged_at: str = ""
