"""Escalation rules and the response actions they produce."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ActionType(Enum):
    """What the executor does to a content item."""

    FLAG = "flag"
    REMOVE = "remove"
    ESCALATE = "escalate"
    WARN = "warn"
    QUARANTINE = "quarantine"
    NOTIFY = "notify"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


TYPE_WEIGHT: dict[ActionType, int] = {
    ActionType.REMOVE: 5,
    ActionType.QUARANTINE: 4,
    ActionType.ESCALATE: 3,
    ActionType.FLAG: 2,
    ActionType.WARN: 1,
    ActionType.NOTIFY: 1,
}

SEVERITY_WEIGHT: dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


@dataclass(frozen=True)
class ResponseAction:
    """A single moderation step produced by rule matching."""

    type: ActionType
    severity: Severity
    automated: bool = True
    reason: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> tuple[ActionType, Severity]:
        return (self.type, self.severity)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "automated": self.automated,
            "reason": self.reason,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseAction:
        return cls(
            type=ActionType(data["type"]),
            severity=Severity(data["severity"]),
            automated=bool(data.get("automated", True)),
            reason=data.get("reason", ""),
            metadata=dict(data.get("metadata") or {}),
        )


def action_priority(action: ResponseAction) -> int:
    """Execution weight: type weight x severity weight."""
    return TYPE_WEIGHT[action.type] * SEVERITY_WEIGHT[action.severity]


@dataclass(frozen=True)
class ScoreRange:
    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass(frozen=True)
class RuleConditions:
    """Flat conditions; anything left unset matches vacuously."""

    harmfulness_score: Optional[ScoreRange] = None
    confidence_min: Optional[float] = None
    categories: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()
    virality_indicators: bool = False


@dataclass(frozen=True)
class EscalationRule:
    """An operator-configured condition -> actions mapping."""

    id: str
    name: str
    conditions: RuleConditions = field(default_factory=RuleConditions)
    actions: tuple[ResponseAction, ...] = ()
    priority: int = 0
    enabled: bool = True
