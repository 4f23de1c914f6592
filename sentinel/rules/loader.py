"""Loading escalation rules from YAML and plain dicts.

A rule file looks like::

    rules:
      - id: high_violence_viral
        name: High Violence with Viral Potential
        priority: 90
        enabled: true
        conditions:
          categories: [violence]
          harmfulness_score: {min: 0.75}
          virality_indicators: true
        actions:
          - type: quarantine
            severity: high
            reason: Violent content with viral potential
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from sentinel.errors import RuleValidationError
from sentinel.rules.models import (
    ActionType,
    EscalationRule,
    ResponseAction,
    RuleConditions,
    ScoreRange,
    Severity,
)

DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "id": "critical_self_harm",
        "name": "Critical Self-Harm Content",
        "conditions": {"categories": ["self_harm"], "harmfulness_score": {"min": 0.8}},
        "actions": [
            {"type": "remove", "severity": "critical", "reason": "Self-harm content detected"},
            {"type": "notify", "severity": "critical", "reason": "Mental health crisis alert"},
        ],
        "priority": 100,
    },
    {
        "id": "high_violence_viral",
        "name": "High Violence with Viral Potential",
        "conditions": {
            "categories": ["violence"],
            "harmfulness_score": {"min": 0.75},
            "virality_indicators": True,
        },
        "actions": [
            {"type": "quarantine", "severity": "high", "reason": "Violent content with viral potential"},
            {"type": "escalate", "severity": "high", "reason": "Human review required for viral violent content"},
        ],
        "priority": 90,
    },
    {
        "id": "moderate_hate_speech",
        "name": "Moderate Hate Speech",
        "conditions": {"categories": ["hate_speech"], "harmfulness_score": {"min": 0.6, "max": 0.85}},
        "actions": [
            {"type": "flag", "severity": "medium", "reason": "Hate speech detected"},
            {"type": "warn", "severity": "medium", "reason": "Community guidelines violation"},
        ],
        "priority": 70,
    },
    {
        "id": "dangerous_challenge_tiktok",
        "name": "Dangerous Challenge on TikTok",
        "conditions": {
            "categories": ["dangerous_challenge"],
            "platforms": ["tiktok"],
            "harmfulness_score": {"min": 0.7},
        },
        "actions": [
            {"type": "remove", "severity": "high", "reason": "Dangerous challenge removed for safety"},
            {"type": "notify", "severity": "high", "reason": "Dangerous trend alert"},
        ],
        "priority": 85,
    },
    {
        "id": "low_confidence_high_harm",
        "name": "Low Confidence High Harm Score",
        "conditions": {"harmfulness_score": {"min": 0.8}, "confidence": {"min": 0.0}},
        "actions": [
            {"type": "escalate", "severity": "medium", "reason": "Low confidence high harm - needs human review"},
        ],
        "priority": 60,
    },
]


def _score_range(data: Any, field_name: str) -> ScoreRange | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise RuleValidationError(f"{field_name} must be a mapping with min/max")
    low, high = data.get("min"), data.get("max")
    for bound in (low, high):
        if bound is not None and not 0.0 <= float(bound) <= 1.0:
            raise RuleValidationError(f"{field_name} bounds must be within [0, 1]")
    if low is not None and high is not None and float(low) > float(high):
        raise RuleValidationError(f"{field_name} min is greater than max")
    return ScoreRange(
        min=float(low) if low is not None else None,
        max=float(high) if high is not None else None,
    )


def _name_list(data: Any, field_name: str) -> tuple[str, ...]:
    if data is None:
        return ()
    if not isinstance(data, (list, tuple)) or not all(isinstance(v, str) for v in data):
        raise RuleValidationError(f"{field_name} must be a list of names, got {data!r}")
    return tuple(data)


def action_from_dict(data: dict[str, Any]) -> ResponseAction:
    try:
        return ResponseAction.from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise RuleValidationError(f"Invalid action {data!r}: {exc}") from exc


def rule_from_dict(data: dict[str, Any]) -> EscalationRule:
    """Build an EscalationRule, raising RuleValidationError on bad input."""
    if not data.get("id"):
        raise RuleValidationError("Escalation rule needs an id")
    cond = data.get("conditions") or {}
    if not isinstance(cond, dict):
        raise RuleValidationError(f"Escalation rule {data['id']} conditions must be a mapping")
    confidence = _score_range(cond.get("confidence"), "confidence")
    conditions = RuleConditions(
        harmfulness_score=_score_range(cond.get("harmfulness_score"), "harmfulness_score"),
        confidence_min=confidence.min if confidence else None,
        categories=_name_list(cond.get("categories"), "categories"),
        platforms=_name_list(cond.get("platforms"), "platforms"),
        virality_indicators=bool(cond.get("virality_indicators", False)),
    )
    raw_actions = data.get("actions") or []
    if not isinstance(raw_actions, list):
        raise RuleValidationError(f"Escalation rule {data['id']} actions must be a list")
    actions = tuple(action_from_dict(a) for a in raw_actions)
    if not actions:
        raise RuleValidationError(f"Escalation rule {data['id']} has no actions")
    return EscalationRule(
        id=str(data["id"]),
        name=data.get("name") or data["id"],
        conditions=conditions,
        actions=actions,
        priority=int(data.get("priority", 0)),
        enabled=bool(data.get("enabled", True)),
    )


def rule_to_dict(rule: EscalationRule) -> dict[str, Any]:
    cond = rule.conditions
    conditions: dict[str, Any] = {}
    if cond.harmfulness_score is not None:
        conditions["harmfulness_score"] = {
            k: v
            for k, v in (("min", cond.harmfulness_score.min), ("max", cond.harmfulness_score.max))
            if v is not None
        }
    if cond.confidence_min is not None:
        conditions["confidence"] = {"min": cond.confidence_min}
    if cond.categories:
        conditions["categories"] = list(cond.categories)
    if cond.platforms:
        conditions["platforms"] = list(cond.platforms)
    if cond.virality_indicators:
        conditions["virality_indicators"] = True
    return {
        "id": rule.id,
        "name": rule.name,
        "conditions": conditions,
        "actions": [a.to_dict() for a in rule.actions],
        "priority": rule.priority,
        "enabled": rule.enabled,
    }


def default_rules() -> list[EscalationRule]:
    return [rule_from_dict(d) for d in DEFAULT_RULES]


def load_rules(path: str | Path) -> list[EscalationRule]:
    """Load escalation rules from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    entries = data.get("rules", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise RuleValidationError(f"{path}: 'rules' must be a list")
    return [rule_from_dict(entry) for entry in entries]
