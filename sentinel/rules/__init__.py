"""Escalation rules -- declarative condition matching for per-item response."""

from sentinel.rules.engine import RuleEngine, RuleSnapshot, consolidate_actions, is_viral
from sentinel.rules.models import ActionType, EscalationRule, ResponseAction, Severity

__all__ = [
    "ActionType",
    "EscalationRule",
    "ResponseAction",
    "RuleEngine",
    "RuleSnapshot",
    "Severity",
    "consolidate_actions",
    "is_viral",
]
