"""Escalation rule engine -- condition matching and action consolidation.

Matching is a pure function of a detection result, the content it belongs
to and one immutable snapshot of the rule set.  Reloading rules swaps the
whole snapshot; a match already in progress keeps the snapshot it started
with.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from sentinel.models.content import Content, DetectionResult, Engagement, utc_now
from sentinel.rules.models import EscalationRule, ResponseAction, action_priority

logger = logging.getLogger(__name__)

VIRAL_ENGAGEMENT_THRESHOLD = 1000
VIRAL_SHARES_THRESHOLD = 100
VIRAL_VIEWS_THRESHOLD = 10000


def is_viral(engagement: Engagement) -> bool:
    """Any one of total engagement, shares or views over its threshold."""
    return (
        engagement.total > VIRAL_ENGAGEMENT_THRESHOLD
        or engagement.shares > VIRAL_SHARES_THRESHOLD
        or (engagement.views or 0) > VIRAL_VIEWS_THRESHOLD
    )


def rule_matches(rule: EscalationRule, detection: DetectionResult, content: Content) -> bool:
    """Check every specified condition of an enabled rule."""
    if not rule.enabled:
        return False
    cond = rule.conditions

    if cond.harmfulness_score is not None and not cond.harmfulness_score.contains(
        detection.harmfulness_score
    ):
        return False

    if cond.confidence_min is not None and detection.confidence < cond.confidence_min:
        return False

    if cond.categories and not any(cat in detection.categories for cat in cond.categories):
        return False

    if cond.platforms and content.platform not in cond.platforms:
        return False

    if cond.virality_indicators and not is_viral(content.engagement):
        return False

    return True


def find_applicable_rules(
    rules: Iterable[EscalationRule], detection: DetectionResult, content: Content
) -> list[EscalationRule]:
    """Matching rules, highest rule priority first."""
    matched = [r for r in rules if rule_matches(r, detection, content)]
    matched.sort(key=lambda r: r.priority, reverse=True)
    return matched


def consolidate_actions(actions: Iterable[ResponseAction]) -> list[ResponseAction]:
    """Keep one action per (type, severity) and order by action priority.

    *actions* must arrive in rule-priority order; the first occurrence of a
    (type, severity) pair wins.  Applying this to its own output returns
    the same list.
    """
    kept: dict[tuple, ResponseAction] = {}
    for action in actions:
        kept.setdefault(action.key, action)
    return sorted(kept.values(), key=action_priority, reverse=True)


@dataclass(frozen=True)
class RuleSnapshot:
    """One complete, immutable version of the rule set."""

    rules: tuple[EscalationRule, ...]
    version: int
    loaded_at: str


class RuleEngine:
    """Holds the current rule snapshot and matches content against it."""

    def __init__(self, rules: Optional[Iterable[EscalationRule]] = None) -> None:
        if rules is None:
            from sentinel.rules.loader import default_rules

            rules = default_rules()
        self._swap_lock = threading.Lock()
        self._snapshot = RuleSnapshot(tuple(rules), 1, utc_now().isoformat())

    @property
    def snapshot(self) -> RuleSnapshot:
        return self._snapshot

    def rules(self) -> list[EscalationRule]:
        return list(self._snapshot.rules)

    def reload(self, rules: Iterable[EscalationRule]) -> RuleSnapshot:
        """Replace the whole rule set in one step."""
        new_rules = tuple(rules)
        ids = [r.id for r in new_rules]
        if len(ids) != len(set(ids)):
            raise ValueError("Escalation rule ids must be unique")
        with self._swap_lock:
            snapshot = RuleSnapshot(new_rules, self._snapshot.version + 1, utc_now().isoformat())
            self._snapshot = snapshot
        logger.info(
            "Escalation rules updated: %d rules loaded (version %d)",
            len(new_rules),
            snapshot.version,
        )
        return snapshot

    def match(
        self,
        detection: DetectionResult,
        content: Content,
        snapshot: Optional[RuleSnapshot] = None,
    ) -> list[ResponseAction]:
        """Consolidated actions for *content* under one rule snapshot."""
        snap = snapshot or self._snapshot
        applicable = find_applicable_rules(snap.rules, detection, content)
        if applicable:
            logger.debug(
                "Content %s matched rules: %s", content.id, ", ".join(r.id for r in applicable)
            )
        return consolidate_actions(a for rule in applicable for a in rule.actions)
