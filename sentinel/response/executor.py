"""Applies consolidated response actions to content moderation state.

Every marker write is a plain set, so executing the same action list twice
for the same content and detection leaves the record as it was after the
first run.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from sentinel.jobs.queue import Job, JobQueue
from sentinel.models.content import DetectionResult, utc_now
from sentinel.response.notifier import Notifier
from sentinel.response.urgency import job_priority
from sentinel.rules.models import ActionType, ResponseAction
from sentinel.store.content_store import ContentStore

logger = logging.getLogger(__name__)

AUTOMATED_ACTOR = "automated_system"


def escalation_job_id(content_id: str, severity: str) -> str:
    return f"escalate:{content_id}:{severity}"


def downgrade_removal(action: ResponseAction, score: float, threshold: float) -> ResponseAction:
    """The escalation that replaces a removal whose score is under *threshold*."""
    return ResponseAction(
        type=ActionType.ESCALATE,
        severity=action.severity,
        automated=action.automated,
        reason=(
            f"Removal downgraded to escalation: harmfulness score {score:.2f} "
            f"is below the auto-action threshold {threshold:.2f}"
            + (f" ({action.reason})" if action.reason else "")
        ),
        metadata={**action.metadata, "downgraded_from": ActionType.REMOVE.value},
    )


class ResponseExecutor:
    """Executes one content item's actions in the order given."""

    def __init__(
        self,
        store: ContentStore,
        escalation_queue: JobQueue,
        notifier: Optional[Notifier] = None,
        auto_action_threshold: float = 0.95,
    ) -> None:
        self.store = store
        self.escalation_queue = escalation_queue
        self.notifier = notifier or Notifier()
        self.auto_action_threshold = auto_action_threshold
        self._handlers: dict[ActionType, Callable[[str, ResponseAction, DetectionResult], ResponseAction]] = {
            ActionType.FLAG: self._flag,
            ActionType.REMOVE: self._remove,
            ActionType.ESCALATE: self._escalate,
            ActionType.WARN: self._warn,
            ActionType.QUARANTINE: self._quarantine,
            ActionType.NOTIFY: self._notify,
        }

    def execute(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        """Apply *action* and return the action actually applied."""
        try:
            return self._handlers[action.type](content_id, action, detection)
        except Exception:
            logger.error("Failed to execute %s for content %s", action.type.value, content_id)
            raise

    def execute_all(
        self,
        content_id: str,
        actions: Iterable[ResponseAction],
        detection: DetectionResult,
        applied: Optional[list[ResponseAction]] = None,
    ) -> list[ResponseAction]:
        """Execute *actions* in order, stopping at the first failure.

        Each applied action is appended to *applied* as it completes, so a
        caller passing its own list still sees the prefix that ran when a
        later action raises.
        """
        applied = [] if applied is None else applied
        for action in actions:
            applied.append(self.execute(content_id, action, detection))
        return applied

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _detail(action: ResponseAction, **extra: object) -> dict:
        return {
            "reason": action.reason,
            "severity": action.severity.value,
            "timestamp": utc_now().isoformat(),
            **extra,
        }

    def _flag(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        self.store.update_moderation(
            content_id,
            {"flagged": True},
            {"flagged": self._detail(action, type="automated" if action.automated else "manual")},
        )
        logger.info("Content flagged: %s (%s)", content_id, action.severity.value)
        return action

    def _remove(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        score = detection.harmfulness_score
        if score < self.auto_action_threshold:
            logger.warning(
                "Content %s harmfulness score %.2f below auto-action threshold %.2f, escalating instead",
                content_id, score, self.auto_action_threshold,
            )
            return self._escalate(content_id, downgrade_removal(action, score, self.auto_action_threshold), detection)

        self.store.update_moderation(
            content_id,
            {"removed": True},
            {"removed": self._detail(action, removed_by=AUTOMATED_ACTOR)},
        )
        logger.warning("Content removed: %s (%s)", content_id, action.reason)
        return action

    def _escalate(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        severity = action.severity.value
        job: Job = self.escalation_queue.enqueue(
            {
                "content_id": content_id,
                "action": action.to_dict(),
                "detection": detection.to_dict(),
            },
            priority=job_priority(severity),
            job_id=escalation_job_id(content_id, severity),
        )
        self.store.update_moderation(
            content_id,
            {"escalated": True, "review_priority": severity},
            {"escalated": self._detail(action, job_id=job.id)},
        )
        logger.info("Content escalated to human review: %s (%s)", content_id, severity)
        return action

    def _warn(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        self.store.update_moderation(content_id, {"user_warned": True}, {"user_warned": self._detail(action)})
        logger.info("User warned for content: %s (%s)", content_id, action.reason)
        return action

    def _quarantine(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        self.store.update_moderation(
            content_id,
            {"quarantined": True, "requires_review": True},
            {"quarantined": self._detail(action)},
        )
        logger.info("Content quarantined: %s (%s)", content_id, action.reason)
        return action

    def _notify(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> ResponseAction:
        self.notifier.notify(content_id, action, detection)
        return action
