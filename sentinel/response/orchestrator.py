"""Wires detection results through the three job lanes.

``content-processing`` attaches a classifier result to its content item,
``automated-response`` matches rules and executes actions, and
``escalation`` files escalated items into the human-review lanes.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from sentinel.config import Settings
from sentinel.errors import ContentNotFoundError
from sentinel.jobs.queue import Job, JobQueue, RetryPolicy
from sentinel.models.content import DetectionResult
from sentinel.response.executor import ResponseExecutor
from sentinel.response.notifier import Notifier
from sentinel.response.response_log import ResponseLog
from sentinel.response.review_lanes import ReviewEntry, ReviewLanes
from sentinel.response.urgency import determine_urgency, initial_delay, job_priority
from sentinel.rules.engine import RuleEngine
from sentinel.rules.models import ResponseAction
from sentinel.store.content_store import ContentStore

logger = logging.getLogger(__name__)

PROCESSING_LANE = "content-processing"
RESPONSE_LANE = "automated-response"
ESCALATION_LANE = "escalation"


class ResponseOrchestrator:
    def __init__(
        self,
        store: ContentStore,
        engine: RuleEngine,
        review_lanes: ReviewLanes,
        response_log: ResponseLog,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
        queues_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.engine = engine
        self.review_lanes = review_lanes
        self.response_log = response_log

        s = self.settings
        self.processing_queue = JobQueue(
            PROCESSING_LANE,
            RetryPolicy(attempts=s.processing_attempts, backoff_delay=1.0),
            concurrency=s.processing_concurrency,
            base_dir=queues_dir,
            clock=clock,
        )
        self.response_queue = JobQueue(
            RESPONSE_LANE,
            RetryPolicy(attempts=s.response_attempts, backoff_delay=1.0),
            concurrency=s.response_concurrency,
            base_dir=queues_dir,
            clock=clock,
        )
        self.escalation_queue = JobQueue(
            ESCALATION_LANE,
            RetryPolicy(attempts=s.escalation_attempts, backoff_delay=2.0),
            concurrency=s.escalation_concurrency,
            base_dir=queues_dir,
            clock=clock,
        )
        self.executor = ResponseExecutor(
            store,
            self.escalation_queue,
            notifier or Notifier(s.notify_webhook_url or None, s.notify_webhook_secret or None),
            auto_action_threshold=s.auto_action_threshold,
        )

        self.processing_queue.process(self._handle_processing)
        self.processing_queue.on_fail(self._processing_failed)
        self.response_queue.process(self._handle_response)
        self.response_queue.on_fail(self._response_failed)
        self.escalation_queue.process(self._handle_escalation)
        for queue in self.queues:
            queue.on_complete(self._log_completed)
            queue.on_fail(self._log_failed)

    @property
    def queues(self) -> tuple[JobQueue, JobQueue, JobQueue]:
        return (self.processing_queue, self.response_queue, self.escalation_queue)

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def submit_detection(self, content_id: str, detection: DetectionResult) -> Job:
        """Queue a classifier result to be attached to its content item."""
        return self.processing_queue.enqueue(
            {"content_id": content_id, "detection": detection.to_dict()}
        )

    def process_content(self, content_id: str, detection: DetectionResult) -> Job:
        """Queue exactly one response job for a flagged content item."""
        urgency = determine_urgency(detection)
        job = self.response_queue.enqueue(
            {"content_id": content_id, "detection": detection.to_dict(), "urgency": urgency},
            priority=job_priority(urgency),
            delay=initial_delay(urgency, self.settings.response_batch_delay_seconds),
        )
        logger.info("Content response queued: %s (%s urgency)", content_id, urgency)
        return job

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_processing(self, job: Job) -> None:
        content_id = job.data["content_id"]
        detection = DetectionResult.from_dict(job.data["detection"])
        self.store.attach_detection(content_id, detection)
        if detection.flagged:
            self.process_content(content_id, detection)

    def _processing_failed(self, job: Job, exc: BaseException) -> None:
        if isinstance(exc, ContentNotFoundError):
            return
        self.store.set_processing_status(job.data["content_id"], "failed")

    def _handle_response(self, job: Job) -> list[ResponseAction]:
        content_id = job.data["content_id"]
        detection = DetectionResult.from_dict(job.data["detection"])
        content = self.store.get(content_id)
        if content is None:
            logger.warning("Data consistency: content %s vanished before its response ran", content_id)
            raise ContentNotFoundError(content_id)

        snapshot = self.engine.snapshot
        actions = self.engine.match(detection, content, snapshot=snapshot)
        applied: list[ResponseAction] = []
        try:
            self.executor.execute_all(content_id, actions, detection, applied=applied)
        except Exception:
            job.data["applied"] = [a.to_dict() for a in applied]
            raise
        self.response_log.append(content_id, applied, detection)
        logger.info(
            "Executed %d actions for content %s under rules v%d",
            len(applied), content_id, snapshot.version,
        )
        return applied

    def _response_failed(self, job: Job, exc: BaseException) -> None:
        if isinstance(exc, ContentNotFoundError):
            return
        applied = [ResponseAction.from_dict(a) for a in job.data.get("applied", [])]
        self.response_log.append(
            job.data["content_id"],
            applied,
            DetectionResult.from_dict(job.data["detection"]),
            outcome="failed",
            error=str(exc),
        )

    def _handle_escalation(self, job: Job) -> None:
        content_id = job.data["content_id"]
        action = ResponseAction.from_dict(job.data["action"])
        detection = DetectionResult.from_dict(job.data["detection"])
        content = self.store.get(content_id)
        self.review_lanes.push(
            ReviewEntry(
                content_id=content_id,
                severity=action.severity.value,
                reason=action.reason,
                harmfulness_score=detection.harmfulness_score,
                categories=list(detection.categories),
                platform=content.platform if content else "",
            )
        )

    @staticmethod
    def _log_completed(job: Job) -> None:
        logger.debug("%s job %s completed", job.name, job.id)

    @staticmethod
    def _log_failed(job: Job, exc: BaseException) -> None:
        logger.error("%s job %s failed: %s", job.name, job.id, exc)

    # ------------------------------------------------------------------
    # Lifecycle and inspection
    # ------------------------------------------------------------------

    def lane(self, name: str) -> JobQueue:
        for queue in self.queues:
            if queue.name == name:
                return queue
        raise KeyError(f"Unknown job lane: {name}")

    def queue_stats(self) -> dict[str, dict[str, int]]:
        return {queue.name: queue.stats() for queue in self.queues}

    def start(self) -> None:
        for queue in self.queues:
            queue.start()

    def stop(self) -> None:
        for queue in self.queues:
            queue.stop()

    def drain(self) -> int:
        """Run every ready job in every lane on the calling thread."""
        total = 0
        while True:
            processed = sum(queue.drain() for queue in self.queues)
            if not processed:
                return total
            total += processed
