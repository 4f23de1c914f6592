"""Tests for urgency, action execution, the response lanes and their audit trail."""

import csv
import io
import json

import httpx
import pytest

from sentinel.config import Settings
from sentinel.errors import TransientError
from sentinel.jobs.queue import JobQueue, JobState, RetryPolicy
from sentinel.models.content import DetectionResult
from sentinel.response.executor import ResponseExecutor, escalation_job_id
from sentinel.response.notifier import SIGNATURE_HEADER, Notifier, compute_signature
from sentinel.response.orchestrator import ResponseOrchestrator
from sentinel.response.response_log import ResponseLog
from sentinel.response.review_lanes import ReviewEntry, ReviewLanes
from sentinel.response.urgency import determine_urgency, initial_delay, job_priority
from sentinel.rules.engine import RuleEngine
from sentinel.rules.models import ActionType, ResponseAction, Severity


class FakeClock:
    def __init__(self):
        self.now = 5000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# --- Urgency ---


@pytest.mark.parametrize(
    "score,expected",
    [
        (0.0, "low"),
        (0.25, "low"),
        (0.49, "low"),
        (0.69, "low"),
        (0.70, "medium"),
        (0.85, "high"),
        (0.95, "critical"),
        (1.0, "critical"),
    ],
)
def test_urgency_from_score(score, expected):
    assert determine_urgency(DetectionResult(score, ["spam"], 0.9, flagged=True)) == expected


@pytest.mark.parametrize("category", ["self_harm", "violence", "dangerous_challenge", "extremism"])
def test_high_risk_category_is_always_critical(category):
    assert determine_urgency(DetectionResult(0.3, [category], 0.9, flagged=True)) == "critical"


def test_urgency_scheduling():
    assert [job_priority(u) for u in ("critical", "high", "medium", "low")] == [1, 2, 3, 4]
    assert initial_delay("critical") == 0.0
    assert initial_delay("high") == 1.0
    assert initial_delay("low", batch_delay=0.25) == 0.25


# --- Executor ---


@pytest.fixture
def escalations(clock):
    return JobQueue("escalation", RetryPolicy(attempts=2, backoff_delay=2.0), clock=clock)


@pytest.fixture
def executor(store, escalations):
    return ResponseExecutor(store, escalations, Notifier())


def _act(kind, severity, reason="rule reason"):
    return ResponseAction(ActionType(kind), Severity(severity), reason=reason)


def test_flag_is_idempotent(executor, store, make_content, detection):
    content = store.save(make_content())
    executor.execute(content.id, _act("flag", "medium"), detection(0.7, "spam"))
    first = store.get(content.id).moderation
    executor.execute(content.id, _act("flag", "medium"), detection(0.7, "spam"))
    second = store.get(content.id).moderation
    assert second.flagged is True
    assert first.flagged == second.flagged
    assert second.details["flagged"]["reason"] == "rule reason"


def test_remove_at_threshold_executes(executor, store, make_content, detection):
    content = store.save(make_content())
    applied = executor.execute(content.id, _act("remove", "critical"), detection(0.95, "self_harm"))
    assert applied.type == ActionType.REMOVE
    moderation = store.get(content.id).moderation
    assert moderation.removed
    assert moderation.details["removed"]["removed_by"] == "automated_system"


def test_remove_below_threshold_is_downgraded(executor, escalations, store, make_content, detection):
    content = store.save(make_content())
    applied = executor.execute(content.id, _act("remove", "high"), detection(0.80, "dangerous_challenge"))

    assert applied.type == ActionType.ESCALATE
    assert applied.severity == Severity.HIGH
    assert applied.metadata["downgraded_from"] == "remove"
    assert "below the auto-action threshold" in applied.reason

    moderation = store.get(content.id).moderation
    assert not moderation.removed
    assert moderation.escalated
    assert moderation.review_priority == "high"
    job = escalations.get_job(escalation_job_id(content.id, "high"))
    assert job.priority == 2
    assert job.data["action"]["metadata"]["downgraded_from"] == "remove"


def test_threshold_is_configurable(store, escalations, make_content, detection):
    executor = ResponseExecutor(store, escalations, auto_action_threshold=0.5)
    content = store.save(make_content())
    executor.execute(content.id, _act("remove", "high"), detection(0.6, "spam"))
    assert store.get(content.id).moderation.removed


def test_escalation_is_enqueued_once_per_content_and_severity(executor, escalations, store, make_content, detection):
    content = store.save(make_content())
    for _ in range(3):
        executor.execute(content.id, _act("escalate", "high"), detection(0.8, "violence"))
    assert escalations.stats()["waiting"] == 1


def test_quarantine_and_warn_markers(executor, store, make_content, detection):
    content = store.save(make_content())
    executor.execute_all(
        content.id,
        [_act("quarantine", "high"), _act("warn", "medium")],
        detection(0.8, "violence"),
    )
    moderation = store.get(content.id).moderation
    assert moderation.quarantined and moderation.requires_review and moderation.user_warned


# --- Notifier ---


def test_notifier_without_webhook_only_builds_payload(detection):
    payload = Notifier().notify("c1", _act("notify", "critical", "crisis"), detection(0.97, "self_harm"))
    assert payload["severity"] == "critical"
    assert payload["categories"] == ["self_harm"]
    assert payload["harmfulness_score"] == 0.97
    assert payload["reason"] == "crisis"


def test_notifier_posts_signed_payload(detection):
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notifier = Notifier("https://hooks.example/alerts", secret="s3cret", client=client)
    payload = notifier.notify("c1", _act("notify", "high"), detection(0.9, "violence"))

    assert len(captured) == 1
    request = captured[0]
    assert request.headers[SIGNATURE_HEADER] == compute_signature(request.content, "s3cret")
    assert json.loads(request.content) == payload


def test_notifier_transport_failure_is_transient(detection):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    notifier = Notifier("https://hooks.example/alerts", client=client)
    with pytest.raises(TransientError):
        notifier.notify("c1", _act("notify", "high"), detection(0.9, "violence"))


# --- Review lanes ---


def test_review_lanes_push_claim_and_sizes(tmp_path):
    lanes = ReviewLanes(tmp_path)
    assert lanes.push(ReviewEntry(content_id="a", severity="high"))
    assert lanes.push(ReviewEntry(content_id="b", severity="high"))
    assert not lanes.push(ReviewEntry(content_id="a", severity="high"))
    assert lanes.push(ReviewEntry(content_id="a", severity="low"))

    assert lanes.sizes() == {"critical": 0, "high": 2, "medium": 0, "low": 1}
    assert [e.content_id for e in lanes.list("high")] == ["a", "b"]
    assert lanes.claim("high").content_id == "a"
    assert lanes.claim("critical") is None
    assert lanes.sizes()["high"] == 1


def test_review_lanes_reject_unknown_severity(tmp_path):
    with pytest.raises(ValueError):
        ReviewEntry(content_id="a", severity="urgent")
    with pytest.raises(ValueError):
        ReviewLanes(tmp_path).list("urgent")


# --- Response log ---


def test_response_log_append_and_export(tmp_path):
    log = ResponseLog(tmp_path)
    detection = DetectionResult(0.9, ["violence"], 0.8, flagged=True)
    log.append("c1", [_act("quarantine", "high")], detection)
    log.append("c2", [_act("flag", "low"), _act("warn", "low")], detection)

    assert [e.content_id for e in log.entries()] == ["c2", "c1"]
    only = log.entries(content_id="c1")
    assert only[0].actions[0]["type"] == "quarantine"
    assert only[0].detection == {"harmfulness_score": 0.9, "categories": ["violence"], "confidence": 0.8}

    rows = list(csv.reader(io.StringIO(log.export("csv"))))
    assert rows[0][:3] == ["id", "timestamp", "content_id"]
    assert rows[1][3] == "flag:low;warn:low"
    assert len(json.loads(log.export("json"))) == 2
    with pytest.raises(ValueError):
        log.export("xml")


# --- Orchestrator ---


@pytest.fixture
def orchestrator(tmp_path, store, clock):
    return ResponseOrchestrator(
        store,
        RuleEngine(),
        ReviewLanes(tmp_path / "review"),
        ResponseLog(tmp_path / "log"),
        settings=Settings(data_dir=tmp_path),
        clock=clock,
    )


def _types(entry):
    return [(a["type"], a["severity"]) for a in entry.actions]


def test_critical_self_harm_is_removed(orchestrator, store, make_content, detection):
    content = store.save(make_content())
    result = detection(0.97, "self_harm")

    job = orchestrator.process_content(content.id, result)
    assert job.priority == 1
    assert job.data["urgency"] == "critical"
    orchestrator.drain()

    assert job.state == JobState.COMPLETED
    moderation = store.get(content.id).moderation
    assert moderation.removed
    entries = orchestrator.response_log.entries(content_id=content.id)
    assert len(entries) == 1
    assert ("remove", "critical") in _types(entries[0])
    assert ("notify", "critical") in _types(entries[0])
    # the generic high-harm rule also asks for a medium review
    assert [e.content_id for e in orchestrator.review_lanes.list("medium")] == [content.id]


def test_viral_violence_is_quarantined_and_escalated(orchestrator, store, make_content, detection):
    content = store.save(make_content(platform="twitter", shares=150))
    orchestrator.process_content(content.id, detection(0.80, "violence"))
    orchestrator.drain()

    moderation = store.get(content.id).moderation
    assert moderation.quarantined and moderation.escalated
    assert not moderation.removed
    entry = orchestrator.response_log.entries(content_id=content.id)[0]
    assert all(kind != "remove" for kind, _ in _types(entry))
    assert [e.content_id for e in orchestrator.review_lanes.list("high")] == [content.id]


def test_misconfigured_remove_is_escalated_instead(orchestrator, store, make_content, detection):
    content = store.save(make_content(platform="tiktok"))
    orchestrator.process_content(content.id, detection(0.80, "dangerous_challenge"))
    orchestrator.drain()

    assert not store.get(content.id).moderation.removed
    entry = orchestrator.response_log.entries(content_id=content.id)[0]
    assert ("remove", "high") not in _types(entry)
    downgraded = [a for a in entry.actions if a.get("metadata", {}).get("downgraded_from") == "remove"]
    assert len(downgraded) == 1
    assert downgraded[0]["type"] == "escalate"
    high_lane = orchestrator.review_lanes.list("high")
    assert high_lane[0].reason.startswith("Removal downgraded to escalation")


def test_non_critical_response_is_delayed_for_batching(orchestrator, store, make_content, detection, clock):
    content = store.save(make_content())
    job = orchestrator.process_content(content.id, detection(0.72, "spam"))
    assert job.priority == 3
    assert orchestrator.drain() == 0
    clock.advance(1.0)
    orchestrator.drain()
    assert job.state == JobState.COMPLETED


def test_reprocessing_same_detection_is_safe(orchestrator, store, make_content, detection):
    content = store.save(make_content(platform="twitter", shares=150))
    for _ in range(2):
        orchestrator.process_content(content.id, detection(0.80, "violence"))
        orchestrator.drain()
    assert orchestrator.review_lanes.sizes()["high"] == 1
    assert len(orchestrator.response_log.entries(content_id=content.id)) == 2


def test_response_job_fails_after_three_attempts(tmp_path, store, make_content, detection, clock):
    calls = []

    def unavailable(request):
        calls.append(request)
        return httpx.Response(503)

    notifier = Notifier("https://hooks.example/alerts", client=httpx.Client(transport=httpx.MockTransport(unavailable)))
    orchestrator = ResponseOrchestrator(
        store,
        RuleEngine(),
        ReviewLanes(tmp_path / "review"),
        ResponseLog(tmp_path / "log"),
        notifier=notifier,
        settings=Settings(data_dir=tmp_path),
        clock=clock,
    )
    content = store.save(make_content())
    job = orchestrator.process_content(content.id, detection(0.97, "self_harm"))

    orchestrator.drain()
    clock.advance(1.0)
    orchestrator.drain()
    clock.advance(2.0)
    orchestrator.drain()

    assert job.state == JobState.FAILED
    assert job.attempts_made == 3
    clock.advance(3600)
    orchestrator.drain()
    assert len(calls) == 3
    assert orchestrator.queue_stats()["automated-response"]["failed"] == 1
    # the removal went through before the webhook failed, so it is on record
    entries = orchestrator.response_log.entries(content_id=content.id)
    assert len(entries) == 1
    assert entries[0].outcome == "failed"
    assert "503" in entries[0].error
    assert ("remove", "critical") in _types(entries[0])
    assert ("notify", "critical") not in _types(entries[0])
    assert store.get(content.id).moderation.removed


def test_missing_content_fails_without_retry(orchestrator, detection):
    job = orchestrator.process_content("ghost", detection(0.97, "self_harm"))
    orchestrator.drain()
    assert job.state == JobState.FAILED
    assert job.attempts_made == 1


def test_submit_detection_attaches_and_queues_response(orchestrator, store, make_content, detection):
    content = store.save(make_content())
    orchestrator.submit_detection(content.id, detection(0.97, "self_harm"))
    orchestrator.drain()

    stored = store.get(content.id)
    assert stored.processing_status == "completed"
    assert stored.detection.harmfulness_score == 0.97
    assert stored.moderation.removed
    assert orchestrator.queue_stats()["automated-response"]["completed"] == 1


def test_unflagged_detection_gets_no_response(orchestrator, store, make_content):
    content = store.save(make_content())
    orchestrator.submit_detection(content.id, DetectionResult(0.1))
    orchestrator.drain()
    assert store.get(content.id).processing_status == "completed"
    assert sum(orchestrator.queue_stats()["automated-response"].values()) == 0


def test_processing_failure_marks_content_failed(orchestrator, store, make_content, detection, clock, monkeypatch):
    content = store.save(make_content())

    def unavailable(content_id, result):
        raise OSError("disk unavailable")

    monkeypatch.setattr(store, "attach_detection", unavailable)
    job = orchestrator.submit_detection(content.id, detection(0.9, "spam"))
    orchestrator.drain()
    for delay in (1, 2, 4, 8):
        clock.advance(delay)
        orchestrator.drain()

    assert job.state == JobState.FAILED
    assert job.attempts_made == 5
    assert store.get(content.id).processing_status == "failed"


def test_unreadable_content_file_is_retried(orchestrator, store, make_content, detection, tmp_path):
    content = store.save(make_content())
    job = orchestrator.process_content(content.id, detection(0.97, "self_harm"))
    (tmp_path / "content" / "content.json").write_text("{")
    orchestrator.drain()

    assert job.state == JobState.DELAYED
    assert job.attempts_made == 1
    assert "unreadable" in job.failed_reason
