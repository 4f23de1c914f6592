"""Tests for the priority job queue."""

import threading

import pytest

from sentinel.errors import ContentNotFoundError
from sentinel.jobs.queue import Job, JobQueue, JobState, RetryPolicy


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def _queue(clock, attempts=3, backoff=1.0, **kwargs):
    return JobQueue("test", RetryPolicy(attempts=attempts, backoff_delay=backoff), clock=clock, **kwargs)


def test_retry_policy_delays():
    policy = RetryPolicy(attempts=3, backoff_delay=1.0)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert RetryPolicy(backoff_delay=2.0, backoff_type="fixed").delay_for(3) == 2.0
    with pytest.raises(ValueError):
        RetryPolicy(attempts=0)


def test_lower_priority_number_runs_first(clock):
    queue = _queue(clock)
    seen = []
    queue.process(lambda job: seen.append(job.data["n"]))
    queue.enqueue({"n": "low"}, priority=4)
    queue.enqueue({"n": "critical"}, priority=1)
    queue.enqueue({"n": "high-a"}, priority=2)
    queue.enqueue({"n": "high-b"}, priority=2)

    assert queue.drain() == 4
    assert seen == ["critical", "high-a", "high-b", "low"]


def test_delayed_job_waits_for_clock(clock):
    queue = _queue(clock)
    seen = []
    queue.process(lambda job: seen.append(job.id))
    job = queue.enqueue({}, delay=1.0)

    assert queue.stats()["delayed"] == 1
    assert queue.drain() == 0
    clock.advance(1.0)
    assert queue.drain() == 1
    assert seen == [job.id]
    assert job.state == JobState.COMPLETED


def test_failing_job_retries_with_backoff_then_fails(clock):
    queue = _queue(clock, attempts=3)
    calls = []
    failures = []

    def handler(job):
        calls.append(clock())
        raise RuntimeError("store unreachable")

    queue.process(handler)
    queue.on_fail(lambda job, exc: failures.append((job.id, str(exc))))
    job = queue.enqueue({})

    queue.drain()
    assert job.state == JobState.DELAYED
    clock.advance(1.0)
    queue.drain()
    clock.advance(2.0)
    queue.drain()

    assert job.state == JobState.FAILED
    assert job.attempts_made == 3
    assert calls == [1000.0, 1001.0, 1003.0]
    assert failures == [(job.id, "store unreachable")]

    # no fourth attempt, however long we wait
    clock.advance(3600)
    assert queue.drain() == 0
    assert len(calls) == 3
    assert queue.failed_jobs() == [job]


def test_non_retryable_error_fails_immediately(clock):
    queue = _queue(clock, attempts=5)

    def handler(job):
        raise ContentNotFoundError(job.data["content_id"])

    queue.process(handler)
    job = queue.enqueue({"content_id": "gone"})
    queue.drain()
    assert job.state == JobState.FAILED
    assert job.attempts_made == 1
    assert job.failed_reason == "Content not found: gone"


def test_on_complete_callback(clock):
    queue = _queue(clock)
    done = []
    queue.process(lambda job: None)
    queue.on_complete(lambda job: done.append(job.id))
    job = queue.enqueue({})
    queue.drain()
    assert done == [job.id]


def test_callback_errors_do_not_break_the_queue(clock):
    queue = _queue(clock)
    queue.process(lambda job: None)

    def broken(job):
        raise RuntimeError("callback bug")

    queue.on_complete(broken)
    job = queue.enqueue({})
    queue.drain()
    assert job.state == JobState.COMPLETED


def test_duplicate_pending_job_id_is_not_enqueued(clock):
    queue = _queue(clock)
    first = queue.enqueue({"v": 1}, job_id="escalate:c1:high")
    second = queue.enqueue({"v": 2}, job_id="escalate:c1:high")
    assert second is first
    assert queue.stats()["waiting"] == 1

    queue.process(lambda job: None)
    queue.drain()
    again = queue.enqueue({"v": 3}, job_id="escalate:c1:high")
    assert again is not first
    assert again.state == JobState.WAITING


def test_retry_failed_requeues_with_fresh_attempts(clock):
    queue = _queue(clock, attempts=1)
    outcomes = iter([RuntimeError("down"), None])

    def handler(job):
        exc = next(outcomes)
        if exc:
            raise exc

    queue.process(handler)
    job = queue.enqueue({})
    queue.drain()
    assert job.state == JobState.FAILED

    assert queue.retry_failed(job.id) is job
    assert queue.retry_failed("unknown") is None
    queue.drain()
    assert job.state == JobState.COMPLETED
    assert job.attempts_made == 1


def _fail_when_asked(job):
    if job.data.get("fail"):
        raise RuntimeError("asked to fail")


def test_stats_counts_every_state(clock):
    queue = _queue(clock, attempts=1)
    queue.process(_fail_when_asked)
    queue.enqueue({"fail": True})
    queue.enqueue({})
    queue.drain()
    queue.enqueue({}, delay=5)
    queue.enqueue({})
    assert queue.stats() == {"waiting": 1, "delayed": 1, "active": 0, "completed": 1, "failed": 1}


def test_process_without_handler_raises(clock):
    queue = _queue(clock)
    queue.enqueue({})
    with pytest.raises(RuntimeError):
        queue.process_next()


def test_persistence_recovers_pending_and_interrupted_jobs(tmp_path, clock):
    queue = _queue(clock, base_dir=tmp_path)
    claimed = queue.enqueue({"n": 1})
    untouched = queue.enqueue({"n": 2})
    with queue._cond:
        queue._claim_ready()  # n=1 claimed, then the process dies

    reopened = _queue(clock, base_dir=tmp_path)
    recovered = reopened.get_job(claimed.id)
    assert recovered.state == JobState.WAITING
    assert recovered.attempts_made == 1
    assert reopened.get_job(untouched.id).state == JobState.WAITING

    seen = []
    reopened.process(lambda job: seen.append(job.data["n"]))
    reopened.drain()
    assert sorted(seen) == [1, 2]


def test_completed_jobs_are_trimmed_but_failed_kept(tmp_path, clock):
    queue = _queue(clock, attempts=1, base_dir=tmp_path, keep_completed=2)
    queue.process(_fail_when_asked)
    failed = queue.enqueue({"fail": True})
    for _ in range(5):
        queue.enqueue({})
    queue.drain()
    stats = queue.stats()
    assert stats["completed"] == 2
    assert stats["failed"] == 1
    assert queue.get_job(failed.id).state == JobState.FAILED


def test_job_dict_round_trip():
    job = Job(id="j1", name="lane", data={"a": 1}, priority=2, state=JobState.DELAYED, available_at=5.0)
    assert Job.from_dict(job.to_dict()) == job


def test_worker_threads_process_jobs():
    queue = JobQueue("workers", RetryPolicy(attempts=1), concurrency=3)
    done = threading.Event()
    seen = []
    lock = threading.Lock()

    def handler(job):
        with lock:
            seen.append(job.data["n"])
            if len(seen) == 6:
                done.set()

    queue.process(handler)
    for n in range(6):
        queue.enqueue({"n": n})
    queue.start()
    try:
        assert done.wait(5)
    finally:
        queue.stop()
    assert sorted(seen) == list(range(6))
    assert queue.stats()["completed"] == 6
