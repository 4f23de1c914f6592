"""Priority job queue with delays, retry/backoff and a bounded worker pool.

Jobs carry JSON-serializable ``data`` and an integer priority (lower is
served first).  A job may be delayed on enqueue; a failed attempt is
re-delayed by the queue's backoff policy until its attempts run out, after
which it stays in the ``failed`` state for inspection and manual retry.

When a ``base_dir`` is given the queue writes its jobs to
``<base_dir>/<name>.json`` after every state change, and jobs found
``active`` on startup are put back in line.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from sentinel.errors import NonRetryableError
from sentinel.store.jsonfile import read_json, write_json

logger = logging.getLogger(__name__)


class JobState(Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


_PENDING = (JobState.WAITING, JobState.DELAYED)


@dataclass
class RetryPolicy:
    """How many times a job is attempted and how long to wait in between."""

    attempts: int = 3
    backoff_delay: float = 1.0  # seconds
    backoff_type: str = "exponential"  # "exponential" | "fixed"

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.backoff_type not in ("exponential", "fixed"):
            raise ValueError(f"Unknown backoff type: {self.backoff_type}")

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows failed attempt number *attempt*."""
        if self.backoff_type == "fixed":
            return self.backoff_delay
        return self.backoff_delay * (2 ** (attempt - 1))


@dataclass
class Job:
    id: str
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    priority: int = 4
    max_attempts: int = 3
    attempts_made: int = 0
    state: JobState = JobState.WAITING
    available_at: float = 0.0
    created_at: float = 0.0
    finished_at: Optional[float] = None
    failed_reason: str = ""
    seq: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        fields["state"] = JobState(data.get("state", "waiting"))
        return cls(**fields)


JobHandler = Callable[[Job], None]
CompleteCallback = Callable[[Job], None]
FailCallback = Callable[[Job, BaseException], None]


class JobQueue:
    """A named job lane served by up to ``concurrency`` worker threads."""

    def __init__(
        self,
        name: str,
        retry: Optional[RetryPolicy] = None,
        concurrency: int = 1,
        base_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
        keep_completed: int = 100,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.name = name
        self.retry = retry or RetryPolicy()
        self.concurrency = concurrency
        self.keep_completed = keep_completed
        self._clock = clock
        self._handler: Optional[JobHandler] = None
        self._on_complete: list[CompleteCallback] = []
        self._on_fail: list[FailCallback] = []
        self._jobs: dict[str, Job] = {}
        self._seq = 0
        self._cond = threading.Condition()
        self._workers: list[threading.Thread] = []
        self._stopping = False

        self._path: Optional[Path] = None
        if base_dir is not None:
            base = Path(base_dir)
            base.mkdir(parents=True, exist_ok=True)
            self._path = base / f"{name}.json"
            self._load()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        now = self._clock()
        for entry in read_json(self._path, []):
            job = Job.from_dict(entry)
            if job.state == JobState.ACTIVE:
                # Interrupted mid-attempt; the attempt counts.
                job.state = JobState.WAITING
                job.available_at = now
            self._jobs[job.id] = job
            self._seq = max(self._seq, job.seq)
        recovered = sum(1 for j in self._jobs.values() if j.state in _PENDING)
        if recovered:
            logger.info("Queue %s recovered %d pending jobs", self.name, recovered)

    def _persist(self) -> None:
        if self._path is None:
            return
        self._trim_completed()
        data = [j.to_dict() for j in sorted(self._jobs.values(), key=lambda j: j.seq)]
        write_json(self._path, data)

    def _trim_completed(self) -> None:
        completed = [j for j in self._jobs.values() if j.state == JobState.COMPLETED]
        if len(completed) <= self.keep_completed:
            return
        completed.sort(key=lambda j: j.finished_at or 0.0)
        for job in completed[: len(completed) - self.keep_completed]:
            del self._jobs[job.id]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def process(self, handler: JobHandler) -> None:
        """Register the function that runs each job."""
        self._handler = handler

    def on_complete(self, callback: CompleteCallback) -> None:
        self._on_complete.append(callback)

    def on_fail(self, callback: FailCallback) -> None:
        """Register a callback fired once a job has failed for good."""
        self._on_fail.append(callback)

    # ------------------------------------------------------------------
    # Producing
    # ------------------------------------------------------------------

    def enqueue(
        self,
        data: dict[str, Any],
        priority: int = 4,
        delay: float = 0.0,
        job_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Job:
        """Add a job. A *job_id* that is still pending or active is not added twice."""
        with self._cond:
            if job_id is not None:
                existing = self._jobs.get(job_id)
                if existing is not None and existing.state in (*_PENDING, JobState.ACTIVE):
                    return existing
            now = self._clock()
            self._seq += 1
            job = Job(
                id=job_id or uuid.uuid4().hex[:16],
                name=name or self.name,
                data=data,
                priority=priority,
                max_attempts=self.retry.attempts,
                state=JobState.DELAYED if delay > 0 else JobState.WAITING,
                available_at=now + max(delay, 0.0),
                created_at=now,
                seq=self._seq,
            )
            self._jobs[job.id] = job
            self._persist()
            self._cond.notify()
        return job

    def retry_failed(self, job_id: str) -> Optional[Job]:
        """Put a failed job back in line with its attempt count reset."""
        with self._cond:
            job = self._jobs.get(job_id)
            if job is None or job.state != JobState.FAILED:
                return None
            job.state = JobState.WAITING
            job.attempts_made = 0
            job.failed_reason = ""
            job.finished_at = None
            job.available_at = self._clock()
            self._persist()
            self._cond.notify()
        logger.info("Queue %s: job %s re-queued by operator", self.name, job_id)
        return job

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------

    def _claim_ready(self) -> Optional[Job]:
        now = self._clock()
        ready = [j for j in self._jobs.values() if j.state in _PENDING and j.available_at <= now]
        if not ready:
            return None
        job = min(ready, key=lambda j: (j.priority, j.seq))
        job.state = JobState.ACTIVE
        job.attempts_made += 1
        self._persist()
        return job

    def _seconds_until_next(self) -> Optional[float]:
        pending = [j.available_at for j in self._jobs.values() if j.state in _PENDING]
        if not pending:
            return None
        return max(min(pending) - self._clock(), 0.0)

    def _run(self, job: Job) -> None:
        if self._handler is None:
            raise RuntimeError(f"No handler registered for queue {self.name}")
        try:
            self._handler(job)
        except NonRetryableError as exc:
            self._fail(job, exc, permanent=True)
        except Exception as exc:
            if job.attempts_made >= job.max_attempts:
                self._fail(job, exc, permanent=False)
            else:
                self._reschedule(job, exc)
        else:
            self._complete(job)

    def _complete(self, job: Job) -> None:
        with self._cond:
            job.state = JobState.COMPLETED
            job.finished_at = self._clock()
            self._persist()
        logger.info("Queue %s: job %s completed", self.name, job.id)
        for callback in self._on_complete:
            try:
                callback(job)
            except Exception:
                logger.exception("Queue %s: on_complete callback failed for %s", self.name, job.id)

    def _reschedule(self, job: Job, exc: BaseException) -> None:
        delay = self.retry.delay_for(job.attempts_made)
        with self._cond:
            job.state = JobState.DELAYED
            job.failed_reason = str(exc)
            job.available_at = self._clock() + delay
            self._persist()
            self._cond.notify()
        logger.warning(
            "Queue %s: job %s attempt %d/%d failed (%s); retrying in %.1fs",
            self.name, job.id, job.attempts_made, job.max_attempts, exc, delay,
        )

    def _fail(self, job: Job, exc: BaseException, permanent: bool) -> None:
        with self._cond:
            job.state = JobState.FAILED
            job.failed_reason = str(exc)
            job.finished_at = self._clock()
            self._persist()
        if permanent:
            logger.warning("Queue %s: job %s failed permanently: %s", self.name, job.id, exc)
        else:
            logger.error(
                "Queue %s: job %s failed after %d attempts: %s",
                self.name, job.id, job.attempts_made, exc,
            )
        for callback in self._on_fail:
            try:
                callback(job, exc)
            except Exception:
                logger.exception("Queue %s: on_fail callback failed for %s", self.name, job.id)

    def process_next(self) -> Optional[Job]:
        """Run the best ready job on the calling thread, if there is one."""
        with self._cond:
            job = self._claim_ready()
        if job is None:
            return None
        self._run(job)
        return job

    def drain(self) -> int:
        """Run ready jobs on the calling thread until none are left ready."""
        processed = 0
        while self.process_next() is not None:
            processed += 1
        return processed

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                if self._stopping:
                    return
                job = self._claim_ready()
                if job is None:
                    wait = self._seconds_until_next()
                    self._cond.wait(timeout=min(wait, 1.0) if wait is not None else 1.0)
                    continue
            try:
                self._run(job)
            except Exception:
                logger.exception("Queue %s: worker crashed running job %s", self.name, job.id)

    def start(self) -> None:
        """Start ``concurrency`` worker threads."""
        if self._workers:
            return
        self._stopping = False
        for i in range(self.concurrency):
            worker = threading.Thread(
                target=self._worker_loop, name=f"{self.name}-worker-{i}", daemon=True
            )
            worker.start()
            self._workers.append(worker)
        logger.info("Queue %s started with %d workers", self.name, self.concurrency)

    def stop(self, timeout: float = 5.0) -> None:
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        for worker in self._workers:
            worker.join(timeout=timeout)
        self._workers = []

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def jobs(self, state: Optional[JobState] = None) -> list[Job]:
        with self._cond:
            jobs = sorted(self._jobs.values(), key=lambda j: j.seq)
        if state is None:
            return jobs
        now = self._clock()
        return [j for j in jobs if self._effective_state(j, now) == state]

    def failed_jobs(self) -> list[Job]:
        return self.jobs(JobState.FAILED)

    @staticmethod
    def _effective_state(job: Job, now: float) -> JobState:
        if job.state in _PENDING:
            return JobState.DELAYED if job.available_at > now else JobState.WAITING
        return job.state

    def stats(self) -> dict[str, int]:
        counts = {state.value: 0 for state in JobState}
        now = self._clock()
        with self._cond:
            for job in self._jobs.values():
                counts[self._effective_state(job, now).value] += 1
        return counts
