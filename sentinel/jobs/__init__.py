"""In-process durable job lanes used by the response orchestrator."""

from sentinel.jobs.queue import Job, JobQueue, JobState, RetryPolicy

__all__ = ["Job", "JobQueue", "JobState", "RetryPolicy"]
