"""Automated response: urgency, action execution and the job lanes."""

from sentinel.response.executor import ResponseExecutor
from sentinel.response.orchestrator import ResponseOrchestrator
from sentinel.response.response_log import ResponseLog
from sentinel.response.review_lanes import ReviewEntry, ReviewLanes
from sentinel.response.urgency import determine_urgency

__all__ = [
    "ResponseExecutor",
    "ResponseOrchestrator",
    "ResponseLog",
    "ReviewEntry",
    "ReviewLanes",
    "determine_urgency",
]
