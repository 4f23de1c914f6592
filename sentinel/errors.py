"""Exception hierarchy shared by the trend pipeline and the response lanes."""

from __future__ import annotations


class SentinelError(Exception):
    """Base class for all errors raised by sentinel."""


class NonRetryableError(SentinelError):
    """A job failure that must not be retried."""


class ContentNotFoundError(NonRetryableError):
    """The content record vanished between enqueue and processing."""

    def __init__(self, content_id: str) -> None:
        super().__init__(f"Content not found: {content_id}")
        self.content_id = content_id


class TransientError(SentinelError):
    """A failure of an external collaborator that is worth retrying."""


class RuleValidationError(SentinelError, ValueError):
    """An escalation rule definition is malformed."""
