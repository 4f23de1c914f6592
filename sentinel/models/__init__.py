"""Data shapes consumed from the collectors and classifiers."""

from sentinel.models.content import (
    CATEGORY_VOCABULARY,
    Author,
    Content,
    ContentBody,
    DetectionResult,
    Engagement,
    ModerationState,
)

__all__ = [
    "CATEGORY_VOCABULARY",
    "Author",
    "Content",
    "ContentBody",
    "DetectionResult",
    "Engagement",
    "ModerationState",
]
