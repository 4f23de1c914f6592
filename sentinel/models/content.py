"""Content records and the per-item detection result attached to them.

The content identity and engagement fields are owned by the collectors;
the core only writes the moderation-state markers.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

CATEGORY_VOCABULARY: frozenset[str] = frozenset(
    {
        "hate_speech",
        "cyberbullying",
        "harassment",
        "dangerous_challenge",
        "self_harm",
        "violence",
        "sexual_content",
        "misinformation",
        "spam",
        "fraud",
        "illegal_activity",
        "extremism",
    }
)

PROCESSING_STATUSES = ("pending", "processing", "completed", "failed")

MODERATION_MARKERS = (
    "flagged",
    "removed",
    "escalated",
    "quarantined",
    "user_warned",
    "requires_review",
)


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def snake_keys(value: Any) -> Any:
    """Recursively rewrite camelCase dict keys (``platformId``) as snake_case."""
    if isinstance(value, dict):
        return {_CAMEL_BOUNDARY.sub(r"_\1", k).lower(): snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snake_keys(v) for v in value]
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class Engagement:
    likes: int = 0
    shares: int = 0
    comments: int = 0
    views: Optional[int] = None

    @property
    def total(self) -> int:
        """Likes, shares and comments combined (views excluded)."""
        return self.likes + self.shares + self.comments


@dataclass
class ContentBody:
    text: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None


@dataclass
class Author:
    id: str = ""
    username: str = ""
    display_name: str = ""
    follower_count: int = 0
    verified: bool = False


@dataclass
class DetectionResult:
    """Output of one classifier pass over a content item (read-only input)."""

    harmfulness_score: float
    categories: list[str] = field(default_factory=list)
    confidence: float = 0.0
    flagged: bool = False
    reasoning: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.harmfulness_score <= 1.0:
            raise ValueError(f"harmfulness_score out of range: {self.harmfulness_score}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.flagged:
            if not self.categories:
                raise ValueError("a flagged detection result needs at least one category")
            unknown = sorted(set(self.categories) - CATEGORY_VOCABULARY)
            if unknown:
                raise ValueError(f"unknown categories: {', '.join(unknown)}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectionResult:
        return cls(
            harmfulness_score=float(data["harmfulness_score"]),
            categories=list(data.get("categories", [])),
            confidence=float(data.get("confidence", 0.0)),
            flagged=bool(data.get("flagged", False)),
            reasoning=data.get("reasoning"),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "harmfulness_score": self.harmfulness_score,
            "categories": list(self.categories),
            "confidence": self.confidence,
        }


@dataclass
class ModerationState:
    """Moderation markers written by the response executor.

    Markers are booleans that are only ever set, so writing the same marker
    twice leaves the record unchanged apart from its detail entry.
    """

    flagged: bool = False
    removed: bool = False
    escalated: bool = False
    quarantined: bool = False
    user_warned: bool = False
    requires_review: bool = False
    review_priority: str = ""
    details: dict[str, dict[str, Any]] = field(default_factory=dict)

    def apply(self, markers: dict[str, Any], details: Optional[dict[str, dict[str, Any]]] = None) -> None:
        for name, value in markers.items():
            if name not in MODERATION_MARKERS and name != "review_priority":
                raise ValueError(f"Unknown moderation marker: {name}")
            setattr(self, name, value)
        for name, detail in (details or {}).items():
            self.details[name] = dict(detail)


@dataclass
class Content:
    """A collected social media post plus its processing/moderation state."""

    id: str
    platform: str
    platform_id: str
    type: str = "text"
    content: ContentBody = field(default_factory=ContentBody)
    author: Author = field(default_factory=Author)
    engagement: Engagement = field(default_factory=Engagement)
    hashtags: list[str] = field(default_factory=list)
    published_at: str = ""
    collected_at: str = ""
    processing_status: str = "pending"
    detection: Optional[DetectionResult] = None
    moderation: ModerationState = field(default_factory=ModerationState)

    def __post_init__(self) -> None:
        if not self.collected_at:
            self.collected_at = utc_now().isoformat()
        if not self.published_at:
            self.published_at = self.collected_at

    @property
    def collected_dt(self) -> datetime:
        return parse_timestamp(self.collected_at)

    @property
    def is_flagged(self) -> bool:
        return self.detection is not None and self.detection.flagged

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["detection"] = self.detection.to_dict() if self.detection else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Content:
        if not data.get("platform") or not data.get("platform_id"):
            raise ValueError("content record needs both a platform and a platform_id")
        detection = data.get("detection")
        return cls(
            id=data.get("id", ""),
            platform=data["platform"],
            platform_id=str(data["platform_id"]),
            type=data.get("type", "text"),
            content=ContentBody(**data.get("content", {})),
            author=Author(**data.get("author", {})),
            engagement=Engagement(**data.get("engagement", {})),
            hashtags=list(data.get("hashtags", [])),
            published_at=data.get("published_at", ""),
            collected_at=data.get("collected_at", ""),
            processing_status=data.get("processing_status", "pending"),
            detection=DetectionResult.from_dict(detection) if detection else None,
            moderation=ModerationState(**data.get("moderation", {})),
        )

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Content:
        """Build new content from an external record, camelCase or snake_case.

        Any ``id`` in the record is ignored; the store assigns one.
        """
        return cls.from_dict({**snake_keys(data), "id": ""})
