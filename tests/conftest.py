"""Shared fixtures for the sentinel test suite."""

from datetime import datetime, timezone

import pytest

from sentinel.models.content import Content, ContentBody, DetectionResult, Engagement
from sentinel.store.content_store import ContentStore

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    return ContentStore(tmp_path / "content")


@pytest.fixture
def make_content():
    counter = iter(range(1, 100000))

    def _make(
        platform="tiktok",
        text=None,
        hashtags=(),
        likes=0,
        shares=0,
        comments=0,
        views=None,
        collected_at=None,
        detection=None,
        status="completed",
    ):
        n = next(counter)
        return Content(
            id="",
            platform=platform,
            platform_id=f"{platform}-{n}",
            content=ContentBody(text=text),
            engagement=Engagement(likes=likes, shares=shares, comments=comments, views=views),
            hashtags=list(hashtags),
            collected_at=(collected_at or T0).isoformat(),
            processing_status=status if detection is not None else "pending",
            detection=detection,
        )

    return _make


def flagged(score, *categories, confidence=0.9):
    return DetectionResult(
        harmfulness_score=score,
        categories=list(categories),
        confidence=confidence,
        flagged=True,
    )


@pytest.fixture
def detection():
    return flagged
