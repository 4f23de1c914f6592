"""Trend aggregator -- groups recent flagged content into candidate trends.

Runs three independent grouping passes over the same time window:

- hashtag: one group per hashtag
- keyword: one group per extracted keyword of flagged text
- cross-platform: one group per (category set, hashtag set) seen on two or
  more platforms

Each pass pulls its rows from the content store, groups them in memory and
filters the groups by volume and average harmfulness.  A pass that fails
contributes nothing; the other passes still produce trends.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Hashable, Iterable, Optional

from sentinel.models.content import Content, utc_now
from sentinel.store.content_store import ContentStore
from sentinel.trends.models import TrendData
from sentinel.trends.scorer import (
    DEFAULT_VIRALITY_THRESHOLD,
    classify_risk,
    growth_rate,
    risk_score,
    trend_id,
    trend_key,
    virality_score,
)

logger = logging.getLogger(__name__)

# (minimum occurrences, maximum groups kept) per pass
HASHTAG_PASS = (10, 20)
KEYWORD_PASS = (15, 15)
CROSS_PLATFORM_PASS = (20, 10)

MIN_KEYWORD_LENGTH = 4

STOPWORDS: frozenset[str] = frozenset(
    {
        "about", "after", "again", "also", "been", "before", "being", "both",
        "could", "does", "doing", "down", "each", "even", "from", "have",
        "having", "here", "into", "just", "like", "more", "most", "much",
        "only", "other", "over", "same", "should", "some", "such", "than",
        "that", "their", "them", "then", "there", "these", "they", "this",
        "those", "through", "under", "until", "very", "want", "were", "what",
        "when", "where", "which", "while", "will", "with", "would", "your",
        "yours", "because", "really", "still", "make", "know", "going",
    }
)

_STRIP_CHARS = ".,;:!?\"'()[]{}<>*_~`-"
_URL_RE = re.compile(r"^(https?://|www\.)")


def extract_keywords(text: str) -> set[str]:
    """Lower-cased tokens of at least four characters, minus stopwords."""
    keywords: set[str] = set()
    for raw in text.lower().split():
        if raw.startswith(("#", "@")) or _URL_RE.match(raw):
            continue
        token = raw.strip(_STRIP_CHARS)
        if len(token) < MIN_KEYWORD_LENGTH or token in STOPWORDS:
            continue
        keywords.add(token)
    return keywords


def normalize_hashtag(tag: str) -> str:
    return tag.strip().lstrip("#").lower()


@dataclass
class SignalGroup:
    """Running aggregate for one group of content sharing a signal."""

    hashtags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    count: int = 0
    harmfulness_total: float = 0.0
    engagement_total: int = 0
    platforms: set[str] = field(default_factory=set)
    categories: set[str] = field(default_factory=set)
    key_categories: Optional[list[str]] = None  # set when categories are part of the group key
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    def add(self, content: Content) -> None:
        detection = content.detection
        self.count += 1
        self.harmfulness_total += detection.harmfulness_score if detection else 0.0
        self.engagement_total += content.engagement.total
        self.platforms.add(content.platform)
        if detection:
            self.categories.update(detection.categories)
        seen = content.collected_dt
        if self.first_seen is None or seen < self.first_seen:
            self.first_seen = seen
        if self.last_seen is None or seen > self.last_seen:
            self.last_seen = seen

    @property
    def average_harmfulness(self) -> float:
        return self.harmfulness_total / self.count if self.count else 0.0

    @property
    def average_engagement(self) -> float:
        return self.engagement_total / self.count if self.count else 0.0


def build_trend(
    group: SignalGroup,
    source: str,
    virality_threshold: float = DEFAULT_VIRALITY_THRESHOLD,
) -> TrendData:
    """Score a surviving group and turn it into a TrendData record."""
    if group.key_categories is not None:
        cats = sorted(set(group.key_categories))
    else:
        cats = sorted(group.categories)
    virality = virality_score(group.count, group.average_engagement, virality_threshold)
    growth = growth_rate(group.first_seen, group.last_seen, group.count)
    harm = group.average_harmfulness
    risk = classify_risk(risk_score(harm, virality, len(group.platforms)))
    key = trend_key(group.hashtags, group.keywords, cats)
    return TrendData(
        id=trend_id(key),
        hashtags=list(group.hashtags),
        keywords=list(group.keywords),
        platforms=sorted(group.platforms),
        harmfulness_score=harm,
        virality_score=virality,
        growth_rate=growth,
        first_detected=group.first_seen.isoformat(),
        last_updated=group.last_seen.isoformat(),
        content_count=group.count,
        average_engagement=group.average_engagement,
        categories=cats,
        risk_level=risk,
        source=source,
    )


def consolidate_trends(trends: Iterable[TrendData]) -> list[TrendData]:
    """Drop trends whose signal key was already seen, then rank them.

    The first trend seen for a key wins; the result is ordered by
    harmfulness x virality, highest first.
    """
    consolidated: list[TrendData] = []
    seen: set[str] = set()
    for trend in trends:
        key = trend_key(trend.hashtags, trend.keywords, trend.categories)
        if key in seen:
            continue
        seen.add(key)
        consolidated.append(trend)
    consolidated.sort(key=lambda t: t.rank_score, reverse=True)
    return consolidated


class TrendAggregator:
    """Scans a recent window of the content store for emerging trends."""

    def __init__(
        self,
        store: ContentStore,
        trend_threshold: float = 0.75,
        virality_threshold: float = DEFAULT_VIRALITY_THRESHOLD,
    ) -> None:
        self.store = store
        self.trend_threshold = trend_threshold
        self.virality_threshold = virality_threshold

    def detect(self, lookback_hours: float = 24, now: Optional[datetime] = None) -> list[TrendData]:
        """Run all three passes and return deduplicated, ranked trends."""
        now = now or utc_now()
        since = now - timedelta(hours=lookback_hours)

        passes: list[tuple[str, Callable[[datetime, datetime], list[TrendData]]]] = [
            ("hashtag", self.detect_hashtag_trends),
            ("keyword", self.detect_keyword_trends),
            ("cross_platform", self.detect_cross_platform_trends),
        ]
        candidates: list[TrendData] = []
        for name, run_pass in passes:
            try:
                found = run_pass(since, now)
            except Exception:
                logger.exception("Trend pass %s failed; skipping it this cycle", name)
                continue
            logger.info("Trend pass %s produced %d candidates", name, len(found))
            candidates.extend(found)

        return consolidate_trends(candidates)

    # ------------------------------------------------------------------
    # Grouping passes
    # ------------------------------------------------------------------

    def detect_hashtag_trends(self, since: datetime, until: datetime) -> list[TrendData]:
        rows = [
            c for c in self.store.query_window(since, until)
            if c.hashtags and c.detection is not None
        ]

        def keys(content: Content) -> set[Hashable]:
            return {normalize_hashtag(t) for t in content.hashtags if normalize_hashtag(t)}

        groups = self._group(rows, keys, lambda tag: SignalGroup(hashtags=[tag]))
        survivors = self._surviving(groups.values(), *HASHTAG_PASS)
        return [build_trend(g, "hashtag", self.virality_threshold) for g in survivors]

    def detect_keyword_trends(self, since: datetime, until: datetime) -> list[TrendData]:
        rows = [
            c for c in self.store.query_window(since, until, flagged_only=True)
            if c.content.text
        ]
        groups = self._group(
            rows,
            lambda c: extract_keywords(c.content.text or ""),
            lambda word: SignalGroup(keywords=[word]),
        )
        survivors = self._surviving(groups.values(), *KEYWORD_PASS)
        return [build_trend(g, "keyword", self.virality_threshold) for g in survivors]

    def detect_cross_platform_trends(self, since: datetime, until: datetime) -> list[TrendData]:
        rows = self.store.query_window(since, until, flagged_only=True)

        def keys(content: Content) -> set[Hashable]:
            categories = tuple(sorted(set(content.detection.categories)))
            hashtags = tuple(sorted({normalize_hashtag(t) for t in content.hashtags}))
            return {(categories, hashtags)}

        groups = self._group(
            rows,
            keys,
            lambda key: SignalGroup(hashtags=list(key[1]), key_categories=list(key[0])),
        )
        spread = [g for g in groups.values() if len(g.platforms) >= 2]
        survivors = self._surviving(spread, *CROSS_PLATFORM_PASS)
        return [build_trend(g, "cross_platform", self.virality_threshold) for g in survivors]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _group(
        rows: Iterable[Content],
        keys: Callable[[Content], set[Hashable]],
        factory: Callable[[Hashable], SignalGroup],
    ) -> dict[Hashable, SignalGroup]:
        groups: dict[Hashable, SignalGroup] = {}
        for content in rows:
            for key in keys(content):
                group = groups.get(key)
                if group is None:
                    group = groups[key] = factory(key)
                group.add(content)
        return groups

    def _surviving(
        self, groups: Iterable[SignalGroup], min_count: int, limit: int
    ) -> list[SignalGroup]:
        kept = [
            g for g in groups
            if g.count >= min_count and g.average_harmfulness >= self.trend_threshold
        ]
        kept.sort(key=lambda g: (g.count, g.average_harmfulness), reverse=True)
        return kept[:limit]
