"""Builds the stores, pipeline and response lanes from one Settings object."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sentinel.config import Settings
from sentinel.models.content import utc_now
from sentinel.response.orchestrator import ResponseOrchestrator
from sentinel.response.response_log import ResponseLog
from sentinel.response.review_lanes import ReviewLanes
from sentinel.rules.engine import RuleEngine
from sentinel.rules.rule_store import RuleStore
from sentinel.store.content_store import ContentStore
from sentinel.trends.aggregator import TrendAggregator
from sentinel.trends.cycle import TrendAnalysisCycle, TrendScheduler
from sentinel.trends.ledger import TrendLedger

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: ContentStore
    ledger: TrendLedger
    aggregator: TrendAggregator
    cycle: TrendAnalysisCycle
    rule_store: RuleStore
    engine: RuleEngine
    review_lanes: ReviewLanes
    response_log: ResponseLog
    orchestrator: ResponseOrchestrator

    def scheduler(self) -> TrendScheduler:
        return TrendScheduler(self.cycle, self.settings.aggregation_interval_minutes)

    def reload_rules(self) -> None:
        self.rule_store.load_into(self.engine)

    def overview(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """One-screen summary of content, trends, warnings and lanes."""
        since = (now or utc_now()) - timedelta(hours=24)
        return {
            "content_total": self.store.count(),
            "content_last_24h": self.store.count(since),
            "flagged_last_24h": self.store.count(since, flagged_only=True),
            "platforms": self.store.platform_counts(),
            "active_trends": len(self.ledger.active_trends(limit=1000)),
            "warnings": self.ledger.warning_stats(),
            "queues": self.orchestrator.queue_stats(),
            "review": self.review_lanes.sizes(),
            "rules_version": self.engine.snapshot.version,
        }


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or Settings.from_env()
    store = ContentStore(settings.content_dir)
    ledger = TrendLedger(
        settings.ledger_dir,
        trend_retention=timedelta(hours=settings.trend_retention_hours),
        warning_retention=timedelta(days=settings.warning_retention_days),
    )
    aggregator = TrendAggregator(
        store,
        trend_threshold=settings.trend_detection_threshold,
        virality_threshold=settings.virality_threshold,
    )
    cycle = TrendAnalysisCycle(aggregator, ledger, lookback_hours=settings.trend_lookback_hours)

    rule_store = RuleStore(settings.rules_dir)
    if settings.rules_file:
        imported = rule_store.import_file(settings.rules_file)
        logger.info("Imported %d escalation rules from %s", len(imported), settings.rules_file)
    engine = RuleEngine(rule_store.rules())

    review_lanes = ReviewLanes(settings.review_dir)
    response_log = ResponseLog(settings.response_log_dir)
    orchestrator = ResponseOrchestrator(
        store,
        engine,
        review_lanes,
        response_log,
        settings=settings,
        queues_dir=settings.queues_dir,
    )
    return Services(
        settings=settings,
        store=store,
        ledger=ledger,
        aggregator=aggregator,
        cycle=cycle,
        rule_store=rule_store,
        engine=engine,
        review_lanes=review_lanes,
        response_log=response_log,
        orchestrator=orchestrator,
    )
