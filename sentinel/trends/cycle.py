"""The periodic trend analysis cycle and the timer that drives it."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from sentinel.models.content import utc_now
from sentinel.trends.aggregator import TrendAggregator
from sentinel.trends.ledger import TrendLedger
from sentinel.trends.models import EarlyWarning, TrendData

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Outcome of one aggregation cycle."""

    started_at: str
    skipped: bool = False
    trends: list[TrendData] = field(default_factory=list)
    warnings: list[EarlyWarning] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def trend_count(self) -> int:
        return len(self.trends)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)


class TrendAnalysisCycle:
    """Aggregate, store and promote -- one logical pass at a time.

    A second call made while a pass is still running returns a skipped
    report instead of double-counting into the ledger.
    """

    def __init__(
        self,
        aggregator: TrendAggregator,
        ledger: TrendLedger,
        lookback_hours: float = 24,
    ) -> None:
        self.aggregator = aggregator
        self.ledger = ledger
        self.lookback_hours = lookback_hours
        self._running = threading.Lock()

    def run(self, lookback_hours: Optional[float] = None, now: Optional[datetime] = None) -> CycleReport:
        now = now or utc_now()
        report = CycleReport(started_at=now.isoformat())
        if not self._running.acquire(blocking=False):
            logger.warning("Trend analysis already running; skipping overlapping tick")
            report.skipped = True
            return report
        try:
            trends = self.aggregator.detect(lookback_hours or self.lookback_hours, now=now)
            for trend in trends:
                self._record(trend, report)
            report.trends = trends
            try:
                self.ledger.purge_expired()
            except Exception:
                logger.exception("Purging expired ledger entries failed")
        finally:
            self._running.release()

        if report.failed:
            logger.warning("Trend analysis could not record %d trends: %s", len(report.failed), report.failed)
        logger.info(
            "Trend analysis cycle finished: %d trends, %d warnings",
            report.trend_count,
            report.warning_count,
        )
        return report

    def _record(self, trend: TrendData, report: CycleReport) -> None:
        try:
            self.ledger.store(trend)
        except Exception:
            logger.exception("Failed to store trend %s", trend.id)
            report.failed.append(trend.id)
            return
        if not trend.risk_level.promotes:
            return
        try:
            report.warnings.append(self.ledger.promote(trend))
        except Exception:
            logger.exception("Failed to promote trend %s to an early warning", trend.id)
            report.failed.append(trend.id)


class TrendScheduler:
    """Runs a TrendAnalysisCycle on a fixed interval in a background thread."""

    JOB_ID = "trend-analysis"

    def __init__(self, cycle: TrendAnalysisCycle, interval_minutes: float = 5) -> None:
        self.cycle = cycle
        self.interval_minutes = interval_minutes
        self._scheduler: Optional[BackgroundScheduler] = None

    def _tick(self) -> None:
        try:
            self.cycle.run()
        except Exception:
            logger.exception("Periodic trend analysis failed")

    def start(self) -> None:
        if self._scheduler is not None:
            return
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._tick,
            "interval",
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Periodic trend analysis started (every %s minutes)", self.interval_minutes)

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None
