"""Trend ledger -- trend and early-warning persistence with expiry.

Trends are kept for 24 hours and ranked in an active index by
harmfulness x virality.  Early warnings are kept for 7 days and listed both
in a severity-agnostic ``active`` list and in one list per severity.
Acknowledgements are appended to their own log and never rewrite the
warning they refer to.

Storage layout under ``~/.sentinel/ledger/``:
    trends.json             trend id -> {trend, stored_at, expires_at}
    trend_index.json        trend id -> rank score
    warnings.json           warning id -> {warning, expires_at}
    warning_lists.json      list name -> [warning ids, newest first]
    acknowledgements.jsonl  one acknowledgement per line
"""

from __future__ import annotations

import json
import logging
import threading
from collections import Counter
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from sentinel.models.content import parse_timestamp, utc_now
from sentinel.store.jsonfile import read_json, write_json
from sentinel.trends.models import Acknowledgement, EarlyWarning, RiskLevel, TrendData
from sentinel.trends.warnings import build_warning

logger = logging.getLogger(__name__)

ACTIVE_LIST = "active"

# How many ids an unfiltered warning listing draws from each severity list.
_UNFILTERED_SLICE = {
    RiskLevel.CRITICAL: 5,
    RiskLevel.HIGH: 10,
    RiskLevel.MEDIUM: 10,
    RiskLevel.LOW: 5,
}


class TrendLedger:
    """File-based ledger of trends and early warnings."""

    def __init__(
        self,
        base_dir: str | Path | None = None,
        trend_retention: timedelta = timedelta(hours=24),
        warning_retention: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._base = Path(base_dir) if base_dir else Path.home() / ".sentinel" / "ledger"
        self._base.mkdir(parents=True, exist_ok=True)
        self._trends_path = self._base / "trends.json"
        self._index_path = self._base / "trend_index.json"
        self._warnings_path = self._base / "warnings.json"
        self._lists_path = self._base / "warning_lists.json"
        self._acks_path = self._base / "acknowledgements.jsonl"
        self.trend_retention = trend_retention
        self.warning_retention = warning_retention
        self._clock = clock
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        return read_json(path, {})

    @staticmethod
    def _write(path: Path, data: dict[str, Any]) -> None:
        write_json(path, data)

    def _expired(self, record: dict[str, Any]) -> bool:
        return parse_timestamp(record["expires_at"]) <= self._clock()

    # ------------------------------------------------------------------
    # Trends
    # ------------------------------------------------------------------

    def store(self, trend: TrendData) -> None:
        """Persist *trend*, replacing any earlier record with the same id."""
        now = self._clock()
        with self._lock:
            trends = self._read(self._trends_path)
            trends[trend.id] = {
                "trend": trend.to_dict(),
                "stored_at": now.isoformat(),
                "expires_at": (now + self.trend_retention).isoformat(),
            }
            self._write(self._trends_path, trends)

            index = self._read(self._index_path)
            index[trend.id] = trend.rank_score
            self._write(self._index_path, index)

        logger.info("Stored trend %s (%s risk)", trend.id, trend.risk_level.value)

    def get_trend(self, trend_id: str) -> Optional[TrendData]:
        record = self._read(self._trends_path).get(trend_id)
        if record is None or self._expired(record):
            return None
        return TrendData.from_dict(record["trend"])

    def active_trends(self, limit: int = 20) -> list[TrendData]:
        """Unexpired trends from the ranked index, highest score first."""
        index = self._read(self._index_path)
        trends = self._read(self._trends_path)
        ranked = sorted(index.items(), key=lambda item: item[1], reverse=True)
        result: list[TrendData] = []
        for trend_id, _score in ranked:
            record = trends.get(trend_id)
            if record is None or self._expired(record):
                continue
            result.append(TrendData.from_dict(record["trend"]))
            if len(result) >= limit:
                break
        return result

    # ------------------------------------------------------------------
    # Early warnings
    # ------------------------------------------------------------------

    def promote(self, trend: TrendData) -> EarlyWarning:
        """Create and persist a new early warning for *trend*.

        Every call creates a new warning; a trend that stays high risk
        across cycles is promoted once per cycle.
        """
        warning = build_warning(trend, created_at=self._clock())
        expires_at = parse_timestamp(warning.created_at) + self.warning_retention
        with self._lock:
            warnings = self._read(self._warnings_path)
            warnings[warning.id] = {
                "warning": warning.to_dict(),
                "expires_at": expires_at.isoformat(),
            }
            self._write(self._warnings_path, warnings)

            lists = self._read(self._lists_path)
            for name in (ACTIVE_LIST, warning.severity.value):
                lists.setdefault(name, []).insert(0, warning.id)
            self._write(self._lists_path, lists)

        logger.warning("Early warning generated: %s", warning.title)
        return warning

    def get_warning(self, warning_id: str) -> Optional[EarlyWarning]:
        record = self._read(self._warnings_path).get(warning_id)
        if record is None or self._expired(record):
            return None
        return EarlyWarning.from_dict(record["warning"])

    def list_warnings(self, severity: RiskLevel | str | None = None, limit: int = 20) -> list[EarlyWarning]:
        """Return live warnings, newest first.

        With a severity, reads that severity's list.  Without one, draws a
        bounded slice from each severity list, most severe first.
        """
        lists = self._read(self._lists_path)
        if severity is not None:
            level = RiskLevel(severity)
            ids = lists.get(level.value, [])
        else:
            ids = []
            for level in (RiskLevel.CRITICAL, RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW):
                ids.extend(lists.get(level.value, [])[: _UNFILTERED_SLICE[level]])

        warnings = self._read(self._warnings_path)
        result: list[EarlyWarning] = []
        for warning_id in ids:
            record = warnings.get(warning_id)
            if record is None or self._expired(record):
                continue
            result.append(EarlyWarning.from_dict(record["warning"]))
            if len(result) >= limit:
                break
        return result

    def active_warning_ids(self) -> list[str]:
        return list(self._read(self._lists_path).get(ACTIVE_LIST, []))

    def acknowledge(self, warning_id: str, actor: str, comment: str = "") -> Optional[Acknowledgement]:
        """Record that *actor* acknowledged a warning. Returns None if unknown."""
        if self.get_warning(warning_id) is None:
            return None
        ack = Acknowledgement(
            warning_id=warning_id,
            actor=actor or "unknown",
            comment=comment,
            acknowledged_at=self._clock().isoformat(),
        )
        with self._lock:
            with self._acks_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(asdict(ack)) + "\n")
        logger.info("Warning %s acknowledged by %s", warning_id, ack.actor)
        return ack

    def acknowledgements(self, warning_id: str) -> list[Acknowledgement]:
        if not self._acks_path.exists():
            return []
        acks: list[Acknowledgement] = []
        for line in self._acks_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            data = json.loads(line)
            if data.get("warning_id") == warning_id:
                acks.append(Acknowledgement(**data))
        return acks

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def warning_stats(self) -> dict[str, Any]:
        """Count live warnings per severity."""
        warnings = self._read(self._warnings_path)
        lists = self._read(self._lists_path)
        by_severity: dict[str, int] = {}
        for level in RiskLevel:
            by_severity[level.value] = sum(
                1
                for warning_id in lists.get(level.value, [])
                if warning_id in warnings and not self._expired(warnings[warning_id])
            )
        return {"total": sum(by_severity.values()), "by_severity": by_severity}

    def trending_summary(self) -> dict[str, Any]:
        trends = self.active_trends(limit=20)
        categories: Counter[str] = Counter()
        platforms: Counter[str] = Counter()
        for trend in trends:
            categories.update(trend.categories)
            platforms.update(trend.platforms)
        return {
            "total_trends": len(trends),
            "high_risk_trends": sum(1 for t in trends if t.risk_level.promotes),
            "top_categories": dict(categories),
            "top_platforms": dict(platforms),
            "trends": [t.to_dict() for t in trends[:10]],
        }

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Drop expired trends and warnings. Returns how many were removed."""
        removed = 0
        with self._lock:
            trends = self._read(self._trends_path)
            stale = [tid for tid, rec in trends.items() if self._expired(rec)]
            if stale:
                index = self._read(self._index_path)
                for tid in stale:
                    trends.pop(tid)
                    index.pop(tid, None)
                self._write(self._trends_path, trends)
                self._write(self._index_path, index)
                removed += len(stale)

            warnings = self._read(self._warnings_path)
            stale = [wid for wid, rec in warnings.items() if self._expired(rec)]
            if stale:
                for wid in stale:
                    warnings.pop(wid)
                lists = self._read(self._lists_path)
                gone = set(stale)
                lists = {name: [i for i in ids if i not in gone] for name, ids in lists.items()}
                self._write(self._warnings_path, warnings)
                self._write(self._lists_path, lists)
                removed += len(stale)
        if removed:
            logger.info("Purged %d expired ledger records", removed)
        return removed
