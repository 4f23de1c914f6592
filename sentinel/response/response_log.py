"""Append-only audit log of executed response actions.

One entry is written per processed content item, as newline-delimited JSON
in daily files under ``~/.sentinel/response_log/``.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from sentinel.models.content import DetectionResult
from sentinel.rules.models import ResponseAction

logger = logging.getLogger(__name__)


@dataclass
class ResponseLogEntry:
    """A single response log entry."""

    id: str
    timestamp: str
    content_id: str
    actions: list[dict[str, Any]] = field(default_factory=list)
    detection: dict[str, Any] = field(default_factory=dict)
    outcome: str = "completed"
    error: str = ""


class ResponseLog:
    """File-based JSONL response log."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".sentinel" / "response_log"
        self._base_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, dt: datetime) -> Path:
        return self._base_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def _read_all_entries(self) -> list[ResponseLogEntry]:
        entries: list[ResponseLogEntry] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            try:
                text = path.read_text(encoding="utf-8")
            except OSError:
                logger.error("Response log %s is unreadable", path)
                continue
            for lineno, line in enumerate(text.splitlines(), start=1):
                if not line.strip():
                    continue
                try:
                    entries.append(ResponseLogEntry(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Skipping malformed line %d in %s", lineno, path)
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(
        self,
        content_id: str,
        actions: Iterable[ResponseAction],
        detection: DetectionResult,
        outcome: str = "completed",
        error: str = "",
    ) -> ResponseLogEntry:
        """Record the action set executed for one content item.

        A response that ran out of attempts is logged with ``outcome="failed"``
        and the actions it had applied before the error.
        """
        now = datetime.now(timezone.utc)
        entry = ResponseLogEntry(
            id=uuid.uuid4().hex[:16],
            timestamp=now.isoformat(),
            content_id=content_id,
            actions=[a.to_dict() for a in actions],
            detection=detection.summary(),
            outcome=outcome,
            error=error,
        )
        with self._log_file_for_date(now).open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(asdict(entry)) + "\n")
        return entry

    def entries(self, content_id: Optional[str] = None, limit: int = 200) -> list[ResponseLogEntry]:
        """Return entries, newest first."""
        entries = self._read_all_entries()
        if content_id:
            entries = [e for e in entries if e.content_id == content_id]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def export(self, fmt: str = "json", limit: int = 10000) -> str:
        """Export entries as ``json`` or ``csv``."""
        entries = self.entries(limit=limit)
        if fmt == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            writer.writerow(["id", "timestamp", "content_id", "actions", "harmfulness_score", "categories", "outcome"])
            for e in entries:
                writer.writerow([
                    e.id,
                    e.timestamp,
                    e.content_id,
                    ";".join(f"{a['type']}:{a['severity']}" for a in e.actions),
                    e.detection.get("harmfulness_score", ""),
                    ";".join(e.detection.get("categories", [])),
                    e.outcome,
                ])
            return buf.getvalue()
        if fmt != "json":
            raise ValueError(f"Unsupported export format: {fmt}")
        return json.dumps([asdict(e) for e in entries], indent=2)
