"""Human-review lanes, one list per severity tier.

Storage path: ``~/.sentinel/review/`` with one ``<severity>.json`` file per
lane, oldest entry first.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from sentinel.models.content import utc_now
from sentinel.store.jsonfile import read_json, write_json

logger = logging.getLogger(__name__)

LANES = ("critical", "high", "medium", "low")


@dataclass
class ReviewEntry:
    """A content item waiting for a moderator."""

    content_id: str
    severity: str
    reason: str = ""
    harmfulness_score: float = 0.0
    categories: list[str] = field(default_factory=list)
    platform: str = ""
    enqueued_at: str = ""

    def __post_init__(self) -> None:
        if self.severity not in LANES:
            raise ValueError(f"Unknown review lane: {self.severity}")
        if not self.enqueued_at:
            self.enqueued_at = utc_now().isoformat()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewEntry:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class ReviewLanes:
    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".sentinel" / "review"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, severity: str) -> Path:
        if severity not in LANES:
            raise ValueError(f"Unknown review lane: {severity}")
        return self._base / f"{severity}.json"

    def _read(self, severity: str) -> list[dict[str, Any]]:
        return read_json(self._path(severity), [])

    def _write(self, severity: str, data: list[dict[str, Any]]) -> None:
        write_json(self._path(severity), data)

    def push(self, entry: ReviewEntry) -> bool:
        """Add *entry* to its lane. Returns False if the content is already pending there."""
        with self._lock:
            lane = self._read(entry.severity)
            if any(e["content_id"] == entry.content_id for e in lane):
                return False
            lane.append(asdict(entry))
            self._write(entry.severity, lane)
        logger.info("Content %s queued for %s review", entry.content_id, entry.severity)
        return True

    def list(self, severity: str, limit: int = 50) -> list[ReviewEntry]:
        return [ReviewEntry.from_dict(e) for e in self._read(severity)[:limit]]

    def sizes(self) -> dict[str, int]:
        return {lane: len(self._read(lane)) for lane in LANES}

    def claim(self, severity: str) -> Optional[ReviewEntry]:
        """Take the oldest entry off a lane."""
        with self._lock:
            lane = self._read(severity)
            if not lane:
                return None
            entry = lane.pop(0)
            self._write(severity, lane)
        return ReviewEntry.from_dict(entry)
