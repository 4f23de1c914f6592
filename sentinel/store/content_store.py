"""File-based JSON store for content records and their detection results.

Provides the query interface the trend aggregator pulls from and the
moderation-state mutations the response executor writes, backed by a JSON
file under ``~/.sentinel/content/``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from sentinel.errors import ContentNotFoundError
from sentinel.models.content import (
    PROCESSING_STATUSES,
    Content,
    DetectionResult,
    parse_timestamp,
    utc_now,
)
from sentinel.store.jsonfile import read_json, write_json

logger = logging.getLogger(__name__)


class ContentStore:
    """File-based storage for content.

    Storage path: ``~/.sentinel/content/`` with:
    - ``content.json`` -- mapping of content id to content dict
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".sentinel" / "content"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._content_path = self._base / "content.json"
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> dict[str, dict]:
        return read_json(self._content_path, {})

    def _write_json(self, data: dict[str, dict]) -> None:
        write_json(self._content_path, data)

    def _mutate(self, content_id: str, fn) -> Content:
        with self._lock:
            records = self._read_json()
            raw = records.get(content_id)
            if raw is None:
                raise ContentNotFoundError(content_id)
            content = Content.from_dict(raw)
            fn(content)
            records[content_id] = content.to_dict()
            self._write_json(records)
            return content

    # ------------------------------------------------------------------
    # Content CRUD
    # ------------------------------------------------------------------

    def save(self, content: Content) -> Content:
        """Insert or refresh a content record keyed by (platform, platform_id).

        An existing record keeps its id, detection and moderation state;
        identity and engagement fields are refreshed from *content*.
        """
        if not content.platform or not content.platform_id:
            raise ValueError("content needs both a platform and a platform_id")
        with self._lock:
            records = self._read_json()
            for content_id, raw in records.items():
                if raw["platform"] == content.platform and raw["platform_id"] == content.platform_id:
                    existing = Content.from_dict(raw)
                    content.id = content_id
                    content.detection = existing.detection
                    content.moderation = existing.moderation
                    content.processing_status = existing.processing_status
                    content.collected_at = utc_now().isoformat()
                    break
            else:
                if not content.id:
                    content.id = uuid.uuid4().hex
                logger.debug("New content %s from %s/%s", content.id, content.platform, content.platform_id)
            records[content.id] = content.to_dict()
            self._write_json(records)
            return content

    def get(self, content_id: str) -> Optional[Content]:
        """Look up content by ID. Returns None if not found."""
        raw = self._read_json().get(content_id)
        return Content.from_dict(raw) if raw else None

    def attach_detection(self, content_id: str, detection: DetectionResult) -> Content:
        """Attach a classifier result and mark processing completed."""

        def _apply(content: Content) -> None:
            content.detection = detection
            content.processing_status = "completed"

        return self._mutate(content_id, _apply)

    def set_processing_status(self, content_id: str, status: str) -> Content:
        if status not in PROCESSING_STATUSES:
            raise ValueError(f"Unknown processing status: {status}")

        def _apply(content: Content) -> None:
            content.processing_status = status

        return self._mutate(content_id, _apply)

    def update_moderation(
        self,
        content_id: str,
        markers: dict[str, Any],
        details: Optional[dict[str, dict[str, Any]]] = None,
    ) -> Content:
        """Set moderation markers on a content item."""
        return self._mutate(content_id, lambda c: c.moderation.apply(markers, details))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_window(
        self,
        since: datetime,
        until: Optional[datetime] = None,
        *,
        flagged_only: bool = False,
        processing_status: Optional[str] = "completed",
    ) -> list[Content]:
        """Return content collected inside ``[since, until]``."""
        results: list[Content] = []
        for raw in self._read_json().values():
            content = Content.from_dict(raw)
            collected = content.collected_dt
            if collected < since or (until is not None and collected > until):
                continue
            if processing_status and content.processing_status != processing_status:
                continue
            if flagged_only and not content.is_flagged:
                continue
            results.append(content)
        results.sort(key=lambda c: c.collected_at)
        return results

    def count(self, since: Optional[datetime] = None, *, flagged_only: bool = False) -> int:
        total = 0
        for raw in self._read_json().values():
            content = Content.from_dict(raw)
            if since is not None and parse_timestamp(content.collected_at) < since:
                continue
            if flagged_only and not content.is_flagged:
                continue
            total += 1
        return total

    def platform_counts(self, since: Optional[datetime] = None) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for raw in self._read_json().values():
            if since is not None and parse_timestamp(raw["collected_at"]) < since:
                continue
            counts[raw["platform"]] += 1
        return dict(counts)
