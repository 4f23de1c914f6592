"""Environment-driven configuration.

Values are read from the process environment after loading an optional
``.env`` file.  Every option has a default so the pipeline runs with no
configuration at all.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _default_data_dir() -> Path:
    return Path.home() / ".sentinel"


@dataclass
class Settings:
    """Runtime settings for the trend pipeline and the response lanes."""

    data_dir: Path = field(default_factory=_default_data_dir)

    # Trend detection
    trend_detection_threshold: float = 0.75
    virality_threshold: float = 1000.0
    trend_lookback_hours: int = 24
    aggregation_interval_minutes: int = 5
    trend_retention_hours: int = 24
    warning_retention_days: int = 7

    # Automated response
    auto_action_threshold: float = 0.95
    response_batch_delay_seconds: float = 1.0
    response_concurrency: int = 5
    escalation_concurrency: int = 3
    processing_concurrency: int = 20
    response_attempts: int = 3
    escalation_attempts: int = 2
    processing_attempts: int = 5

    # Collaborators
    notify_webhook_url: str = ""
    notify_webhook_secret: str = ""
    rules_file: str = ""
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        for name in ("trend_detection_threshold", "auto_action_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.virality_threshold <= 0:
            raise ValueError("virality_threshold must be positive")

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``.env`` and the process environment."""
        load_dotenv()
        env = os.environ
        data_dir = env.get("SENTINEL_DATA_DIR")
        return cls(
            data_dir=Path(data_dir).expanduser() if data_dir else _default_data_dir(),
            trend_detection_threshold=float(env.get("TREND_DETECTION_THRESHOLD", "0.75")),
            virality_threshold=float(env.get("VIRALITY_THRESHOLD", "1000")),
            trend_lookback_hours=int(env.get("TREND_LOOKBACK_HOURS", "24")),
            aggregation_interval_minutes=int(env.get("AGGREGATION_INTERVAL_MINUTES", "5")),
            trend_retention_hours=int(env.get("TREND_RETENTION_HOURS", "24")),
            warning_retention_days=int(env.get("WARNING_RETENTION_DAYS", "7")),
            auto_action_threshold=float(env.get("AUTO_ACTION_THRESHOLD", "0.95")),
            response_batch_delay_seconds=float(env.get("RESPONSE_BATCH_DELAY_SECONDS", "1.0")),
            response_concurrency=int(env.get("RESPONSE_CONCURRENCY", "5")),
            escalation_concurrency=int(env.get("ESCALATION_CONCURRENCY", "3")),
            processing_concurrency=int(env.get("PROCESSING_CONCURRENCY", "20")),
            response_attempts=int(env.get("RESPONSE_ATTEMPTS", "3")),
            escalation_attempts=int(env.get("ESCALATION_ATTEMPTS", "2")),
            processing_attempts=int(env.get("PROCESSING_ATTEMPTS", "5")),
            notify_webhook_url=env.get("SENTINEL_NOTIFY_WEBHOOK_URL", ""),
            notify_webhook_secret=env.get("SENTINEL_NOTIFY_WEBHOOK_SECRET", ""),
            rules_file=env.get("SENTINEL_RULES_FILE", ""),
            log_level=env.get("SENTINEL_LOG_LEVEL", "INFO"),
        )

    # -- storage locations ---------------------------------------------------

    @property
    def content_dir(self) -> Path:
        return self.data_dir / "content"

    @property
    def ledger_dir(self) -> Path:
        return self.data_dir / "ledger"

    @property
    def rules_dir(self) -> Path:
        return self.data_dir / "rules"

    @property
    def queues_dir(self) -> Path:
        return self.data_dir / "queues"

    @property
    def review_dir(self) -> Path:
        return self.data_dir / "review"

    @property
    def response_log_dir(self) -> Path:
        return self.data_dir / "response_log"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for CLI and server entry points."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_LOG_FORMAT)
