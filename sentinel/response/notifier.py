"""Stakeholder notifications for ``notify`` actions.

Payloads are always logged.  When a webhook URL is configured they are
also POSTed there as JSON, signed with HMAC-SHA256 when a secret is set.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any, Optional

import httpx

from sentinel.errors import TransientError
from sentinel.models.content import DetectionResult, utc_now
from sentinel.rules.models import ResponseAction

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Sentinel-Signature"


def compute_signature(payload_bytes: bytes, secret: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256)
    return f"sha256={mac.hexdigest()}"


def build_payload(content_id: str, action: ResponseAction, detection: DetectionResult) -> dict[str, Any]:
    return {
        "type": "content_alert",
        "content_id": content_id,
        "severity": action.severity.value,
        "categories": list(detection.categories),
        "harmfulness_score": detection.harmfulness_score,
        "reason": action.reason,
        "timestamp": utc_now().isoformat(),
    }


class Notifier:
    def __init__(
        self,
        webhook_url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.secret = secret
        self.timeout = timeout
        self._client = client

    def notify(self, content_id: str, action: ResponseAction, detection: DetectionResult) -> dict[str, Any]:
        """Emit a notification and return the payload that was sent."""
        payload = build_payload(content_id, action, detection)
        logger.info(
            "Stakeholder notification for %s: severity=%s score=%.2f categories=%s",
            content_id, payload["severity"], detection.harmfulness_score,
            ",".join(detection.categories),
        )
        if self.webhook_url:
            self._post(payload)
        return payload

    def _post(self, payload: dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[SIGNATURE_HEADER] = compute_signature(body, self.secret)
        try:
            if self._client is not None:
                resp = self._client.post(self.webhook_url, content=body, headers=headers)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(self.webhook_url, content=body, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransientError(f"Notification delivery failed: {exc}") from exc
