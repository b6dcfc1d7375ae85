"""
Webhook Operator Notifications

Sends rollback alerts to an operator-facing webhook (Slack/Teams incoming
webhooks, PagerDuty event bridges, or an internal alert relay).
"""

import hashlib
import hmac
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import requests

from rolloutguard.utils.errors import ErrorCode, IntegrationError


class WebhookEventType(Enum):
    """Types of webhook events."""

    CANARY_ROLLBACK = "canary.rollback"
    CONFIG_UPDATED = "canary.config_updated"


@dataclass
class WebhookEvent:
    """Webhook event payload."""

    event_type: str
    timestamp: float
    data: Dict[str, Any]
    text: str = ""
    source: str = "rolloutguard"
    event_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@runtime_checkable
class Notifier(Protocol):
    """Operator-alerting channel."""

    def notify(self, rollout_id: str, reason: str, details: Dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Notifier that only writes the alert to the log."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)

    def notify(self, rollout_id: str, reason: str, details: Dict[str, Any]) -> None:
        self.logger.warning(
            f"Team notification: canary {rollout_id} rolled back - {reason}",
            extra={"rollout_id": rollout_id, "reason": reason},
        )


class WebhookNotifier:
    """
    Webhook notifier for rollback alerts.

    Posts a JSON ``WebhookEvent`` with a human-readable ``text`` field (so
    chat webhooks render it directly) and, when a secret is configured, an
    HMAC-SHA256 ``X-Webhook-Signature`` header.

    Example:
        >>> notifier = WebhookNotifier(
        ...     webhook_url="https://hooks.example.com/rollouts",
        ...     secret="webhook_secret",
        ... )
        >>> notifier.notify("checkout", "error_rate_exceeded", {"error_rate": 0.08, "threshold": 0.05})
    """

    def __init__(
        self,
        webhook_url: str,
        secret: Optional[str] = None,
        timeout: float = 2.0,
        max_retries: int = 1,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize webhook notifier.

        Args:
            webhook_url: Destination webhook URL
            secret: Secret for HMAC signature
            timeout: Request timeout in seconds
            max_retries: Delivery attempts (1 means no retry)
            verify_ssl: Verify SSL certificates
            session: Optional requests session (connection pooling, tests)
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.webhook_url = webhook_url
        self.secret = secret
        self.timeout = timeout
        self.max_retries = max_retries
        self.verify_ssl = verify_ssl
        self._session = session
        self.logger = logging.getLogger(__name__)

    def notify(self, rollout_id: str, reason: str, details: Dict[str, Any]) -> None:
        """
        Send a rollback alert.

        Raises:
            IntegrationError: If every delivery attempt failed
        """
        event = WebhookEvent(
            event_type=WebhookEventType.CANARY_ROLLBACK.value,
            timestamp=time.time(),
            data={"rollout_id": rollout_id, "reason": reason, "details": details},
            text=self._summary(rollout_id, reason, details),
            event_id=str(uuid.uuid4()),
        )
        if not self.send_event(event):
            raise IntegrationError(
                ErrorCode.E702_NOTIFICATION_FAILED,
                action="notify",
                details={"rollout_id": rollout_id, "webhook_url": self.webhook_url},
            )

    def send_event(self, event: WebhookEvent) -> bool:
        """
        Send webhook event.

        Returns:
            True if successfully delivered
        """
        payload_json = json.dumps(event.to_dict(), default=str)

        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["X-Webhook-Signature"] = self._generate_signature(payload_json)

        post = self._session.post if self._session is not None else requests.post

        for attempt in range(self.max_retries):
            try:
                response = post(
                    self.webhook_url,
                    data=payload_json,
                    headers=headers,
                    timeout=self.timeout,
                    verify=self.verify_ssl,
                )
                response.raise_for_status()

                self.logger.info(
                    f"Webhook delivered successfully: {event.event_type} (attempt {attempt + 1})"
                )
                return True

            except requests.RequestException as e:
                self.logger.warning(
                    f"Webhook delivery failed (attempt {attempt + 1}/{self.max_retries}): {e}"
                )

        self.logger.error(f"Webhook delivery failed after {self.max_retries} attempts")
        return False

    @staticmethod
    def _summary(rollout_id: str, reason: str, details: Dict[str, Any]) -> str:
        measured = details.get("error_rate", details.get("p95"))
        threshold = details.get("threshold")
        text = f":rotating_light: Canary `{rollout_id}` was rolled back ({reason})"
        if measured is not None and threshold is not None:
            text += f": measured {measured:.4g} vs threshold {threshold:.4g}"
        return text

    def _generate_signature(self, payload: str) -> str:
        """Generate HMAC signature for payload."""
        if not self.secret:
            return ""

        signature = hmac.new(
            self.secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        return f"sha256={signature}"

    @staticmethod
    def verify_signature(payload: str, signature: str, secret: str) -> bool:
        """
        Verify webhook signature on the receiving side.

        Returns:
            True if signature is valid
        """
        if not signature.startswith("sha256="):
            return False

        expected_sig = hmac.new(
            secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        return hmac.compare_digest(expected_sig, signature[7:])
