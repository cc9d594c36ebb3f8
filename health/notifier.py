"""
Bucket transition notifications.

Every message is written as a structured log line ("[TAG] {json}") so
log aggregators can pick it up, and optionally POSTed to a webhook.
Notification problems are logged and never propagate to the batch.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from cancel_flow.events import utcnow

from .store import CustomerHealthSnapshot

if TYPE_CHECKING:
    from .runner import HealthRunStats

logger = logging.getLogger(__name__)


ACCOUNT_AT_RISK = "account_at_risk"
ACCOUNT_IMPROVED = "account_improved"
DAILY_HEALTH_COMPLETE = "daily_health_complete"

LOG_TAGS = {
    ACCOUNT_AT_RISK: "[CHURN_ALERT]",
    ACCOUNT_IMPROVED: "[CHURN_IMPROVEMENT]",
    DAILY_HEALTH_COMPLETE: "[DAILY_HEALTH_COMPLETE]",
}

AT_RISK = "at_risk"


def percent_drop(last: int, previous: int) -> str:
    """
    Period-over-period drop as a rounded percent string.

    Returns "N/A" when the previous period is zero or nothing dropped.
    """
    if previous <= 0:
        return "N/A"
    drop = round((1 - last / previous) * 100)
    return f"{drop}%" if drop > 0 else "N/A"


class BucketTransitionNotifier:
    """Emits account_at_risk / account_improved / daily_health_complete."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.webhook_url = webhook_url
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    async def close(self):
        """Close HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def notify(self, snapshot: CustomerHealthSnapshot) -> Optional[str]:
        """
        Notify about a snapshot's bucket change, if any.

        Returns:
            The message type emitted, or None when nothing was sent
        """
        if not snapshot.bucket_changed:
            return None

        try:
            if snapshot.risk_bucket == AT_RISK:
                message = self._at_risk_message(snapshot)
            elif snapshot.bucket_changed_from == AT_RISK:
                message = self._base_message(ACCOUNT_IMPROVED, snapshot)
            else:
                return None
        except Exception as e:
            logger.error(
                "Failed to build notification for %s/%s: %s",
                snapshot.organization_id, snapshot.customer_id, e,
            )
            return None

        await self._emit(message)
        return message["type"]

    async def notify_run_complete(self, stats: "HealthRunStats") -> None:
        message = {
            "type": DAILY_HEALTH_COMPLETE,
            "timestamp": utcnow().isoformat(),
            **stats.to_message(),
        }
        await self._emit(message)

    @staticmethod
    def _base_message(kind: str, snapshot: CustomerHealthSnapshot) -> Dict[str, Any]:
        message = {
            "type": kind,
            "timestamp": utcnow().isoformat(),
            "organizationId": snapshot.organization_id,
            "customerId": snapshot.customer_id,
            "riskScore": snapshot.risk_score,
            "previousBucket": snapshot.bucket_changed_from,
            "newBucket": snapshot.risk_bucket,
        }
        if snapshot.customer_email:
            message["customerEmail"] = snapshot.customer_email
        return message

    def _at_risk_message(self, snapshot: CustomerHealthSnapshot) -> Dict[str, Any]:
        activity = snapshot.activity
        message = self._base_message(ACCOUNT_AT_RISK, snapshot)
        message["metrics"] = {
            "loginDrop": percent_drop(activity.logins_last_7d, activity.logins_prev_7d),
            "actionDrop": percent_drop(
                activity.core_actions_last_7d, activity.core_actions_prev_7d
            ),
            "activeUsers": activity.active_users_last_7d,
            "seatsDropped": activity.seats_dropped_last_30d,
        }
        return message

    async def _emit(self, message: Dict[str, Any]) -> None:
        """Log the message and POST it to the webhook when configured."""
        tag = LOG_TAGS[message["type"]]
        try:
            logger.info("%s %s", tag, json.dumps(message, default=str))
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize %s message: %s", message["type"], e)
            return

        if not self.webhook_url:
            return

        try:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=self.timeout)
            response = await self._client.post(self.webhook_url, json=message)
            if response.status_code >= 400:
                logger.warning(
                    "Alert webhook returned %s for %s", response.status_code, message["type"]
                )
        except Exception as e:
            logger.error("Failed to send %s alert: %s", message["type"], e)
