"""
Churn event records.

Events are immutable and append-only: producers create them, sinks
store them, nothing updates or deletes them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ChurnEventType(str, Enum):
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_RETRY_SENT = "payment_retry_sent"
    PAYMENT_RECOVERED = "payment_recovered"
    CANCELLATION_ATTEMPT = "cancellation_attempt"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_DECLINED = "offer_declined"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_RECOVERED = "subscription_recovered"
    FEEDBACK_SUBMITTED = "feedback_submitted"
    PLAN_SWITCHED = "plan_switched"
    PLANS_DECLINED = "plans_declined"
    CANCELLATION_CONFIRMED = "cancellation_confirmed"


class EventSource(str, Enum):
    WEBHOOK = "webhook"
    CANCEL_FLOW = "cancel_flow"
    API = "api"
    MANUAL = "manual"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChurnEvent:
    """A single behavioral or churn event."""

    event_type: ChurnEventType
    customer_id: str
    subscription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    source: EventSource = EventSource.CANCEL_FLOW
    occurred_at: datetime = field(default_factory=utcnow)
    organization_id: Optional[str] = None
    customer_email: Optional[str] = None

    def __post_init__(self):
        # Coerce plain strings so the enums stay closed
        object.__setattr__(self, "event_type", ChurnEventType(self.event_type))
        object.__setattr__(self, "source", EventSource(self.source))

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape of the event."""
        data = {
            "eventType": self.event_type.value,
            "customerId": self.customer_id,
            "subscriptionId": self.subscription_id,
            "invoiceId": self.invoice_id,
            "details": dict(self.details),
            "source": self.source.value,
            "occurredAt": self.occurred_at.isoformat(),
        }
        if self.organization_id:
            data["organizationId"] = self.organization_id
        if self.customer_email:
            data["customerEmail"] = self.customer_email
        return data
