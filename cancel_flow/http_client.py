"""
HTTP collaborators for the cancel flow host API.

Speaks the flow-event contract:

    POST {api_endpoint}
    {"eventType": ..., "customerId": ..., "subscriptionId": ..., "details": {...}}
    -> {"success": bool, "error"?: str, "message"?: str, "discountApplied"?: bool}

The discount is applied by the offer_accepted event itself, so that event
is sent once, by apply_discount, and never through log_event.

Transport failures are raised (httpx.TransportError) so the orchestrator
can classify them as connection errors.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .config import FlowConfig, Plan
from .errors import ERROR_CODES
from .events import ChurnEvent, ChurnEventType
from .providers import DiscountProvider, EventSink, PlanSwitcher, ProviderResponse

logger = logging.getLogger(__name__)


class HttpFlowApi(EventSink, DiscountProvider, PlanSwitcher):
    """Event sink, discount provider and plan switcher over HTTP."""

    def __init__(
        self,
        config: Optional[FlowConfig] = None,
        base_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or FlowConfig()
        self.client = client or httpx.AsyncClient(
            base_url=base_url, timeout=self.config.provider_timeout_seconds
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "HttpFlowApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def log_event(self, event: ChurnEvent) -> None:
        if event.event_type == ChurnEventType.OFFER_ACCEPTED:
            # Sent by apply_discount
            return
        response = await self.client.post(
            self.config.api_endpoint, json=self._event_body(event)
        )
        if response.status_code >= 400:
            logger.warning(
                "Event endpoint returned %s for %s", response.status_code, event.event_type.value
            )

    async def apply_discount(
        self,
        customer_id: str,
        subscription_id: str,
        discount_percent: float,
        duration_months: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> ProviderResponse:
        event = ChurnEvent(
            event_type=ChurnEventType.OFFER_ACCEPTED,
            customer_id=customer_id,
            subscription_id=subscription_id,
            details={
                **(details or {}),
                "discountPercent": discount_percent,
                "discountDuration": f"{duration_months} months",
            },
        )
        response = await self.client.post(
            self.config.discount_endpoint, json=self._event_body(event)
        )
        return self._parse(response)

    async def switch_plan(
        self,
        customer_id: str,
        subscription_id: str,
        plan: Plan,
    ) -> ProviderResponse:
        response = await self.client.post(
            self.config.switch_plan_endpoint,
            json={
                "flowId": self.config.flow_id,
                "customerId": customer_id,
                "subscriptionId": subscription_id,
                "newPriceId": plan.price_id or plan.id,
                "planName": plan.name,
                "discountPercent": plan.discount_percent,
                "discountDurationMonths": plan.discount_duration_months,
            },
        )
        return self._parse(response)

    def _event_body(self, event: ChurnEvent) -> Dict[str, Any]:
        return {
            "eventType": event.event_type.value,
            "customerId": event.customer_id,
            "subscriptionId": event.subscription_id,
            "details": dict(event.details),
            "flowId": self.config.flow_id,
        }

    @staticmethod
    def _parse(response: httpx.Response) -> ProviderResponse:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if "success" not in data:
            # Error routes reply with {"error": "<message>"} and a status code
            error = data.get("error")
            return ProviderResponse(
                success=response.is_success,
                error=error if error in ERROR_CODES else None,
                message=error or (None if response.is_success else f"HTTP {response.status_code}"),
            )
        return ProviderResponse.from_json(data)
