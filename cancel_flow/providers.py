"""Collaborator interfaces used by the cancel flow."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import Plan
from .events import ChurnEvent


@dataclass(frozen=True)
class ProviderResponse:
    """Structured result of a billing-side mutation."""

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    discount_applied: bool = False

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ProviderResponse":
        return cls(
            success=bool(data.get("success", False)),
            error=data.get("error"),
            message=data.get("message"),
            discount_applied=bool(data.get("discountApplied", False)),
        )


class EventSink(ABC):
    """Append-only churn event store. Writes are fire-and-forget."""

    @abstractmethod
    async def log_event(self, event: ChurnEvent) -> None:
        pass


class DiscountProvider(ABC):
    @abstractmethod
    async def apply_discount(
        self,
        customer_id: str,
        subscription_id: str,
        discount_percent: float,
        duration_months: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> ProviderResponse:
        """
        Apply a repeating percentage coupon to the subscription.

        May raise a connection-class exception when the provider is
        unreachable; business failures are reported in the response.
        """
        pass


class PlanSwitcher(ABC):
    @abstractmethod
    async def switch_plan(
        self,
        customer_id: str,
        subscription_id: str,
        plan: Plan,
    ) -> ProviderResponse:
        """Move the subscription to `plan` with its discount."""
        pass
