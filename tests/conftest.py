"""
Pytest fixtures for cancel flow, risk scoring and daily health tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

# Add packages to path
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scoring.config import ScoringConfig
from scoring.scorer import RiskScorer, generate_sample_metrics
from cancel_flow import (
    ChurnEvent,
    ChurnEventType,
    DiscountProvider,
    EventSink,
    FlowConfig,
    FlowOrchestrator,
    PlanSwitcher,
    ProviderResponse,
)
from health import HealthJobConfig, InMemoryEventLog, InMemorySnapshotStore


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class RecordingSink(EventSink):
    """Keeps every logged event in memory."""

    def __init__(self):
        self.events: list[ChurnEvent] = []

    async def log_event(self, event):
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


class FailingSink(EventSink):
    """Event store that is always down."""

    def __init__(self):
        self.calls = 0

    async def log_event(self, event):
        self.calls += 1
        raise ConnectionError("event store unreachable")


class HangingSink(EventSink):
    """Event store that never answers."""

    async def log_event(self, event):
        await asyncio.sleep(3600)


class ScriptedProvider(DiscountProvider, PlanSwitcher):
    """
    Discount provider / plan switcher replaying scripted outcomes.

    Each entry is a ProviderResponse to return or an exception to
    raise. Once the script runs out every call succeeds.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls: list[dict] = []

    def _next(self):
        if self.script:
            outcome = self.script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return ProviderResponse(success=True, discount_applied=True)

    async def apply_discount(
        self, customer_id, subscription_id, discount_percent, duration_months, details=None
    ):
        self.calls.append({
            "kind": "discount",
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "discount_percent": discount_percent,
            "duration_months": duration_months,
        })
        return self._next()

    async def switch_plan(self, customer_id, subscription_id, plan):
        self.calls.append({
            "kind": "switch",
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "plan_id": plan.id,
        })
        return self._next()


def make_event(event_type, customer_id="cus_1", days_ago=1.0, org="org_1", email=None,
               now=NOW):
    """Churn event `days_ago` days before `now`."""
    return ChurnEvent(
        event_type=event_type,
        customer_id=customer_id,
        occurred_at=now - timedelta(days=days_ago),
        organization_id=org,
        customer_email=email,
    )


# =============================================================================
# SCORING FIXTURES
# =============================================================================


@pytest.fixture
def default_config():
    """Default scoring configuration."""
    return ScoringConfig()


@pytest.fixture
def scorer(default_config):
    """RiskScorer with default config."""
    return RiskScorer(default_config)


@pytest.fixture
def sample_metrics():
    """100 sample customers with realistic distributions."""
    return generate_sample_metrics(n_customers=100, seed=42)


@pytest.fixture
def edge_cases():
    """Specific edge cases for testing boundary conditions."""
    return pd.DataFrame([
        # Quiet customer: never touched the cancel flow
        {
            "CUSTOMER_ID": "EDGE_QUIET",
            "CANCEL_ATTEMPTS_7D": 0,
            "CANCEL_ATTEMPTS_30D": 0,
            "OFFERS_DECLINED_30D": 0,
            "OFFERS_ACCEPTED_30D": 0,
            "SUBSCRIPTION_CANCELED": False,
            "FEEDBACK_SUBMITTED_30D": 0,
        },
        # Everything fires: recent, canceled, declined, persistent, accepted, feedback
        {
            "CUSTOMER_ID": "EDGE_ALL_FLAGS",
            "CANCEL_ATTEMPTS_7D": 3,
            "CANCEL_ATTEMPTS_30D": 5,
            "OFFERS_DECLINED_30D": 2,
            "OFFERS_ACCEPTED_30D": 1,
            "SUBSCRIPTION_CANCELED": True,
            "FEEDBACK_SUBMITTED_30D": 4,
        },
        # Saved: tried to leave this week but took the offer
        {
            "CUSTOMER_ID": "EDGE_SAVED",
            "CANCEL_ATTEMPTS_7D": 1,
            "CANCEL_ATTEMPTS_30D": 1,
            "OFFERS_DECLINED_30D": 0,
            "OFFERS_ACCEPTED_30D": 1,
            "SUBSCRIPTION_CANCELED": False,
            "FEEDBACK_SUBMITTED_30D": 0,
        },
        # Churned: canceled after declining offers
        {
            "CUSTOMER_ID": "EDGE_CHURNED",
            "CANCEL_ATTEMPTS_7D": 0,
            "CANCEL_ATTEMPTS_30D": 3,
            "OFFERS_DECLINED_30D": 1,
            "OFFERS_ACCEPTED_30D": 0,
            "SUBSCRIPTION_CANCELED": True,
            "FEEDBACK_SUBMITTED_30D": 0,
        },
        # Only protective signal: accepted an offer weeks ago
        {
            "CUSTOMER_ID": "EDGE_NEGATIVE",
            "CANCEL_ATTEMPTS_7D": 0,
            "CANCEL_ATTEMPTS_30D": 0,
            "OFFERS_DECLINED_30D": 0,
            "OFFERS_ACCEPTED_30D": 2,
            "SUBSCRIPTION_CANCELED": False,
            "FEEDBACK_SUBMITTED_30D": 0,
        },
    ])


# =============================================================================
# CANCEL FLOW FIXTURES
# =============================================================================


@pytest.fixture
def flow_config():
    """Flow config with fast provider limits for tests."""
    return FlowConfig(
        organization_id="org_1",
        provider_timeout_seconds=0.2,
        retry_delay_seconds=0.0,
        event_timeout_seconds=0.2,
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def orchestrator(flow_config, sink, provider):
    """Orchestrator wired to a recording sink and an always-succeeding provider."""
    return FlowOrchestrator(
        flow_config,
        event_sink=sink,
        discount_provider=provider,
        plan_switcher=provider,
    )


@pytest.fixture
def session(orchestrator):
    """Freshly opened session at Feedback."""
    return orchestrator.open("cus_123", "sub_456")


# =============================================================================
# HEALTH FIXTURES
# =============================================================================


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def event_log():
    return InMemoryEventLog()


@pytest.fixture
def snapshot_store():
    return InMemorySnapshotStore()


@pytest.fixture
def job_config(tmp_path):
    return HealthJobConfig(
        max_concurrency=4,
        customer_timeout_seconds=1.0,
        logs_dir=str(tmp_path / "logs"),
    )
