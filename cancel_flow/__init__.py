"""
Cancel flow package.

A three-step retention funnel (feedback -> alternative plans -> save
offer) driven by an explicit state machine.

Usage:
    from cancel_flow import FlowOrchestrator, FlowConfig

    orchestrator = FlowOrchestrator(FlowConfig(), event_sink=sink,
                                    discount_provider=billing,
                                    plan_switcher=billing)
    session = orchestrator.open("cus_123", "sub_456")
"""

from .config import FlowConfig, FeedbackOption, Plan, assign_letters
from .errors import (
    FailureKind,
    FlowError,
    FlowFailure,
    InvalidReasonError,
    InvalidTransitionError,
    SessionNotFoundError,
    StaleSessionError,
    UnknownPlanError,
)
from .events import ChurnEvent, ChurnEventType, EventSource
from .orchestrator import FlowOrchestrator, StepResult
from .providers import DiscountProvider, EventSink, PlanSwitcher, ProviderResponse
from .states import FlowSession, FlowStep, Outcome

__all__ = [
    "FlowConfig",
    "FeedbackOption",
    "Plan",
    "assign_letters",
    "FailureKind",
    "FlowError",
    "FlowFailure",
    "InvalidReasonError",
    "InvalidTransitionError",
    "SessionNotFoundError",
    "StaleSessionError",
    "UnknownPlanError",
    "ChurnEvent",
    "ChurnEventType",
    "EventSource",
    "FlowOrchestrator",
    "StepResult",
    "DiscountProvider",
    "EventSink",
    "PlanSwitcher",
    "ProviderResponse",
    "FlowSession",
    "FlowStep",
    "Outcome",
]
