"""
Cancel flow errors.

Two families:
- FlowError subclasses are raised for caller mistakes (illegal
  transitions, invalid input, stale sessions).
- FlowFailure values are returned for provider outcomes. They are all
  recoverable: the customer can retry or back out.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx


class FlowError(Exception):
    """Base class for cancel flow caller errors."""


class SessionNotFoundError(FlowError):
    pass


class InvalidTransitionError(FlowError):
    def __init__(self, step: str, action: str):
        super().__init__(f"Action '{action}' is not allowed from step '{step}'")
        self.step = step
        self.action = action


class InvalidReasonError(FlowError):
    pass


class UnknownPlanError(FlowError):
    pass


class StaleSessionError(FlowError):
    def __init__(self, session_id: str, expected: int, actual: int):
        super().__init__(
            f"Session {session_id} is at version {actual}, caller expected {expected}"
        )
        self.session_id = session_id
        self.expected = expected
        self.actual = actual


class FailureKind(str, Enum):
    CONNECTION_ERROR = "connection_error"
    ALREADY_HAS_DISCOUNT = "already_has_discount"
    MISSING_SUBSCRIPTION = "missing_subscription"
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    UNKNOWN = "unknown"


# Provider error codes -> kind. Anything not listed is UNKNOWN.
ERROR_CODES = {
    "already_has_discount": FailureKind.ALREADY_HAS_DISCOUNT,
    "missing_subscription": FailureKind.MISSING_SUBSCRIPTION,
    "no_active_subscription": FailureKind.MISSING_SUBSCRIPTION,
    "stripe_not_configured": FailureKind.PROVIDER_NOT_CONFIGURED,
    "provider_not_configured": FailureKind.PROVIDER_NOT_CONFIGURED,
}

CONNECTION_EXCEPTIONS = (httpx.TransportError, ConnectionError, asyncio.TimeoutError)

USER_MESSAGES = {
    FailureKind.CONNECTION_ERROR: (
        "Connection problem",
        "We couldn't reach our billing system. Please check your connection and try again.",
    ),
    FailureKind.ALREADY_HAS_DISCOUNT: (
        "You already have savings",
        "Good news: your subscription already has an active discount, so you're all set.",
    ),
    FailureKind.MISSING_SUBSCRIPTION: (
        "Subscription not found",
        "We couldn't find an active subscription for your account. Please contact support.",
    ),
    FailureKind.PROVIDER_NOT_CONFIGURED: (
        "Offer unavailable",
        "This offer can't be applied right now. Please contact support and we'll sort it out.",
    ),
    FailureKind.UNKNOWN: (
        "Something went wrong",
        "We couldn't apply this change. Please try again.",
    ),
}


@dataclass(frozen=True)
class FlowFailure:
    """A classified, user-presentable provider failure."""

    kind: FailureKind
    title: str
    message: str
    provider_code: Optional[str] = None
    provider_message: Optional[str] = None

    @classmethod
    def of(
        cls,
        kind: FailureKind,
        provider_code: Optional[str] = None,
        provider_message: Optional[str] = None,
    ) -> "FlowFailure":
        title, message = USER_MESSAGES[kind]
        if kind == FailureKind.UNKNOWN and provider_message:
            message = f"{provider_message} Please try again."
        return cls(kind, title, message, provider_code, provider_message)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "title": self.title, "message": self.message}


def classify_error_code(code: Optional[str], message: Optional[str] = None) -> FlowFailure:
    """Classify a provider `success=false` response by its error code."""
    kind = ERROR_CODES.get((code or "").lower(), FailureKind.UNKNOWN)
    return FlowFailure.of(kind, provider_code=code, provider_message=message)


def classify_exception(exc: BaseException) -> FlowFailure:
    """Classify an exception raised by a provider call."""
    if isinstance(exc, CONNECTION_EXCEPTIONS):
        return FlowFailure.of(FailureKind.CONNECTION_ERROR, provider_message=str(exc) or None)
    return FlowFailure.of(FailureKind.UNKNOWN, provider_message=str(exc) or None)
