"""
Cancel flow session states.

Each step is its own frozen dataclass carrying only the data that is
valid in that step; FlowSession wraps the current state with identity
and a version counter for optimistic concurrency.
"""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .errors import SessionNotFoundError, StaleSessionError
from .events import utcnow


class FlowStep(str, Enum):
    FEEDBACK = "feedback"
    PLANS = "plans"
    OFFER = "offer"
    CLOSED = "closed"


class FlowAction(str, Enum):
    SUBMIT_REASON = "submit_reason"
    SWITCH_PLAN = "switch_plan"
    DECLINE = "decline"
    ACCEPT_OFFER = "accept_offer"
    BACK = "back"


class Outcome(str, Enum):
    PLAN_SWITCHED = "plan_switched"
    OFFER_ACCEPTED = "offer_accepted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FeedbackState:
    step = FlowStep.FEEDBACK


@dataclass(frozen=True)
class PlansState:
    reason: str
    other_text: Optional[str] = None
    step = FlowStep.PLANS


@dataclass(frozen=True)
class OfferState:
    reason: str
    other_text: Optional[str] = None
    step = FlowStep.OFFER


@dataclass(frozen=True)
class ClosedState:
    outcome: Outcome
    reason: str
    other_text: Optional[str] = None
    plan_id: Optional[str] = None
    step = FlowStep.CLOSED


State = Union[FeedbackState, PlansState, OfferState, ClosedState]


@dataclass(frozen=True)
class FlowSession:
    customer_id: str
    subscription_id: str
    state: State = field(default_factory=FeedbackState)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def step(self) -> FlowStep:
        return self.state.step

    @property
    def is_closed(self) -> bool:
        return self.step == FlowStep.CLOSED

    @property
    def outcome(self) -> Optional[Outcome]:
        return getattr(self.state, "outcome", None)

    @property
    def selected_reason(self) -> Optional[str]:
        return getattr(self.state, "reason", None)

    @property
    def other_text(self) -> Optional[str]:
        return getattr(self.state, "other_text", None)

    def advance(self, state: State) -> "FlowSession":
        """New session value in `state`, one version later."""
        return replace(self, state=state, version=self.version + 1)

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "customerId": self.customer_id,
            "subscriptionId": self.subscription_id,
            "step": self.step.value,
            "selectedReason": self.selected_reason,
            "otherText": self.other_text,
            "outcome": self.outcome.value if self.outcome else None,
            "startedAt": self.started_at.isoformat(),
            "version": self.version,
        }


class SessionRegistry:
    """
    In-process session store keyed by session id.

    Holds exactly one session per (customer_id, subscription_id);
    opening a new one for the same pair replaces the previous one.
    """

    def __init__(self):
        self._sessions: Dict[str, FlowSession] = {}
        self._by_pair: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def open(self, customer_id: str, subscription_id: str) -> FlowSession:
        session = FlowSession(customer_id=customer_id, subscription_id=subscription_id)
        pair = (customer_id, subscription_id)
        with self._lock:
            previous = self._by_pair.get(pair)
            if previous is not None:
                self._sessions.pop(previous, None)
            self._sessions[session.session_id] = session
            self._by_pair[pair] = session.session_id
        return session

    def get(self, session_id: str) -> FlowSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"No open session {session_id}") from None

    def commit(self, previous: FlowSession, updated: FlowSession) -> FlowSession:
        """
        Replace `previous` with `updated` if nobody else moved it first.

        Raises:
            StaleSessionError: if the stored version is not previous.version
        """
        with self._lock:
            current = self.get(previous.session_id)
            if current.version != previous.version:
                raise StaleSessionError(
                    previous.session_id, previous.version, current.version
                )
            self._sessions[updated.session_id] = updated
        return updated

    def __len__(self) -> int:
        return len(self._sessions)
