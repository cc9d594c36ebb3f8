"""
Cancel flow orchestrator.

Drives one customer session through the retention funnel:

    Feedback --submit_reason--> Plans --decline--> Offer --decline--> Closed(Cancelled)
                                  |                  |
                             switch_plan        accept_offer
                                  v                  v
                         Closed(PlanSwitched)  Closed(OfferAccepted)

`back` regresses exactly one step (Plans->Feedback, Offer->Plans).
Every legal move is a row in TRANSITIONS; anything else raises
InvalidTransitionError.

Usage:
    orchestrator = FlowOrchestrator(
        config=FlowConfig(),
        event_sink=api,
        discount_provider=api,
        plan_switcher=api,
    )
    session = orchestrator.open("cus_123", "sub_456")
    await orchestrator.submit_reason(session.session_id, "too_expensive")
    await orchestrator.decline_plans(session.session_id)
    result = await orchestrator.accept_offer(session.session_id)
    if not result.ok:
        show(result.failure.title, result.failure.message)
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .config import FlowConfig, OTHER_OPTION_ID
from .errors import (
    CONNECTION_EXCEPTIONS,
    FailureKind,
    FlowFailure,
    InvalidReasonError,
    InvalidTransitionError,
    StaleSessionError,
    UnknownPlanError,
    classify_error_code,
    classify_exception,
)
from .events import ChurnEvent, ChurnEventType, EventSource
from .providers import DiscountProvider, EventSink, PlanSwitcher, ProviderResponse
from .retry import RetryConfig, call_with_retry
from .states import (
    ClosedState,
    FeedbackState,
    FlowAction,
    FlowSession,
    FlowStep,
    OfferState,
    Outcome,
    PlansState,
    SessionRegistry,
)

logger = logging.getLogger(__name__)

Callback = Callable[..., Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of one orchestrator call.

    ok=False means a provider failure: the session did not advance and
    `failure` says what to show. `notice` carries an informational
    message on success (e.g. an existing discount).
    """

    ok: bool
    session: FlowSession
    failure: Optional[FlowFailure] = None
    notice: Optional[FlowFailure] = None

    @property
    def step(self) -> FlowStep:
        return self.session.step


TRANSITIONS: Dict[tuple, str] = {
    (FlowStep.FEEDBACK, FlowAction.SUBMIT_REASON): "_submit_reason",
    (FlowStep.PLANS, FlowAction.SWITCH_PLAN): "_switch_plan",
    (FlowStep.PLANS, FlowAction.DECLINE): "_decline_plans",
    (FlowStep.PLANS, FlowAction.BACK): "_back",
    (FlowStep.OFFER, FlowAction.ACCEPT_OFFER): "_accept_offer",
    (FlowStep.OFFER, FlowAction.DECLINE): "_decline_offer",
    (FlowStep.OFFER, FlowAction.BACK): "_back",
}


class FlowOrchestrator:
    """
    Cancel flow state machine.

    Sessions are assumed to be driven by a single actor. Pass
    `expected_version` to reject transitions based on a stale view;
    without it the last write wins.
    """

    def __init__(
        self,
        config: Optional[FlowConfig] = None,
        event_sink: Optional[EventSink] = None,
        discount_provider: Optional[DiscountProvider] = None,
        plan_switcher: Optional[PlanSwitcher] = None,
        on_cancel_confirmed: Optional[Callback] = None,
        on_offer_accepted: Optional[Callback] = None,
        on_plan_switched: Optional[Callback] = None,
        registry: Optional[SessionRegistry] = None,
    ):
        self.config = config or FlowConfig()
        self.event_sink = event_sink
        self.discount_provider = discount_provider
        self.plan_switcher = plan_switcher
        self.on_cancel_confirmed = on_cancel_confirmed
        self.on_offer_accepted = on_offer_accepted
        self.on_plan_switched = on_plan_switched
        self.registry = registry or SessionRegistry()
        self.retry_config = RetryConfig(
            timeout=self.config.provider_timeout_seconds,
            max_retries=self.config.provider_retries,
            base_delay=self.config.retry_delay_seconds,
        )

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    def open(self, customer_id: str, subscription_id: str) -> FlowSession:
        """Start (or restart) the flow at Feedback with nothing selected."""
        session = self.registry.open(customer_id, subscription_id)
        logger.info(
            "Cancel flow opened: session=%s customer=%s", session.session_id, customer_id
        )
        return session

    def get(self, session_id: str) -> FlowSession:
        return self.registry.get(session_id)

    async def submit_reason(
        self,
        session_id: str,
        reason: str,
        other_text: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> StepResult:
        return await self._dispatch(
            session_id, FlowAction.SUBMIT_REASON, expected_version,
            reason=reason, other_text=other_text,
        )

    async def switch_plan(
        self, session_id: str, plan_id: str, expected_version: Optional[int] = None
    ) -> StepResult:
        return await self._dispatch(
            session_id, FlowAction.SWITCH_PLAN, expected_version, plan_id=plan_id
        )

    async def decline_plans(
        self, session_id: str, expected_version: Optional[int] = None
    ) -> StepResult:
        return await self._dispatch(
            session_id, FlowAction.DECLINE, expected_version, expected_step=FlowStep.PLANS
        )

    async def accept_offer(
        self, session_id: str, expected_version: Optional[int] = None
    ) -> StepResult:
        return await self._dispatch(session_id, FlowAction.ACCEPT_OFFER, expected_version)

    async def decline_offer(
        self, session_id: str, expected_version: Optional[int] = None
    ) -> StepResult:
        return await self._dispatch(
            session_id, FlowAction.DECLINE, expected_version, expected_step=FlowStep.OFFER
        )

    async def back(
        self, session_id: str, expected_version: Optional[int] = None
    ) -> StepResult:
        return await self._dispatch(session_id, FlowAction.BACK, expected_version)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def _dispatch(
        self,
        session_id: str,
        action: FlowAction,
        expected_version: Optional[int],
        expected_step: Optional[FlowStep] = None,
        **kwargs: Any,
    ) -> StepResult:
        session = self.registry.get(session_id)
        if expected_version is not None and expected_version != session.version:
            raise StaleSessionError(session_id, expected_version, session.version)

        # "decline" means different things on different screens
        if expected_step is not None and session.step != expected_step:
            raise InvalidTransitionError(session.step.value, f"{action.value}_{expected_step.value}")

        handler_name = TRANSITIONS.get((session.step, action))
        if handler_name is None:
            raise InvalidTransitionError(session.step.value, action.value)

        handler = getattr(self, handler_name)
        return await handler(session, **kwargs)

    def _commit(self, session: FlowSession, state) -> StepResult:
        updated = self.registry.commit(session, session.advance(state))
        logger.info(
            "Cancel flow %s: %s -> %s",
            session.session_id, session.step.value, updated.step.value,
        )
        return StepResult(ok=True, session=updated)

    # =========================================================================
    # TRANSITION HANDLERS
    # =========================================================================

    async def _submit_reason(
        self, session: FlowSession, reason: str, other_text: Optional[str] = None
    ) -> StepResult:
        if reason not in self.config.option_ids():
            raise InvalidReasonError(f"Unknown feedback option: {reason!r}")

        text = (other_text or "").strip() or None
        if reason == OTHER_OPTION_ID and text is None:
            raise InvalidReasonError("Please tell us a bit more about your reason")

        await self._log_event(
            session, ChurnEventType.FEEDBACK_SUBMITTED, {"reason": reason, "feedback": text}
        )
        return self._commit(session, PlansState(reason=reason, other_text=text))

    async def _switch_plan(self, session: FlowSession, plan_id: str) -> StepResult:
        plan = self.config.get_plan(plan_id)
        if plan is None:
            raise UnknownPlanError(f"Unknown plan: {plan_id!r}")

        await self._log_event(
            session,
            ChurnEventType.PLAN_SWITCHED,
            {
                "reason": session.selected_reason,
                "newPlanId": plan_id,
                "discountPercent": self.config.plan_discount_percent,
            },
        )

        if self.plan_switcher is None:
            return self._fail(session, FlowFailure.of(FailureKind.PROVIDER_NOT_CONFIGURED))

        failure = await self._call_provider(
            lambda: self.plan_switcher.switch_plan(
                session.customer_id, session.subscription_id, plan
            )
        )
        if failure is not None:
            return self._fail(session, failure)

        result = self._commit(
            session,
            ClosedState(
                outcome=Outcome.PLAN_SWITCHED,
                reason=session.selected_reason,
                other_text=session.other_text,
                plan_id=plan_id,
            ),
        )
        await self._run_closed_callback(self.on_plan_switched, plan_id)
        return result

    async def _decline_plans(self, session: FlowSession) -> StepResult:
        await self._log_event(
            session, ChurnEventType.PLANS_DECLINED, {"reason": session.selected_reason}
        )
        return self._commit(
            session, OfferState(reason=session.selected_reason, other_text=session.other_text)
        )

    async def _accept_offer(self, session: FlowSession) -> StepResult:
        await self._log_event(
            session,
            ChurnEventType.OFFER_ACCEPTED,
            {
                "reason": session.selected_reason,
                "discountPercent": self.config.discount_percent,
                "discountDuration": self.config.discount_duration,
            },
        )

        if self.discount_provider is None:
            return self._fail(session, FlowFailure.of(FailureKind.PROVIDER_NOT_CONFIGURED))

        failure = await self._call_provider(
            lambda: self.discount_provider.apply_discount(
                session.customer_id,
                session.subscription_id,
                self.config.discount_percent,
                self.config.discount_duration_months,
                {"reason": session.selected_reason},
            )
        )

        notice = None
        if failure is not None:
            # An existing discount means the customer is already saved
            if failure.kind != FailureKind.ALREADY_HAS_DISCOUNT:
                return self._fail(session, failure)
            notice = failure

        closed = self._commit(
            session,
            ClosedState(
                outcome=Outcome.OFFER_ACCEPTED,
                reason=session.selected_reason,
                other_text=session.other_text,
            ),
        )
        await self._run_closed_callback(self.on_offer_accepted)
        return StepResult(ok=True, session=closed.session, notice=notice)

    async def _decline_offer(self, session: FlowSession) -> StepResult:
        await self._log_event(
            session,
            ChurnEventType.CANCELLATION_CONFIRMED,
            {"reason": session.selected_reason, "offersDeclined": True},
        )
        # The host must finish cancelling before the session closes
        await self._run_callback(
            self.on_cancel_confirmed, session.selected_reason, session.other_text
        )
        return self._commit(
            session,
            ClosedState(
                outcome=Outcome.CANCELLED,
                reason=session.selected_reason,
                other_text=session.other_text,
            ),
        )

    async def _back(self, session: FlowSession) -> StepResult:
        if session.step == FlowStep.PLANS:
            return self._commit(session, FeedbackState())
        return self._commit(
            session, PlansState(reason=session.selected_reason, other_text=session.other_text)
        )

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    def _fail(self, session: FlowSession, failure: FlowFailure) -> StepResult:
        logger.warning(
            "Cancel flow %s stays at %s: %s (%s)",
            session.session_id, session.step.value, failure.kind.value,
            failure.provider_message or failure.provider_code,
        )
        return StepResult(ok=False, session=session, failure=failure)

    async def _call_provider(
        self, call: Callable[[], Awaitable[ProviderResponse]]
    ) -> Optional[FlowFailure]:
        """Run a provider call with timeout and retry; None on success."""
        try:
            response = await call_with_retry(call, self.retry_config)
        except CONNECTION_EXCEPTIONS as e:
            return classify_exception(e)
        except Exception as e:
            logger.exception("Provider call raised")
            return classify_exception(e)

        if response is None:
            return FlowFailure.of(FailureKind.CONNECTION_ERROR)
        if response.success:
            return None
        return classify_error_code(response.error, response.message)

    async def _log_event(
        self, session: FlowSession, event_type: ChurnEventType, details: dict
    ) -> None:
        """Best-effort event write. Never raises, never blocks a transition."""
        if self.event_sink is None:
            return
        event = ChurnEvent(
            event_type=event_type,
            customer_id=session.customer_id,
            subscription_id=session.subscription_id,
            details=details,
            source=EventSource.CANCEL_FLOW,
            organization_id=self.config.organization_id,
        )
        try:
            await asyncio.wait_for(
                self.event_sink.log_event(event), timeout=self.config.event_timeout_seconds
            )
        except Exception as e:
            logger.warning(
                "Failed to log cancel flow event %s for %s: %r",
                event_type.value, session.customer_id, e,
            )

    async def _run_callback(self, callback: Optional[Callback], *args: Any) -> None:
        if callback is None:
            return
        result = callback(*args)
        if inspect.isawaitable(result):
            await result

    async def _run_closed_callback(self, callback: Optional[Callback], *args: Any) -> None:
        """Run a host callback after the session closed. Failures are only logged."""
        try:
            await self._run_callback(callback, *args)
        except Exception as e:
            logger.error("Host callback %r failed after close: %r", callback, e)
