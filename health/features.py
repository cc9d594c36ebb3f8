"""
Metrics aggregation for the daily health batch.

Turns a churn event log into the rolling CustomerMetrics the risk
scorer consumes. All windows are half-open: [now - N days, now).
"""

from datetime import datetime, timedelta

import pandas as pd

from cancel_flow.events import ChurnEventType
from scoring import CustomerMetrics


METRIC_COLUMNS = [
    "CANCEL_ATTEMPTS_7D",
    "CANCEL_ATTEMPTS_30D",
    "OFFERS_DECLINED_30D",
    "OFFERS_ACCEPTED_30D",
    "SUBSCRIPTION_CANCELED",
    "FEEDBACK_SUBMITTED_30D",
    "DAYS_SINCE_LAST_EVENT",
]


def _window_flags(
    events: pd.DataFrame,
    now: datetime,
    recent_days: int,
    window_days: int,
) -> pd.DataFrame:
    """Per-event indicator columns for each counted metric."""
    now_ts = pd.Timestamp(now)
    if now_ts.tzinfo is None:
        now_ts = now_ts.tz_localize("UTC")
    occurred = pd.to_datetime(events["OCCURRED_AT"], utc=True)
    event_type = events["EVENT_TYPE"].astype(str)

    in_recent = (occurred >= now_ts - timedelta(days=recent_days)) & (occurred < now_ts)
    in_window = (occurred >= now_ts - timedelta(days=window_days)) & (occurred < now_ts)

    is_attempt = event_type == ChurnEventType.CANCELLATION_ATTEMPT.value
    flags = pd.DataFrame(
        {
            "CUSTOMER_ID": events["CUSTOMER_ID"],
            "CANCEL_ATTEMPTS_7D": (is_attempt & in_recent).astype(int),
            "CANCEL_ATTEMPTS_30D": (is_attempt & in_window).astype(int),
            "OFFERS_DECLINED_30D": (
                (event_type == ChurnEventType.OFFER_DECLINED.value) & in_window
            ).astype(int),
            "OFFERS_ACCEPTED_30D": (
                (event_type == ChurnEventType.OFFER_ACCEPTED.value) & in_window
            ).astype(int),
            "SUBSCRIPTION_CANCELED": (
                (event_type == ChurnEventType.SUBSCRIPTION_CANCELED.value) & in_window
            ),
            "FEEDBACK_SUBMITTED_30D": (
                (event_type == ChurnEventType.FEEDBACK_SUBMITTED.value) & in_window
            ).astype(int),
            # Age of every event before now, regardless of window
            "AGE_DAYS": (now_ts - occurred).dt.days.where(occurred < now_ts),
        },
        index=events.index,
    )
    return flags


def aggregate_metrics_frame(
    events: pd.DataFrame,
    now: datetime,
    recent_days: int = 7,
    window_days: int = 30,
) -> pd.DataFrame:
    """
    Aggregate an event log into one metrics row per customer.

    Args:
        events: Event log with CUSTOMER_ID, EVENT_TYPE, OCCURRED_AT columns
        now: End of the windows (exclusive)
        recent_days: Length of the short cancel-attempt window
        window_days: Length of the main window

    Returns:
        DataFrame with CUSTOMER_ID plus METRIC_COLUMNS, ready for
        RiskScorer.score()
    """
    if events.empty:
        return pd.DataFrame(columns=["CUSTOMER_ID", *METRIC_COLUMNS])

    flags = _window_flags(events, now, recent_days, window_days)
    grouped = flags.groupby("CUSTOMER_ID", sort=True)

    result = grouped[
        [
            "CANCEL_ATTEMPTS_7D",
            "CANCEL_ATTEMPTS_30D",
            "OFFERS_DECLINED_30D",
            "OFFERS_ACCEPTED_30D",
            "FEEDBACK_SUBMITTED_30D",
        ]
    ].sum()
    result["SUBSCRIPTION_CANCELED"] = grouped["SUBSCRIPTION_CANCELED"].any()
    result["DAYS_SINCE_LAST_EVENT"] = grouped["AGE_DAYS"].min()

    return result.reset_index()[["CUSTOMER_ID", *METRIC_COLUMNS]]


def aggregate_metrics(
    events: pd.DataFrame,
    now: datetime,
    recent_days: int = 7,
    window_days: int = 30,
) -> CustomerMetrics:
    """
    Aggregate one customer's events into CustomerMetrics.

    A customer with no events in the windows gets all-zero metrics.
    """
    if events.empty:
        return CustomerMetrics()

    frame = aggregate_metrics_frame(events, now, recent_days, window_days)
    totals = frame[
        [
            "CANCEL_ATTEMPTS_7D",
            "CANCEL_ATTEMPTS_30D",
            "OFFERS_DECLINED_30D",
            "OFFERS_ACCEPTED_30D",
            "FEEDBACK_SUBMITTED_30D",
        ]
    ].sum()
    days = frame["DAYS_SINCE_LAST_EVENT"].min()

    return CustomerMetrics(
        cancel_attempts_7d=int(totals["CANCEL_ATTEMPTS_7D"]),
        cancel_attempts_30d=int(totals["CANCEL_ATTEMPTS_30D"]),
        offers_declined_30d=int(totals["OFFERS_DECLINED_30D"]),
        offers_accepted_30d=int(totals["OFFERS_ACCEPTED_30D"]),
        subscription_canceled=bool(frame["SUBSCRIPTION_CANCELED"].any()),
        feedback_submitted_30d=int(totals["FEEDBACK_SUBMITTED_30D"]),
        days_since_last_event=None if pd.isna(days) else int(days),
    )
