"""
Churn event log for the daily health batch.

The batch reads churn events per customer; the cancel flow writes them.
InMemoryEventLog does both and keeps events as an append-only list,
exposing pandas DataFrames for aggregation.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd
from pandera import Column, Check, DataFrameSchema

from cancel_flow.events import ChurnEvent, ChurnEventType, EventSource
from cancel_flow.providers import EventSink
from scoring.schemas import validate_frame

from .store import ActivityMetrics


DEFAULT_ORG_ID = "default"

EVENT_COLUMNS = [
    "ORGANIZATION_ID",
    "CUSTOMER_ID",
    "CUSTOMER_EMAIL",
    "SUBSCRIPTION_ID",
    "EVENT_TYPE",
    "SOURCE",
    "OCCURRED_AT",
]

EVENT_LOG_SCHEMA = DataFrameSchema(
    {
        "ORGANIZATION_ID": Column(str, nullable=False),
        "CUSTOMER_ID": Column(str, nullable=False),
        "CUSTOMER_EMAIL": Column(nullable=True, required=False),
        "SUBSCRIPTION_ID": Column(nullable=True, required=False),
        "EVENT_TYPE": Column(
            str,
            nullable=False,
            checks=Check.isin([t.value for t in ChurnEventType]),
        ),
        "SOURCE": Column(
            str,
            nullable=False,
            checks=Check.isin([s.value for s in EventSource]),
        ),
        "OCCURRED_AT": Column(pd.DatetimeTZDtype(tz="UTC"), nullable=False),
    },
    strict=False,
    coerce=True,
    description="Schema for the churn event log",
)


def events_to_frame(events: Iterable[ChurnEvent]) -> pd.DataFrame:
    """Flatten churn events into an event log DataFrame."""
    rows = [
        {
            "ORGANIZATION_ID": e.organization_id or DEFAULT_ORG_ID,
            "CUSTOMER_ID": e.customer_id,
            "CUSTOMER_EMAIL": e.customer_email,
            "SUBSCRIPTION_ID": e.subscription_id,
            "EVENT_TYPE": e.event_type.value,
            "SOURCE": e.source.value,
            "OCCURRED_AT": e.occurred_at,
        }
        for e in events
    ]
    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df["OCCURRED_AT"] = pd.to_datetime(df["OCCURRED_AT"], utc=True)
    return df


def load_events_csv(path: Path | str) -> list[ChurnEvent]:
    """
    Load churn events from a CSV export.

    Expected columns (case-insensitive): event_type, customer_id,
    occurred_at, and optionally organization_id, customer_email,
    subscription_id, source.
    """
    df = pd.read_csv(path)
    df.columns = [c.upper() for c in df.columns]
    df = df.rename(columns={"TIMESTAMP": "OCCURRED_AT", "CREATED_AT": "OCCURRED_AT"})
    for col in ("ORGANIZATION_ID", "CUSTOMER_EMAIL", "SUBSCRIPTION_ID"):
        if col not in df.columns:
            df[col] = None
    if "SOURCE" not in df.columns:
        df["SOURCE"] = EventSource.API.value
    df["ORGANIZATION_ID"] = df["ORGANIZATION_ID"].fillna(DEFAULT_ORG_ID)
    df["OCCURRED_AT"] = pd.to_datetime(df["OCCURRED_AT"], utc=True)
    df = validate_frame(EVENT_LOG_SCHEMA, df)

    def _opt(value) -> Optional[str]:
        return None if pd.isna(value) else str(value)

    return [
        ChurnEvent(
            event_type=row["EVENT_TYPE"],
            customer_id=str(row["CUSTOMER_ID"]),
            subscription_id=_opt(row["SUBSCRIPTION_ID"]),
            source=row["SOURCE"],
            occurred_at=row["OCCURRED_AT"].to_pydatetime(),
            organization_id=str(row["ORGANIZATION_ID"]),
            customer_email=_opt(row["CUSTOMER_EMAIL"]),
        )
        for row in df.to_dict("records")
    ]


class EventLog(ABC):
    """Read side of the churn event store."""

    @abstractmethod
    async def list_organizations(self) -> list[str]:
        pass

    @abstractmethod
    async def list_customers(self, organization_id: str) -> list[tuple[str, Optional[str]]]:
        """(customer_id, most recent email) pairs, most recently active first."""
        pass

    @abstractmethod
    async def fetch_events(
        self, organization_id: str, customer_id: str, until: datetime
    ) -> pd.DataFrame:
        """All events for a customer strictly before `until`."""
        pass

    async def fetch_activity(
        self, organization_id: str, customer_id: str, until: datetime
    ) -> ActivityMetrics:
        """Usage counters for alert context. Zeros unless overridden."""
        return ActivityMetrics()


class InMemoryEventLog(EventSink, EventLog):
    """Append-only in-process event log, indexed by (organization, customer)."""

    def __init__(self, events: Optional[Iterable[ChurnEvent]] = None):
        self._events: list[ChurnEvent] = []
        self._by_customer: dict[tuple[str, str], list[ChurnEvent]] = defaultdict(list)
        self._frame: Optional[pd.DataFrame] = None
        for event in events or []:
            self.append(event)

    async def log_event(self, event: ChurnEvent) -> None:
        self.append(event)

    def append(self, event: ChurnEvent) -> None:
        self._events.append(event)
        key = (event.organization_id or DEFAULT_ORG_ID, event.customer_id)
        self._by_customer[key].append(event)
        self._frame = None

    def _all_events_frame(self) -> pd.DataFrame:
        if self._frame is None:
            self._frame = events_to_frame(self._events)
        return self._frame

    def frame(self) -> pd.DataFrame:
        return self._all_events_frame().copy()

    async def list_organizations(self) -> list[str]:
        df = self._all_events_frame()
        return sorted(df["ORGANIZATION_ID"].unique().tolist())

    async def list_customers(self, organization_id: str) -> list[tuple[str, Optional[str]]]:
        df = self._all_events_frame()
        df = df[df["ORGANIZATION_ID"] == organization_id]
        df = df.sort_values("OCCURRED_AT", ascending=False)

        customers: dict[str, Optional[str]] = {}
        for customer_id, email in zip(df["CUSTOMER_ID"], df["CUSTOMER_EMAIL"]):
            if customer_id not in customers:
                customers[customer_id] = None if pd.isna(email) else email
            elif customers[customer_id] is None and not pd.isna(email):
                customers[customer_id] = email
        return list(customers.items())

    async def fetch_events(
        self, organization_id: str, customer_id: str, until: datetime
    ) -> pd.DataFrame:
        df = events_to_frame(self._by_customer.get((organization_id, customer_id), []))
        return df[df["OCCURRED_AT"] < pd.Timestamp(until)].reset_index(drop=True)

    def __len__(self) -> int:
        return len(self._events)
