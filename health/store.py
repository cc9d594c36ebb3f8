"""
Customer health snapshots.

One snapshot per (organization, customer, date). Snapshots are never
updated: a later day creates a new row, and re-saving an existing day
returns the stored row untouched.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Dict, Optional, Tuple

import pandas as pd

from scoring import CustomerMetrics, RiskResult


@dataclass(frozen=True)
class ActivityMetrics:
    """Product usage counters used for alert context only."""

    logins_last_7d: int = 0
    logins_prev_7d: int = 0
    core_actions_last_7d: int = 0
    core_actions_prev_7d: int = 0
    active_users_last_7d: int = 0
    seats_dropped_last_30d: int = 0


@dataclass(frozen=True)
class CustomerHealthSnapshot:
    organization_id: str
    customer_id: str
    date: date
    metrics: CustomerMetrics
    risk_score: int
    risk_bucket: str
    factors: Tuple[str, ...] = ()
    activity: ActivityMetrics = field(default_factory=ActivityMetrics)
    customer_email: Optional[str] = None
    bucket_changed_from: Optional[str] = None

    @classmethod
    def build(
        cls,
        organization_id: str,
        customer_id: str,
        day: date,
        metrics: CustomerMetrics,
        risk: RiskResult,
        previous: Optional["CustomerHealthSnapshot"] = None,
        activity: Optional[ActivityMetrics] = None,
        customer_email: Optional[str] = None,
    ) -> "CustomerHealthSnapshot":
        """New snapshot, with bucket_changed_from set only on a bucket change."""
        changed_from = None
        if previous is not None and previous.risk_bucket != risk.bucket:
            changed_from = previous.risk_bucket
        return cls(
            organization_id=organization_id,
            customer_id=customer_id,
            date=day,
            metrics=metrics,
            risk_score=risk.score,
            risk_bucket=risk.bucket,
            factors=risk.factors,
            activity=activity or ActivityMetrics(),
            customer_email=customer_email,
            bucket_changed_from=changed_from,
        )

    @property
    def bucket_changed(self) -> bool:
        return (
            self.bucket_changed_from is not None
            and self.bucket_changed_from != self.risk_bucket
        )

    def to_record(self) -> dict:
        """Persisted record shape."""
        record = {
            "organizationId": self.organization_id,
            "customerId": self.customer_id,
            "customerEmail": self.customer_email,
            "date": self.date.isoformat(),
            "metrics": asdict(self.metrics),
            "activity": asdict(self.activity),
            "riskScore": self.risk_score,
            "riskBucket": self.risk_bucket,
            "factors": list(self.factors),
        }
        if self.bucket_changed_from is not None:
            record["bucketChangedFrom"] = self.bucket_changed_from
        return record


class SnapshotStore(ABC):
    @abstractmethod
    async def latest_before(
        self, organization_id: str, customer_id: str, day: date
    ) -> Optional[CustomerHealthSnapshot]:
        """Most recent snapshot strictly before `day`."""
        pass

    @abstractmethod
    async def save(
        self, snapshot: CustomerHealthSnapshot
    ) -> Tuple[CustomerHealthSnapshot, bool]:
        """
        Persist a snapshot.

        Returns:
            (stored snapshot, created). When a row already exists for
            the same day it is returned unchanged with created=False.
        """
        pass


class InMemorySnapshotStore(SnapshotStore):
    """Dict-backed snapshot store with DataFrame import/export."""

    def __init__(self):
        self._rows: Dict[Tuple[str, str, date], CustomerHealthSnapshot] = {}

    async def latest_before(
        self, organization_id: str, customer_id: str, day: date
    ) -> Optional[CustomerHealthSnapshot]:
        candidates = [
            s for (org, cust, d), s in self._rows.items()
            if org == organization_id and cust == customer_id and d < day
        ]
        return max(candidates, key=lambda s: s.date, default=None)

    async def save(
        self, snapshot: CustomerHealthSnapshot
    ) -> Tuple[CustomerHealthSnapshot, bool]:
        key = (snapshot.organization_id, snapshot.customer_id, snapshot.date)
        existing = self._rows.get(key)
        if existing is not None:
            return existing, False
        self._rows[key] = snapshot
        return snapshot, True

    def history(self, organization_id: str, customer_id: str) -> list[CustomerHealthSnapshot]:
        return sorted(
            (s for s in self._rows.values()
             if s.organization_id == organization_id and s.customer_id == customer_id),
            key=lambda s: s.date,
        )

    def __len__(self) -> int:
        return len(self._rows)

    def to_dataframe(self) -> pd.DataFrame:
        """Flat table of all snapshots (one column per metric)."""
        rows = []
        for s in self._rows.values():
            row = {
                "ORGANIZATION_ID": s.organization_id,
                "CUSTOMER_ID": s.customer_id,
                "CUSTOMER_EMAIL": s.customer_email,
                "DATE": s.date.isoformat(),
                **{k.upper(): v for k, v in s.metrics.to_row().items() if k != "CUSTOMER_ID"},
                **{k.upper(): v for k, v in asdict(s.activity).items()},
                "RISK_SCORE": s.risk_score,
                "RISK_BUCKET": s.risk_bucket,
                "BUCKET_CHANGED_FROM": s.bucket_changed_from,
            }
            rows.append(row)
        df = pd.DataFrame(rows)
        if df.empty:
            return df
        return df.sort_values(["ORGANIZATION_ID", "CUSTOMER_ID", "DATE"]).reset_index(drop=True)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "InMemorySnapshotStore":
        """Rebuild a store from `to_dataframe()` output (e.g. a CSV)."""
        store = cls()
        activity_fields = list(ActivityMetrics.__dataclass_fields__)
        for row in df.to_dict("records"):
            changed_from = row.get("BUCKET_CHANGED_FROM")
            email = row.get("CUSTOMER_EMAIL")
            snapshot = CustomerHealthSnapshot(
                organization_id=str(row["ORGANIZATION_ID"]),
                customer_id=str(row["CUSTOMER_ID"]),
                date=date.fromisoformat(str(row["DATE"])),
                metrics=CustomerMetrics.from_row(row),
                risk_score=int(row["RISK_SCORE"]),
                risk_bucket=str(row["RISK_BUCKET"]),
                activity=ActivityMetrics(**{
                    f: int(row[f.upper()]) for f in activity_fields if f.upper() in row
                }),
                customer_email=None if pd.isna(email) else email,
                bucket_changed_from=None if pd.isna(changed_from) else changed_from,
            )
            store._rows[(snapshot.organization_id, snapshot.customer_id, snapshot.date)] = snapshot
        return store
