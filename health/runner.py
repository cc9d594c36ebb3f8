"""
Daily health batch.

Single entry point for scoring every customer once per day, storing a
snapshot and notifying on bucket transitions.
"""

import asyncio
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pandas as pd

from cancel_flow.events import utcnow
from scoring import RiskScorer

from .config import HealthJobConfig
from .events import EventLog
from .features import aggregate_metrics
from .logger import RunLogger
from .notifier import AT_RISK, BucketTransitionNotifier
from .store import CustomerHealthSnapshot, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class HealthRunStats:
    """Counters reported at the end of a run."""

    organizations_processed: int = 0
    customers_processed: int = 0
    new_at_risk: int = 0
    improved: int = 0
    errors: int = 0
    duration_ms: int = 0

    def to_message(self) -> dict:
        return {
            "organizationsProcessed": self.organizations_processed,
            "customersProcessed": self.customers_processed,
            "newAtRisk": self.new_at_risk,
            "improved": self.improved,
            "errors": self.errors,
            "durationMs": self.duration_ms,
        }


@dataclass
class CustomerOutcome:
    """Result of one customer unit."""

    snapshot: CustomerHealthSnapshot
    created: bool
    notification: Optional[str] = None


@dataclass
class HealthRunResult:
    """Container for run results."""

    run_id: str
    date: date
    config: HealthJobConfig
    started_at: datetime
    duration_seconds: float
    stats: HealthRunStats
    snapshots: list[CustomerHealthSnapshot] = field(default_factory=list)
    notifications: list[dict] = field(default_factory=list)

    def bucket_counts(self) -> dict:
        return dict(Counter(s.risk_bucket for s in self.snapshots))

    def to_dataframe(self) -> pd.DataFrame:
        """One row per snapshot produced by this run."""
        return pd.DataFrame(
            [
                {
                    "ORGANIZATION_ID": s.organization_id,
                    "CUSTOMER_ID": s.customer_id,
                    "RISK_SCORE": s.risk_score,
                    "RISK_BUCKET": s.risk_bucket,
                    "BUCKET_CHANGED_FROM": s.bucket_changed_from,
                }
                for s in self.snapshots
            ],
            columns=[
                "ORGANIZATION_ID",
                "CUSTOMER_ID",
                "RISK_SCORE",
                "RISK_BUCKET",
                "BUCKET_CHANGED_FROM",
            ],
        )

    def summary(self) -> str:
        """Human-readable summary."""
        buckets = self.bucket_counts()
        return (
            f"[{self.run_id}] daily health for {self.date.isoformat()}\n"
            f"  Organizations: {self.stats.organizations_processed}\n"
            f"  Customers:     {self.stats.customers_processed}\n"
            f"  Buckets:       healthy={buckets.get('healthy', 0)} "
            f"watch={buckets.get('watch', 0)} at_risk={buckets.get('at_risk', 0)}\n"
            f"  New at risk:   {self.stats.new_at_risk}\n"
            f"  Improved:      {self.stats.improved}\n"
            f"  Errors:        {self.stats.errors}\n"
            f"  Duration:      {self.stats.duration_ms} ms"
        )


class DailyHealthJob:
    """
    Scheduled batch that scores every customer of every organization.

    Usage:
        job = DailyHealthJob(event_log, InMemorySnapshotStore(),
                             notifier=BucketTransitionNotifier())
        result = await job.run()
        print(result.summary())

    Customers are independent units: each runs under a concurrency cap
    and its own timeout, and a failing unit is counted and skipped.
    """

    def __init__(
        self,
        event_log: EventLog,
        snapshot_store: SnapshotStore,
        notifier: Optional[BucketTransitionNotifier] = None,
        scorer: Optional[RiskScorer] = None,
        config: Optional[HealthJobConfig] = None,
        run_logger: Optional[RunLogger] = None,
    ):
        self.event_log = event_log
        self.snapshot_store = snapshot_store
        self.notifier = notifier
        self.scorer = scorer or RiskScorer()
        self.config = config or HealthJobConfig()
        self.run_logger = run_logger

    def generate_run_id(self) -> str:
        """Generate unique run ID: run_YYYYMMDD_XXXX"""
        date_str = datetime.now().strftime("%Y%m%d")
        short_uuid = uuid.uuid4().hex[:4]
        return f"run_{date_str}_{short_uuid}"

    async def run(
        self,
        organization_ids: Optional[list[str]] = None,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> HealthRunResult:
        """
        Run the batch once.

        Args:
            organization_ids: Organizations to process (default: all known)
            today: Snapshot date. With no `now`, windows end at the
                following midnight UTC so the whole day is included.
            now: End of the metric windows (exclusive)

        Returns:
            HealthRunResult with counters and the snapshots produced
        """
        run_id = self.generate_run_id()
        started_at = utcnow()
        if now is None:
            now = (
                datetime.combine(today + timedelta(days=1), time(0), tzinfo=timezone.utc)
                if today is not None
                else started_at
            )
        if today is None:
            today = now.date()

        stats = HealthRunStats()
        result = HealthRunResult(
            run_id=run_id,
            date=today,
            config=self.config,
            started_at=started_at,
            duration_seconds=0.0,
            stats=stats,
        )

        try:
            if organization_ids is None:
                organization_ids = await self.event_log.list_organizations()
        except Exception as e:
            if self.run_logger is not None:
                self.run_logger.log_failure(run_id, self.config, str(e))
            raise

        logger.info("Daily health %s: %d organizations", run_id, len(organization_ids))
        for organization_id in organization_ids:
            await self._process_organization(organization_id, today, now, result)

        elapsed = utcnow() - started_at
        result.duration_seconds = elapsed.total_seconds()
        stats.duration_ms = int(elapsed.total_seconds() * 1000)

        if self.notifier is not None:
            await self.notifier.notify_run_complete(stats)
        if self.run_logger is not None:
            self.run_logger.log_run(result)

        logger.info("Daily health %s done: %s", run_id, stats.to_message())
        return result

    async def _process_organization(
        self,
        organization_id: str,
        today: date,
        now: datetime,
        result: HealthRunResult,
    ) -> None:
        stats = result.stats
        try:
            customers = await self.event_log.list_customers(organization_id)
        except Exception as e:
            logger.error("Failed to list customers for %s: %s", organization_id, e)
            stats.errors += 1
            return

        excluded = set(self.config.excluded_customers)
        customers = [(cid, email) for cid, email in customers if cid not in excluded]
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        outcomes = await asyncio.gather(
            *[
                self._guarded(semaphore, organization_id, customer_id, email, today, now)
                for customer_id, email in customers
            ],
            return_exceptions=True,
        )

        for (customer_id, _), outcome in zip(customers, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    "Failed to process customer %s/%s: %r",
                    organization_id, customer_id, outcome,
                )
                stats.errors += 1
                continue

            stats.customers_processed += 1
            result.snapshots.append(outcome.snapshot)
            if not (outcome.created and outcome.snapshot.bucket_changed):
                continue
            if outcome.snapshot.risk_bucket == AT_RISK:
                stats.new_at_risk += 1
            elif outcome.snapshot.bucket_changed_from == AT_RISK:
                stats.improved += 1
            if outcome.notification:
                result.notifications.append(
                    {
                        "organizationId": organization_id,
                        "customerId": customer_id,
                        "type": outcome.notification,
                    }
                )

        stats.organizations_processed += 1

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        organization_id: str,
        customer_id: str,
        email: Optional[str],
        today: date,
        now: datetime,
    ) -> CustomerOutcome:
        async with semaphore:
            outcome = await asyncio.wait_for(
                self.process_customer(organization_id, customer_id, email, today, now),
                timeout=self.config.customer_timeout_seconds,
            )
            # Outside the unit timeout: the snapshot is already stored and a
            # same-day rerun will not notify again.
            if outcome.created and outcome.snapshot.bucket_changed and self.notifier is not None:
                outcome.notification = await self.notifier.notify(outcome.snapshot)
        return outcome

    async def process_customer(
        self,
        organization_id: str,
        customer_id: str,
        email: Optional[str],
        today: date,
        now: datetime,
    ) -> CustomerOutcome:
        """
        Score one customer and store today's snapshot.

        Nothing is written until metrics and score are computed. Notifying
        on a bucket change is left to the caller.
        """
        events = await self.event_log.fetch_events(organization_id, customer_id, now)
        metrics = aggregate_metrics(
            events,
            now,
            recent_days=self.config.recent_window_days,
            window_days=self.config.window_days,
        )
        risk = self.scorer.score_single(metrics)
        activity = await self.event_log.fetch_activity(organization_id, customer_id, now)
        previous = await self.snapshot_store.latest_before(organization_id, customer_id, today)

        snapshot = CustomerHealthSnapshot.build(
            organization_id,
            customer_id,
            today,
            metrics,
            risk,
            previous=previous,
            activity=activity,
            customer_email=email,
        )
        stored, created = await self.snapshot_store.save(snapshot)
        return CustomerOutcome(snapshot=stored, created=created)
