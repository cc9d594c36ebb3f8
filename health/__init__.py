"""
Daily customer health package.

Aggregates churn events into rolling metrics, scores them, stores one
snapshot per customer per day and notifies on bucket transitions.
"""

from .config import HealthJobConfig
from .events import EventLog, InMemoryEventLog, events_to_frame, load_events_csv
from .features import aggregate_metrics, aggregate_metrics_frame
from .logger import RunLogger
from .notifier import BucketTransitionNotifier, percent_drop
from .runner import DailyHealthJob, HealthRunResult, HealthRunStats
from .store import (
    ActivityMetrics,
    CustomerHealthSnapshot,
    InMemorySnapshotStore,
    SnapshotStore,
)

__all__ = [
    "HealthJobConfig",
    "EventLog",
    "InMemoryEventLog",
    "events_to_frame",
    "load_events_csv",
    "aggregate_metrics",
    "aggregate_metrics_frame",
    "RunLogger",
    "BucketTransitionNotifier",
    "percent_drop",
    "DailyHealthJob",
    "HealthRunResult",
    "HealthRunStats",
    "ActivityMetrics",
    "CustomerHealthSnapshot",
    "InMemorySnapshotStore",
    "SnapshotStore",
]
