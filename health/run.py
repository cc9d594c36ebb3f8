#!/usr/bin/env python3
"""
CLI entry point for the daily health batch.

Usage:
    # Run the batch over an exported event log
    python -m health.run --events events.csv

    # Run for a specific date, carrying snapshots across runs
    python -m health.run --events events.csv --date 2024-06-01 --snapshots snapshots.csv

    # List all past runs
    python -m health.run --list

    # Score a metrics file directly
    python -m health.run --score metrics.csv
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

import pandas as pd

from scoring import RiskScorer

from .config import HealthJobConfig
from .events import InMemoryEventLog, load_events_csv
from .logger import RunLogger
from .notifier import BucketTransitionNotifier
from .runner import DailyHealthJob
from .store import InMemorySnapshotStore


async def _run_job(args, config: HealthJobConfig) -> int:
    event_log = InMemoryEventLog(load_events_csv(args.events))

    snapshots_path = Path(args.snapshots) if args.snapshots else None
    if snapshots_path is not None and snapshots_path.exists():
        store = InMemorySnapshotStore.from_dataframe(pd.read_csv(snapshots_path))
    else:
        store = InMemorySnapshotStore()

    notifier = BucketTransitionNotifier(
        webhook_url=config.alert_webhook_url,
        timeout=config.alert_timeout_seconds,
    )
    job = DailyHealthJob(
        event_log,
        store,
        notifier=notifier,
        config=config,
        run_logger=RunLogger(config.logs_dir),
    )

    try:
        today = date.fromisoformat(args.date) if args.date else None
        result = await job.run(today=today)
    finally:
        await notifier.close()

    print(result.summary())

    if snapshots_path is not None:
        store.to_dataframe().to_csv(snapshots_path, index=False)
        print(f"\nSnapshots saved to: {snapshots_path}")

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Daily customer health batch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m health.run --events events.csv
  python -m health.run --events events.csv --date 2024-06-01 --snapshots snapshots.csv
  python -m health.run --list
  python -m health.run --score metrics.csv
        """,
    )

    parser.add_argument("--events", help="Path to churn events CSV")
    parser.add_argument("--date", help="Snapshot date (YYYY-MM-DD, default: today UTC)")
    parser.add_argument(
        "--snapshots",
        help="Snapshot CSV to load before and save after the run",
    )
    parser.add_argument("--config", help="Path to YAML job config")
    parser.add_argument("--logs-dir", help="Directory for run logs")
    parser.add_argument("--webhook-url", help="Alert webhook URL")
    parser.add_argument(
        "--list",
        action="store_true",
        help="List all past runs",
    )
    parser.add_argument("--score", help="Score a metrics CSV and print bucket counts")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = HealthJobConfig.from_yaml(args.config) if args.config else HealthJobConfig()
    if args.logs_dir:
        config.logs_dir = args.logs_dir
    if args.webhook_url:
        config.alert_webhook_url = args.webhook_url

    # List runs
    if args.list:
        df = RunLogger(config.logs_dir).get_summary_dataframe()
        if df.empty:
            print("No runs found.")
        else:
            print(df.to_string(index=False))
        return 0

    # Score a metrics file
    if args.score:
        result = RiskScorer().score(pd.read_csv(args.score))
        print(result.summary().to_string())
        print("\nRule breakdown:\n")
        print(result.component_breakdown().to_string())
        return 0

    if not args.events:
        parser.print_help()
        return 1

    try:
        return asyncio.run(_run_job(args, config))
    except Exception as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
