"""
Run logging for the daily health batch.

Writes one JSON log per run (completed or errored).
"""

import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from .runner import HealthRunResult
    from .config import HealthJobConfig


class RunLogger:
    """Structured JSON logging for health runs."""

    def __init__(self, logs_dir: Path | str):
        """
        Initialize logger.

        Args:
            logs_dir: Directory to write log files
        """
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def log_run(self, result: "HealthRunResult") -> Path:
        """
        Log run result to JSON file.

        Args:
            result: HealthRunResult from DailyHealthJob

        Returns:
            Path to log file
        """
        log_entry = {
            "run_id": result.run_id,
            "timestamp": result.started_at.isoformat(),
            "date": result.date.isoformat(),
            "duration_seconds": result.duration_seconds,
            "config": result.config.to_dict(),
            "stats": result.stats.to_message(),
            "buckets": result.bucket_counts(),
            "notifications": result.notifications,
            "status": "OK" if result.stats.errors == 0 else "PARTIAL",
        }

        log_path = self.logs_dir / f"{result.run_id}.json"
        with open(log_path, "w") as f:
            json.dump(log_entry, f, indent=2, default=str)

        return log_path

    def log_failure(
        self,
        run_id: str,
        config: "HealthJobConfig",
        error: str,
    ) -> Path:
        """
        Log a run that aborted before completing.

        Returns:
            Path to log file
        """
        log_entry = {
            "run_id": run_id,
            "timestamp": datetime.now().isoformat(),
            "config": config.to_dict(),
            "status": "ERROR",
            "error": error,
        }

        log_path = self.logs_dir / f"{run_id}.json"
        with open(log_path, "w") as f:
            json.dump(log_entry, f, indent=2, default=str)

        return log_path

    def get_all_logs(self) -> list[dict]:
        """All run logs, sorted by file name."""
        logs = []
        for log_file in sorted(self.logs_dir.glob("run_*.json")):
            with open(log_file) as f:
                logs.append(json.load(f))
        return logs

    def get_summary_dataframe(self) -> pd.DataFrame:
        """
        Get summary of all runs as DataFrame.

        Returns:
            DataFrame with one row per run, newest first
        """
        logs = self.get_all_logs()
        if not logs:
            return pd.DataFrame()

        summary = []
        for log in logs:
            entry = {
                "run_id": log["run_id"],
                "timestamp": log["timestamp"],
                "date": log.get("date"),
                "status": log["status"],
            }
            stats = log.get("stats", {})
            for key in [
                "organizationsProcessed",
                "customersProcessed",
                "newAtRisk",
                "improved",
                "errors",
            ]:
                entry[key] = stats.get(key)
            summary.append(entry)

        df = pd.DataFrame(summary)
        return df.sort_values("timestamp", ascending=False)
