"""
Daily health job configuration.

Defines the HealthJobConfig dataclass for YAML-driven batch runs.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class HealthJobConfig:
    """
    Configuration for the daily health batch.

    Load from YAML:
        config = HealthJobConfig.from_yaml("configs/daily_health.yaml")

    Create programmatically:
        config = HealthJobConfig(max_concurrency=4, customer_timeout_seconds=5)
    """

    # Worker pool
    max_concurrency: int = 10
    customer_timeout_seconds: float = 10.0

    # Rolling windows (days)
    recent_window_days: int = 7
    window_days: int = 30

    # Customers never scored (e.g. the flow builder's preview customer)
    excluded_customers: list[str] = field(default_factory=lambda: ["preview"])

    # Notifications
    alert_webhook_url: Optional[str] = None
    alert_timeout_seconds: float = 5.0

    # Run logs (relative to the working directory)
    logs_dir: str = "logs"

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.recent_window_days > self.window_days:
            raise ValueError("recent_window_days cannot exceed window_days")

    @classmethod
    def from_yaml(cls, path: Path | str) -> "HealthJobConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)
