"""
Scoring configuration for customer risk scoring.

All rule points, thresholds and bucket boundaries are defined here for
easy tuning. Rules are independent point deltas derived from cancel flow
activity:
- Recent cancel intent is the strongest signal
- An actual cancellation means the customer already churned
- Accepting a save offer is the only negative (protective) signal
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Tuple

import yaml


BUCKET_ORDER = ["healthy", "watch", "at_risk"]


@dataclass
class ScoringConfig:
    """
    Configuration for all risk rules.

    Score is clamped to [min_score, max_score] = [0, 100]
    - Recent Intent: +35
    - Canceled: +40
    - Declined Offer: +25
    - Persistent Intent: +15
    - Accepted Offer: -25
    - Feedback Friction: +10
    """

    # === Recent Intent (+35) ===
    # Any cancel attempt in the last 7 days
    recent_attempt_points: int = 35

    # === Canceled (+40) ===
    canceled_points: int = 40

    # === Declined Offer (+25) ===
    # Rejected at least one save attempt in 30 days
    declined_offer_points: int = 25

    # === Persistent Intent (+15) ===
    # More than `persistent_attempt_threshold` attempts in 30 days
    persistent_attempt_threshold: int = 2
    persistent_attempt_points: int = 15

    # === Accepted Offer (-25) ===
    accepted_offer_points: int = -25

    # === Feedback Friction (+10) ===
    # Only when not canceled and no attempt in the last 7 days
    feedback_points: int = 10

    # === Risk Bucket Categorization ===
    risk_buckets: Dict[str, Tuple[int, int]] = field(default_factory=lambda: {
        "healthy": (0, 29),
        "watch": (30, 59),
        "at_risk": (60, 100),
    })

    # === Metadata ===
    min_score: int = 0
    max_score: int = 100
    version: str = "1.0.0"

    def get_risk_bucket(self, score: int) -> str:
        """Map a clamped numeric score to its risk bucket."""
        for bucket, (low, high) in self.risk_buckets.items():
            if low <= score <= high:
                return bucket
        return "unknown"

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ScoringConfig":
        """Load configuration from YAML file."""
        with open(Path(path)) as f:
            data = yaml.safe_load(f) or {}
        if "risk_buckets" in data:
            data["risk_buckets"] = {
                bucket: tuple(bounds) for bucket, bounds in data["risk_buckets"].items()
            }
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(self)
        data["risk_buckets"] = {k: list(v) for k, v in self.risk_buckets.items()}
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Default configuration instance
DEFAULT_CONFIG = ScoringConfig()
