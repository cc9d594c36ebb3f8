"""
Main RiskScorer class - orchestrates risk rule components.

Usage:
    from scoring import RiskScorer, ScoringConfig, CustomerMetrics

    # Score a batch of customers (vectorized)
    scorer = RiskScorer()
    result = scorer.score(metrics_df)
    print(result.df[["CUSTOMER_ID", "RISK_SCORE", "RISK_BUCKET"]])
    print(result.summary())

    # Score a single customer
    risk = scorer.score_single(CustomerMetrics(cancel_attempts_7d=1, cancel_attempts_30d=1))
    print(risk.score, risk.bucket, risk.factors)
"""

from dataclasses import dataclass, asdict
from typing import Optional, Union

import numpy as np
import pandas as pd

from .config import ScoringConfig, DEFAULT_CONFIG, BUCKET_ORDER
from .schemas import METRICS_INPUT_SCHEMA, validate_frame
from .components import (
    RecentIntentScorer,
    CanceledScorer,
    DeclinedOfferScorer,
    PersistentIntentScorer,
    AcceptedOfferScorer,
    FeedbackScorer,
)


NO_SIGNALS_FACTOR = "No churn signals detected"


@dataclass(frozen=True)
class CustomerMetrics:
    """Rolling cancel flow activity for one customer."""

    cancel_attempts_7d: int = 0
    cancel_attempts_30d: int = 0
    offers_declined_30d: int = 0
    offers_accepted_30d: int = 0
    subscription_canceled: bool = False
    feedback_submitted_30d: int = 0
    # Informational only, never scored
    days_since_last_event: Optional[int] = None

    def to_row(self, customer_id: str = "") -> dict:
        """Convert to a scoring input row (upper-case column names)."""
        return {
            "CUSTOMER_ID": customer_id,
            "CANCEL_ATTEMPTS_7D": self.cancel_attempts_7d,
            "CANCEL_ATTEMPTS_30D": self.cancel_attempts_30d,
            "OFFERS_DECLINED_30D": self.offers_declined_30d,
            "OFFERS_ACCEPTED_30D": self.offers_accepted_30d,
            "SUBSCRIPTION_CANCELED": self.subscription_canceled,
            "FEEDBACK_SUBMITTED_30D": self.feedback_submitted_30d,
        }

    @classmethod
    def from_row(cls, row) -> "CustomerMetrics":
        days = row.get("DAYS_SINCE_LAST_EVENT")
        return cls(
            cancel_attempts_7d=int(row["CANCEL_ATTEMPTS_7D"]),
            cancel_attempts_30d=int(row["CANCEL_ATTEMPTS_30D"]),
            offers_declined_30d=int(row["OFFERS_DECLINED_30D"]),
            offers_accepted_30d=int(row["OFFERS_ACCEPTED_30D"]),
            subscription_canceled=bool(row["SUBSCRIPTION_CANCELED"]),
            feedback_submitted_30d=int(row["FEEDBACK_SUBMITTED_30D"]),
            days_since_last_event=None if days is None or pd.isna(days) else int(days),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RiskResult:
    """Risk score, bucket, and the audit trail of rules that fired."""

    score: int
    bucket: str
    factors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "risk_score": self.score,
            "risk_bucket": self.bucket,
            "factors": list(self.factors),
        }


@dataclass
class ScoringResult:
    """
    Container for scoring results with component breakdown.

    Attributes:
        df: Original DataFrame with scores added
        component_columns: List of component score column names
    """

    df: pd.DataFrame
    component_columns: list[str]

    def get_at_risk(self, min_bucket: str = "at_risk") -> pd.DataFrame:
        """
        Get customers at or above a risk bucket.

        Args:
            min_bucket: Minimum bucket ("healthy", "watch", "at_risk")

        Returns:
            DataFrame filtered to customers at or above the specified bucket
        """
        min_idx = BUCKET_ORDER.index(min_bucket)
        valid_buckets = BUCKET_ORDER[min_idx:]
        return self.df[self.df["RISK_BUCKET"].isin(valid_buckets)]

    def summary(self) -> pd.DataFrame:
        """
        Generate summary statistics by risk bucket.

        Returns:
            DataFrame with counts and average score per bucket
        """
        return (
            self.df.groupby("RISK_BUCKET")
            .agg(
                count=("CUSTOMER_ID", "count"),
                avg_score=("RISK_SCORE", "mean"),
            )
            .reindex(BUCKET_ORDER, fill_value=0)
            .round(1)
        )

    def component_breakdown(self) -> pd.DataFrame:
        """
        Show how often each rule fired and its average contribution.

        Returns:
            DataFrame with component statistics
        """
        stats = {}
        for col in self.component_columns:
            component_name = col.replace("_score", "")
            stats[component_name] = {
                "fired": int((self.df[col] != 0).sum()),
                "mean": self.df[col].mean(),
            }
        return pd.DataFrame(stats).T.round(1)


class RiskScorer:
    """
    Vectorized customer risk scoring engine.

    Calculates each rule independently using pandas operations, sums
    the point deltas, clamps to [0, 100] and maps to a bucket.

    Components:
    - Recent Intent (+35): cancel attempt in 7 days
    - Canceled (+40): subscription canceled
    - Declined Offer (+25): save offer declined in 30 days
    - Persistent Intent (+15): more than 2 attempts in 30 days
    - Accepted Offer (-25): save offer accepted in 30 days
    - Feedback (+10): feedback without active cancel intent

    The scorer holds no mutable state after construction, so one
    instance can be shared across concurrent batch workers.
    """

    REQUIRED_COLUMNS = [
        "CUSTOMER_ID",
        "CANCEL_ATTEMPTS_7D",
        "CANCEL_ATTEMPTS_30D",
        "OFFERS_DECLINED_30D",
        "OFFERS_ACCEPTED_30D",
        "SUBSCRIPTION_CANCELED",
        "FEEDBACK_SUBMITTED_30D",
    ]

    def __init__(self, config: Optional[ScoringConfig] = None):
        """
        Initialize scorer with configuration.

        Args:
            config: ScoringConfig instance. Uses DEFAULT_CONFIG if None.
        """
        self.config = config or DEFAULT_CONFIG
        self._init_components()

    def _init_components(self) -> None:
        """Initialize all rule components."""
        self.components = {
            "recent_intent": RecentIntentScorer(self.config),
            "canceled": CanceledScorer(self.config),
            "declined_offer": DeclinedOfferScorer(self.config),
            "persistent_intent": PersistentIntentScorer(self.config),
            "accepted_offer": AcceptedOfferScorer(self.config),
            "feedback": FeedbackScorer(self.config),
        }

    def validate_input(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Validate required columns exist and values are sane.

        Args:
            df: Input DataFrame

        Returns:
            Validated (type-coerced) copy of the input

        Raises:
            ValueError: If required columns are missing
            pandera.errors.SchemaError: If values fail schema checks
        """
        missing = set(self.REQUIRED_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Missing required columns: {missing}")
        return validate_frame(METRICS_INPUT_SCHEMA, df.copy())

    def score(self, df: pd.DataFrame) -> ScoringResult:
        """
        Calculate risk scores for all customers.

        Args:
            df: DataFrame with required columns

        Returns:
            ScoringResult with scores and component breakdown

        Example:
            >>> scorer = RiskScorer()
            >>> result = scorer.score(metrics_df)
            >>> at_risk = result.get_at_risk("at_risk")
        """
        result = self.validate_input(df)

        # Calculate all component scores (vectorized)
        component_cols = []
        for name, component in self.components.items():
            col_name = f"{name}_score"
            result[col_name] = component.score(result)
            component_cols.append(col_name)

        # Rules are commutative deltas: sum, then clamp
        raw = result[component_cols].sum(axis=1)
        result["RISK_SCORE"] = raw.clip(
            lower=self.config.min_score, upper=self.config.max_score
        ).astype(int)

        result["RISK_BUCKET"] = pd.Series(
            [self.config.get_risk_bucket(int(s)) for s in result["RISK_SCORE"]],
            index=result.index,
            dtype=object,
        )
        result["FACTORS"] = pd.Series(
            [self._factors(row) for row in result.to_dict("records")],
            index=result.index,
            dtype=object,
        )

        return ScoringResult(df=result, component_columns=component_cols)

    def _factors(self, row: dict) -> tuple[str, ...]:
        """Audit trail of which rules fired for one row."""
        factors = [
            text
            for text in (c.factor(row) for c in self.components.values())
            if text
        ]
        if (
            int(row["CANCEL_ATTEMPTS_30D"]) == 0
            and int(row["OFFERS_DECLINED_30D"]) == 0
            and not bool(row["SUBSCRIPTION_CANCELED"])
        ):
            factors.append(NO_SIGNALS_FACTOR)
        return tuple(factors)

    def score_single(self, metrics: Union[CustomerMetrics, dict]) -> RiskResult:
        """
        Score a single customer (convenience method).

        Args:
            metrics: CustomerMetrics, or a dict of CustomerMetrics fields

        Returns:
            RiskResult with score, bucket and factors
        """
        if isinstance(metrics, dict):
            metrics = CustomerMetrics(**metrics)
        df = pd.DataFrame([metrics.to_row(customer_id="single")])
        result = self.score(df)
        row = result.df.iloc[0]
        return RiskResult(
            score=int(row["RISK_SCORE"]),
            bucket=row["RISK_BUCKET"],
            factors=tuple(row["FACTORS"]),
        )


def calculate_risk_score(
    metrics: Union[CustomerMetrics, dict],
    config: Optional[ScoringConfig] = None,
) -> RiskResult:
    """
    Pure mapping from CustomerMetrics to RiskResult.

    Identical input always yields an equal RiskResult.
    """
    return RiskScorer(config).score_single(metrics)


def generate_sample_metrics(n_customers: int = 100, seed: int = 42) -> pd.DataFrame:
    """
    Generate realistic sample cancel flow metrics for testing.

    Most customers never touch the cancel flow; a minority have
    recent attempts, declines or accepted offers.
    """
    rng = np.random.default_rng(seed)

    attempts_30d = rng.choice(
        [0, 1, 2, 3, 4], size=n_customers, p=[0.70, 0.15, 0.07, 0.05, 0.03]
    )
    # 7-day attempts can never exceed 30-day attempts
    attempts_7d = np.minimum(
        attempts_30d, rng.choice([0, 1, 2], size=n_customers, p=[0.5, 0.4, 0.1])
    )
    has_attempts = attempts_30d > 0

    declined = np.where(has_attempts, rng.choice([0, 1, 2], size=n_customers, p=[0.5, 0.4, 0.1]), 0)
    accepted = np.where(has_attempts, rng.choice([0, 1], size=n_customers, p=[0.7, 0.3]), 0)
    canceled = has_attempts & (rng.random(n_customers) < 0.25)
    feedback = np.where(
        has_attempts,
        attempts_30d,
        rng.choice([0, 1], size=n_customers, p=[0.9, 0.1]),
    )

    return pd.DataFrame(
        {
            "CUSTOMER_ID": [f"cus_{i:06d}" for i in range(n_customers)],
            "CANCEL_ATTEMPTS_7D": attempts_7d.astype(int),
            "CANCEL_ATTEMPTS_30D": attempts_30d.astype(int),
            "OFFERS_DECLINED_30D": declined.astype(int),
            "OFFERS_ACCEPTED_30D": accepted.astype(int),
            "SUBSCRIPTION_CANCELED": canceled.astype(bool),
            "FEEDBACK_SUBMITTED_30D": feedback.astype(int),
        }
    )
