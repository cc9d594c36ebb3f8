"""
Customer Risk Scoring Package

A rule-based scoring system that turns cancel flow activity into a
risk score and a healthy / watch / at_risk bucket.
"""

from .scorer import (
    RiskScorer,
    RiskResult,
    CustomerMetrics,
    ScoringResult,
    calculate_risk_score,
    generate_sample_metrics,
)
from .config import ScoringConfig, BUCKET_ORDER

__all__ = [
    "RiskScorer",
    "RiskResult",
    "CustomerMetrics",
    "ScoringResult",
    "ScoringConfig",
    "BUCKET_ORDER",
    "calculate_risk_score",
    "generate_sample_metrics",
]
__version__ = "1.0.0"
