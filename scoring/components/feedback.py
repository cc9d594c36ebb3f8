"""Feedback friction scoring component."""

import numpy as np
import pandas as pd

from .base import BaseScorer


class FeedbackScorer(BaseScorer):
    """
    Score based on feedback submitted without an active cancel push.

    Feedback from a customer who is neither canceled nor attempting to
    cancel this week signals mild friction while still engaged.

    Points:
    - feedback in 30 days AND not canceled AND no 7-day attempt: 10
    - otherwise: 0
    """

    name = "feedback"

    @property
    def required_columns(self) -> list[str]:
        return [
            "FEEDBACK_SUBMITTED_30D",
            "SUBSCRIPTION_CANCELED",
            "CANCEL_ATTEMPTS_7D",
        ]

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Calculate feedback friction score."""
        self.validate(df)
        fired = (
            (df["FEEDBACK_SUBMITTED_30D"] > 0)
            & ~df["SUBSCRIPTION_CANCELED"].fillna(False).astype(bool)
            & (df["CANCEL_ATTEMPTS_7D"] == 0)
        )
        return pd.Series(
            np.where(fired, self.config.feedback_points, 0),
            index=df.index,
            dtype=int,
        )

    def factor(self, row):
        if (
            int(row["FEEDBACK_SUBMITTED_30D"]) > 0
            and not bool(row["SUBSCRIPTION_CANCELED"])
            and int(row["CANCEL_ATTEMPTS_7D"]) == 0
        ):
            return "Submitted feedback recently"
        return None
