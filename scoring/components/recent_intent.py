"""Recent cancellation intent scoring component."""

import numpy as np
import pandas as pd

from .base import BaseScorer


class RecentIntentScorer(BaseScorer):
    """
    Score based on cancel attempts in the last 7 days.

    A customer who opened the cancel flow this week is actively
    trying to leave. This is the strongest behavioral signal.

    Points:
    - >0 attempts in 7 days: 35
    - otherwise: 0
    """

    name = "recent_intent"

    @property
    def required_columns(self) -> list[str]:
        return ["CANCEL_ATTEMPTS_7D"]

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Calculate recent intent score."""
        self.validate(df)
        return pd.Series(
            np.where(df["CANCEL_ATTEMPTS_7D"] > 0, self.config.recent_attempt_points, 0),
            index=df.index,
            dtype=int,
        )

    def factor(self, row):
        attempts = int(row["CANCEL_ATTEMPTS_7D"])
        if attempts > 0:
            return f"{attempts} cancel attempt(s) in last 7 days"
        return None
