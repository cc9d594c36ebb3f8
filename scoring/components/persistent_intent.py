"""Persistent cancellation intent scoring component."""

import numpy as np
import pandas as pd

from .base import BaseScorer


class PersistentIntentScorer(BaseScorer):
    """
    Score based on repeated cancel attempts over 30 days.

    Points:
    - >2 attempts in 30 days: 15
    - otherwise: 0
    """

    name = "persistent_intent"

    @property
    def required_columns(self) -> list[str]:
        return ["CANCEL_ATTEMPTS_30D"]

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Calculate persistent intent score."""
        self.validate(df)
        persistent = df["CANCEL_ATTEMPTS_30D"] > self.config.persistent_attempt_threshold
        return pd.Series(
            np.where(persistent, self.config.persistent_attempt_points, 0),
            index=df.index,
            dtype=int,
        )

    def factor(self, row):
        attempts = int(row["CANCEL_ATTEMPTS_30D"])
        if attempts > self.config.persistent_attempt_threshold:
            return f"{attempts} total cancel attempts in 30 days"
        return None
