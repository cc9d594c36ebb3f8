"""Canceled subscription scoring component."""

import numpy as np
import pandas as pd

from .base import BaseScorer


class CanceledScorer(BaseScorer):
    """
    Score based on whether the subscription was actually canceled.

    Points:
    - canceled: 40 (already churned)
    - active: 0
    """

    name = "canceled"

    @property
    def required_columns(self) -> list[str]:
        return ["SUBSCRIPTION_CANCELED"]

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Calculate canceled score."""
        self.validate(df)
        canceled = df["SUBSCRIPTION_CANCELED"].fillna(False).astype(bool)
        return pd.Series(
            np.where(canceled, self.config.canceled_points, 0),
            index=df.index,
            dtype=int,
        )

    def factor(self, row):
        if bool(row["SUBSCRIPTION_CANCELED"]):
            return "Subscription has been canceled"
        return None
