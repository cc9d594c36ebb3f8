"""Accepted save offer scoring component."""

import numpy as np
import pandas as pd

from .base import BaseScorer


class AcceptedOfferScorer(BaseScorer):
    """
    Score based on retention offers accepted in the last 30 days.

    The only protective rule: a customer who took a discount chose to stay.

    Points:
    - >0 accepted in 30 days: -25
    - otherwise: 0
    """

    name = "accepted_offer"

    @property
    def required_columns(self) -> list[str]:
        return ["OFFERS_ACCEPTED_30D"]

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Calculate accepted offer score."""
        self.validate(df)
        return pd.Series(
            np.where(df["OFFERS_ACCEPTED_30D"] > 0, self.config.accepted_offer_points, 0),
            index=df.index,
            dtype=int,
        )

    def factor(self, row):
        accepted = int(row["OFFERS_ACCEPTED_30D"])
        if accepted > 0:
            return f"Accepted {accepted} retention offer(s) (good sign)"
        return None
