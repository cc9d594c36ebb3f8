"""Declined save offer scoring component."""

import numpy as np
import pandas as pd

from .base import BaseScorer


class DeclinedOfferScorer(BaseScorer):
    """
    Score based on retention offers declined in the last 30 days.

    A declined offer means a save attempt was already made and rejected.

    Points:
    - >0 declined in 30 days: 25
    - otherwise: 0
    """

    name = "declined_offer"

    @property
    def required_columns(self) -> list[str]:
        return ["OFFERS_DECLINED_30D"]

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Calculate declined offer score."""
        self.validate(df)
        return pd.Series(
            np.where(df["OFFERS_DECLINED_30D"] > 0, self.config.declined_offer_points, 0),
            index=df.index,
            dtype=int,
        )

    def factor(self, row):
        declined = int(row["OFFERS_DECLINED_30D"])
        if declined > 0:
            return f"Declined {declined} retention offer(s)"
        return None
