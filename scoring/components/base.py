"""Base class for risk rule components."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Mapping, Optional

import pandas as pd

if TYPE_CHECKING:
    from ..config import ScoringConfig


class BaseScorer(ABC):
    """
    Abstract base class for risk rule components.

    Each component scores a single rule using vectorized pandas
    operations, and can describe itself for the factor audit trail.
    """

    name: str = "base"

    def __init__(self, config: "ScoringConfig"):
        """
        Initialize scorer with configuration.

        Args:
            config: ScoringConfig instance with rule points and thresholds
        """
        self.config = config

    @abstractmethod
    def score(self, df: pd.DataFrame) -> pd.Series:
        """
        Calculate component points for all rows.

        Must be implemented by subclasses using vectorized operations.

        Args:
            df: DataFrame with required columns

        Returns:
            Series of integer point deltas
        """
        pass

    @abstractmethod
    def factor(self, row: Mapping) -> Optional[str]:
        """Human-readable description of the rule if it fired for `row`."""
        pass

    @property
    @abstractmethod
    def required_columns(self) -> list[str]:
        """List of columns required by this scorer."""
        pass

    def validate(self, df: pd.DataFrame) -> None:
        """Validate required columns exist."""
        missing = set(self.required_columns) - set(df.columns)
        if missing:
            raise ValueError(
                f"{self.__class__.__name__} requires columns: {missing}"
            )
