"""
Data schema definitions for customer risk scoring.

Uses Pandera for runtime validation of metric DataFrames so that a
broken aggregation step fails loudly before anything is scored.
"""

import pandas as pd
from pandera import Column, Check, DataFrameSchema
from pandera.errors import SchemaError, SchemaErrors

from .config import BUCKET_ORDER


def validate_frame(schema: DataFrameSchema, df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate `df` against `schema`, raising a single SchemaError.

    Some pandera versions collect coercion failures (e.g. nulls in an int
    column) into SchemaErrors; the first one is re-raised.
    """
    try:
        return schema.validate(df)
    except SchemaErrors as e:
        errors = [err for err in e.schema_errors if isinstance(err, SchemaError)]
        if not errors:
            raise
        raise errors[0] from e


def _count_column(description: str) -> Column:
    return Column(
        int,
        nullable=False,
        checks=Check.greater_than_or_equal_to(0),
        description=description,
    )


# Schema for scoring input data
METRICS_INPUT_SCHEMA = DataFrameSchema(
    {
        "CUSTOMER_ID": Column(
            str,
            nullable=False,
            unique=True,
            description="Billing provider customer identifier"
        ),
        "CANCEL_ATTEMPTS_7D": _count_column("Cancel flow openings in the last 7 days"),
        "CANCEL_ATTEMPTS_30D": _count_column("Cancel flow openings in the last 30 days"),
        "OFFERS_DECLINED_30D": _count_column("Save offers declined in the last 30 days"),
        "OFFERS_ACCEPTED_30D": _count_column("Save offers accepted in the last 30 days"),
        "SUBSCRIPTION_CANCELED": Column(
            bool,
            nullable=False,
            description="Subscription canceled in the last 30 days"
        ),
        "FEEDBACK_SUBMITTED_30D": _count_column("Feedback submissions in the last 30 days"),
    },
    strict=False,  # Allow extra columns (email, days since last event, ...)
    coerce=True,   # Try to coerce types automatically
    description="Schema for customer risk scoring input data"
)


# Schema for scoring output data
SCORING_OUTPUT_SCHEMA = DataFrameSchema(
    {
        "CUSTOMER_ID": Column(str, nullable=False),
        "RISK_SCORE": Column(
            int,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(100),
            ]
        ),
        "RISK_BUCKET": Column(
            str,
            nullable=False,
            checks=Check.isin(BUCKET_ORDER)
        ),
    },
    strict=False,  # Allow component columns
    description="Schema for customer risk scoring output data"
)
