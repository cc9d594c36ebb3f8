"""
Cancel flow configuration.

Feedback options, alternative plans, offer terms and provider call
limits. Defaults are resolved once here, at load time, so the
orchestrator never has to fall back field by field.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from string import ascii_uppercase
from typing import Iterable, Optional

import yaml


OTHER_OPTION_ID = "other"


@dataclass(frozen=True)
class FeedbackOption:
    id: str
    label: str
    letter: str = ""


@dataclass(frozen=True)
class Plan:
    """An alternative plan offered instead of cancelling."""

    id: str
    name: str
    original_price: float
    discount_percent: float = 0
    discount_duration_months: int = 3
    highlights: tuple[str, ...] = ()
    price_id: Optional[str] = None
    period: str = "/mo"

    @property
    def discounted_price(self) -> float:
        return round(self.original_price * (1 - self.discount_percent / 100), 2)


def assign_letters(
    options: Iterable[FeedbackOption],
    include_other: bool = True,
    other_label: str = "Other reason",
) -> tuple[FeedbackOption, ...]:
    """
    Reassign letters densely (A, B, C...) in option order.

    The "other" option is moved to the end, or appended when
    `include_other` is set and it is missing.
    """
    options = list(options)
    regular = [o for o in options if o.id != OTHER_OPTION_ID]
    other = next((o for o in options if o.id == OTHER_OPTION_ID), None)
    if other is None and include_other:
        other = FeedbackOption(id=OTHER_OPTION_ID, label=other_label)
    ordered = regular + ([other] if other is not None and include_other else [])
    if len(ordered) > len(ascii_uppercase):
        raise ValueError(f"At most {len(ascii_uppercase)} feedback options are supported")
    return tuple(
        FeedbackOption(id=o.id, label=o.label, letter=ascii_uppercase[i])
        for i, o in enumerate(ordered)
    )


DEFAULT_FEEDBACK_OPTIONS = assign_letters([
    FeedbackOption("too_expensive", "Too expensive for what I get"),
    FeedbackOption("not_using", "I'm not using it enough"),
    FeedbackOption("missing_features", "Missing features I need"),
    FeedbackOption("found_alternative", "Found a better alternative"),
])

DEFAULT_PLANS = (
    Plan(
        id="basic",
        name="Basic",
        original_price=29,
        discount_percent=80,
        discount_duration_months=3,
        highlights=("5 projects", "Basic analytics", "Email support", "1GB storage"),
    ),
    Plan(
        id="pro",
        name="Pro",
        original_price=79,
        discount_percent=80,
        discount_duration_months=3,
        highlights=("25 projects", "Advanced analytics", "Priority support", "10GB storage"),
    ),
)


@dataclass
class FlowConfig:
    """
    Configuration for one cancel flow.

    Load from YAML:
        config = FlowConfig.from_yaml("flows/default.yaml")

    Create programmatically:
        config = FlowConfig(discount_percent=30, discount_duration_months=6)
    """

    flow_id: str = "default"
    organization_id: Optional[str] = None
    company_name: str = "our service"

    # Step 1: feedback survey
    feedback_options: tuple[FeedbackOption, ...] = DEFAULT_FEEDBACK_OPTIONS
    allow_other: bool = True

    # Step 2: alternative plans
    plans: tuple[Plan, ...] = DEFAULT_PLANS
    plan_discount_percent: float = 80

    # Step 3: save offer
    discount_percent: float = 50
    discount_duration_months: int = 3

    # Provider call limits
    provider_timeout_seconds: float = 3.0
    provider_retries: int = 1
    retry_delay_seconds: float = 0.25
    event_timeout_seconds: float = 3.0

    # Host endpoints (used by the HTTP collaborators)
    api_endpoint: str = "/api/cancel-flow"
    discount_endpoint: Optional[str] = None
    switch_plan_endpoint: str = "/api/cancel-flow/switch-plan"

    def __post_init__(self):
        self.feedback_options = assign_letters(
            self.feedback_options, include_other=self.allow_other
        )
        self.plans = tuple(self.plans)
        if self.discount_endpoint is None:
            self.discount_endpoint = self.api_endpoint
        if not 0 < self.discount_percent <= 100:
            raise ValueError("discount_percent must be in (0, 100]")
        if self.provider_retries < 0:
            raise ValueError("provider_retries must be >= 0")

    @property
    def discount_duration(self) -> str:
        return f"{self.discount_duration_months} months"

    def option_ids(self) -> set[str]:
        return {o.id for o in self.feedback_options}

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        return next((p for p in self.plans if p.id == plan_id), None)

    def with_feedback_options(self, options: Iterable[FeedbackOption]) -> "FlowConfig":
        """Copy with a new option set (letters are reassigned)."""
        data = {**self.__dict__, "feedback_options": tuple(options)}
        return FlowConfig(**data)

    @classmethod
    def from_dict(cls, data: dict) -> "FlowConfig":
        data = dict(data)
        if "feedback_options" in data:
            data["feedback_options"] = tuple(
                FeedbackOption(id=o["id"], label=o["label"]) for o in data["feedback_options"]
            )
        if "plans" in data:
            data["plans"] = tuple(
                Plan(**{**p, "highlights": tuple(p.get("highlights", ()))})
                for p in data["plans"]
            )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "FlowConfig":
        """Load configuration from YAML file."""
        with open(Path(path)) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        data = asdict(self)
        # "other" is synthesized from allow_other on load
        data["feedback_options"] = [
            {"id": o.id, "label": o.label}
            for o in self.feedback_options
            if o.id != OTHER_OPTION_ID
        ]
        data["plans"] = [{**asdict(p), "highlights": list(p.highlights)} for p in self.plans]
        return data

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
