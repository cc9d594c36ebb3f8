"""Risk rule components for customer risk scoring."""

from .base import BaseScorer
from .recent_intent import RecentIntentScorer
from .canceled import CanceledScorer
from .declined_offer import DeclinedOfferScorer
from .persistent_intent import PersistentIntentScorer
from .accepted_offer import AcceptedOfferScorer
from .feedback import FeedbackScorer

__all__ = [
    "BaseScorer",
    "RecentIntentScorer",
    "CanceledScorer",
    "DeclinedOfferScorer",
    "PersistentIntentScorer",
    "AcceptedOfferScorer",
    "FeedbackScorer",
]
