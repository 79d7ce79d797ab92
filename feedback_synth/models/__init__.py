"""SQLAlchemy ORM Models for the feedback synthesis engine."""

from .base import Base, TimestampMixin, UUIDMixin
from .models import (
    # Enums
    FeatureStatus,
    FeedbackSource,
    Sentiment,
    # Entities
    Customer,
    Feature,
    FeedbackFeatureLink,
    FeedbackItem,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "FeedbackSource",
    "Sentiment",
    "FeatureStatus",
    # Entities
    "Customer",
    "FeedbackItem",
    "Feature",
    "FeedbackFeatureLink",
]
