"""Feedback Synth API Schemas.

Schemas are organized by domain:
- base: Common config, pagination, errors
- feedback: Intake, identity, inspection
- features: Features, merges, review tooling
"""

from .base import (
    # Base classes
    SynthBaseModel,
    # Pagination
    PaginatedResponse,
    PaginationParams,
    # Errors
    ErrorResponse,
)
from .features import (
    FeatureDetailResponse,
    FeatureMergeRequest,
    FeatureResponse,
    FeatureSearchParams,
    FeatureSortField,
    FeatureSummary,
    FeatureUpdate,
    LinkedFeedback,
    ReprocessRequest,
    ReprocessResult,
    SimilarFeature,
    SortOrder,
)
from .feedback import (
    CustomerProfileIn,
    FeedbackAccepted,
    FeedbackCreate,
    FeedbackResponse,
)

__all__ = [
    # Base
    "SynthBaseModel",
    "PaginatedResponse",
    "PaginationParams",
    "ErrorResponse",
    # Features
    "FeatureDetailResponse",
    "FeatureMergeRequest",
    "FeatureResponse",
    "FeatureSearchParams",
    "FeatureSortField",
    "FeatureSummary",
    "FeatureUpdate",
    "LinkedFeedback",
    "ReprocessRequest",
    "ReprocessResult",
    "SimilarFeature",
    "SortOrder",
    # Feedback
    "CustomerProfileIn",
    "FeedbackAccepted",
    "FeedbackCreate",
    "FeedbackResponse",
]
