"""Pydantic schemas for features, merges and review tooling."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ..models import FeatureStatus, FeedbackSource, Sentiment
from .base import SynthBaseModel


class FeatureSortField(str, Enum):
    TOTAL_ARR = "total_arr"
    TOTAL_WEIGHT = "total_weight"
    FEEDBACK_COUNT = "feedback_count"
    URGENCY_SCORE = "urgency_score"
    CREATED_AT = "created_at"
    PRIORITY = "priority"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# FEATURE SCHEMAS
# =============================================================================


class FeatureSummary(SynthBaseModel):
    """Feature row for list views."""

    id: UUID
    title: str
    problem_summary: str | None = None
    sentiment: Sentiment
    urgency_score: int
    tags: list[str] = Field(default_factory=list)
    status: FeatureStatus
    priority: int
    total_weight: float
    total_arr: float
    feedback_count: int
    is_public: bool
    created_at: datetime
    updated_at: datetime | None = None


class FeatureResponse(FeatureSummary):
    """Full feature details."""

    description: str | None = None
    tracker_issue_key: str | None = None
    tracker_issue_url: str | None = None
    public_votes: int = 0


class LinkedFeedback(SynthBaseModel):
    """A feedback item as seen from a feature it is linked to."""

    id: UUID
    source: FeedbackSource
    content: str
    author_email: str | None = None
    author_name: str | None = None
    weight: float
    similarity_score: float | None = None
    customer_name: str | None = None
    company_name: str | None = None
    customer_arr: float | None = None
    created_at: datetime


class FeatureDetailResponse(FeatureResponse):
    """Feature with the feedback that produced it."""

    feedback: list[LinkedFeedback] = Field(default_factory=list)


class FeatureUpdate(SynthBaseModel):
    """Editable fields. Aggregates and embeddings are never accepted."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: FeatureStatus | None = None
    priority: int | None = Field(default=None, ge=0)
    tags: list[str] | None = Field(default=None, max_length=20)
    is_public: bool | None = None

    # Only description may be cleared; the other columns are NOT NULL
    @field_validator("title", "status", "priority", "tags", "is_public", mode="before")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return list(dict.fromkeys(tag.strip().lower() for tag in v if tag.strip()))


class FeatureSearchParams(BaseModel):
    """Filters and ordering for the feature list."""

    status: list[FeatureStatus] | None = None
    search: str | None = Field(default=None, max_length=200)
    sort: FeatureSortField = FeatureSortField.TOTAL_ARR
    order: SortOrder = SortOrder.DESC


# =============================================================================
# MERGE AND REVIEW
# =============================================================================


class FeatureMergeRequest(SynthBaseModel):
    """Absorb source_id into target_id."""

    source_id: UUID
    target_id: UUID


class SimilarFeature(SynthBaseModel):
    """A merge candidate for review."""

    id: UUID
    title: str
    status: FeatureStatus
    feedback_count: int
    total_arr: float
    distance: float
    similarity: float


class ReprocessRequest(SynthBaseModel):
    limit: int = Field(default=100, ge=1, le=1000)


class ReprocessResult(SynthBaseModel):
    processed: int
    errors: int
