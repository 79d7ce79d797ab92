"""Pydantic schemas for feedback intake and inspection."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from ..models import FeedbackSource
from .base import SynthBaseModel


# =============================================================================
# IDENTITY
# =============================================================================


class CustomerProfileIn(SynthBaseModel):
    """Identifier output for one author."""

    email: EmailStr
    arr: float = Field(default=0.0, ge=0, description="Annual recurring revenue")
    name: str | None = Field(default=None, max_length=255)
    company_name: str | None = Field(default=None, max_length=255)
    plan_name: str | None = Field(default=None, max_length=100)


# =============================================================================
# FEEDBACK
# =============================================================================


class FeedbackCreate(SynthBaseModel):
    """A normalized feedback event from a collector."""

    source: FeedbackSource
    content: str = Field(..., min_length=1)
    external_id: str | None = Field(default=None, max_length=255)
    author_email: EmailStr | None = None
    author_name: str | None = Field(default=None, max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict)
    customer: CustomerProfileIn | None = Field(
        default=None,
        description="Resolved customer, applied before synthesis",
    )

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Content cannot be blank")
        return v


class FeedbackAccepted(SynthBaseModel):
    """Intake acknowledgement."""

    id: UUID
    created: bool = Field(description="False when this delivery was already stored")
    queued: bool


class FeedbackResponse(SynthBaseModel):
    """Full feedback item."""

    id: UUID
    source: FeedbackSource
    external_id: str | None = None
    content: str
    author_email: str | None = None
    author_name: str | None = None
    customer_id: UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    weight: float
    processed: bool
    created_at: datetime
    feature_ids: list[UUID] = Field(default_factory=list)
