"""SQLAlchemy ORM Models for the feedback synthesis engine."""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, EmbeddingType, JSONType, TimestampMixin, UUIDMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================


class FeedbackSource(str, PyEnum):
    CHAT = "chat"
    CALL_TRANSCRIPT = "call_transcript"
    HELPDESK = "helpdesk"
    MANUAL = "manual"


class Sentiment(str, PyEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class FeatureStatus(str, PyEnum):
    DISCOVERED = "discovered"
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    SHIPPED = "shipped"
    DECLINED = "declined"  # Also the terminal state of a merged-away feature


def _enum_values(enum_cls: type[PyEnum]) -> list[str]:
    return [e.value for e in enum_cls]


# =============================================================================
# CUSTOMERS (owned by the identity resolver)
# =============================================================================


class Customer(Base, UUIDMixin, TimestampMixin):
    """A paying (or free) customer resolved from a feedback author."""

    __tablename__ = "customers"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    company_name: Mapped[str | None] = mapped_column(String(255))
    plan_name: Mapped[str | None] = mapped_column(String(100))
    arr: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        nullable=False,
        comment="Annual recurring revenue",
    )

    feedback: Mapped[list["FeedbackItem"]] = relationship(back_populates="customer")


# =============================================================================
# FEEDBACK
# =============================================================================


class FeedbackItem(Base, UUIDMixin):
    """One normalized unit of customer input. Append-only."""

    __tablename__ = "feedback"

    source: Mapped[FeedbackSource] = mapped_column(
        Enum(FeedbackSource, name="feedback_source", values_callable=_enum_values),
        nullable=False,
    )
    external_id: Mapped[str | None] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_email: Mapped[str | None] = mapped_column(String(255))
    author_name: Mapped[str | None] = mapped_column(String(255))
    customer_id: Mapped[UUID | None] = mapped_column(ForeignKey("customers.id"))
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )
    weight: Mapped[float] = mapped_column(
        Float,
        default=1.0,
        nullable=False,
        comment="Customer-value proxy assigned by identity resolution",
    )
    processed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Set once by the synthesis pipeline after linkage",
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    customer: Mapped["Customer | None"] = relationship(back_populates="feedback")
    links: Mapped[list["FeedbackFeatureLink"]] = relationship(back_populates="feedback")

    __table_args__ = (
        UniqueConstraint("source", "external_id"),
        Index("idx_feedback_unprocessed", "processed", "created_at"),
    )


# =============================================================================
# FEATURES
# =============================================================================


class Feature(Base, UUIDMixin, TimestampMixin):
    """A synthesized, deduplicated product request."""

    __tablename__ = "features"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    problem_summary: Mapped[str | None] = mapped_column(Text)
    sentiment: Mapped[Sentiment] = mapped_column(
        Enum(Sentiment, name="feature_sentiment", values_callable=_enum_values),
        default=Sentiment.NEUTRAL,
        nullable=False,
    )
    urgency_score: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    status: Mapped[FeatureStatus] = mapped_column(
        Enum(FeatureStatus, name="feature_status", values_callable=_enum_values),
        default=FeatureStatus.DISCOVERED,
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Never mutated after creation
    embedding: Mapped[list[float] | None] = mapped_column(EmbeddingType(), nullable=True)

    # Aggregates: always recomputed from the link set, never edited by hand
    total_weight: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_arr: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        nullable=False,
        comment="Revenue at risk across distinct linked customers",
    )
    feedback_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # External tracker sync
    tracker_issue_key: Mapped[str | None] = mapped_column(String(50))
    tracker_issue_url: Mapped[str | None] = mapped_column(Text)

    # Public portal
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    public_votes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    links: Mapped[list["FeedbackFeatureLink"]] = relationship(back_populates="feature")

    __table_args__ = (
        Index("idx_features_status", "status"),
        Index("idx_features_total_arr", "total_arr"),
    )


class FeedbackFeatureLink(Base, UUIDMixin):
    """Attachment of one feedback item to one feature."""

    __tablename__ = "feedback_features"

    feedback_id: Mapped[UUID] = mapped_column(
        ForeignKey("feedback.id"), nullable=False
    )
    feature_id: Mapped[UUID] = mapped_column(
        ForeignKey("features.id"), nullable=False
    )
    similarity_score: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Nearest-neighbor distance for auto-merge links, null for new features",
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    feedback: Mapped["FeedbackItem"] = relationship(back_populates="links")
    feature: Mapped["Feature"] = relationship(back_populates="links")

    __table_args__ = (
        UniqueConstraint("feedback_id", "feature_id"),
        Index("idx_feedback_features_feature", "feature_id"),
    )
