"""Business logic services for Feedback Synth."""

from .aggregates import AggregateMaintainer, FeatureAggregates
from .errors import (
    SynthesisError,
    NotFoundError,
    FeedbackNotFoundError,
    FeatureNotFoundError,
    InvalidArgumentError,
    ExtractorUnavailableError,
    ExtractorTimeoutError,
    StorageError,
    EmbeddingDimensionError,
    TRANSIENT_ERRORS,
)
from .extractor import (
    ExtractedSignal,
    ExtractorAdapter,
    GeminiExtractor,
    HashingEmbedder,
    get_extractor,
)
from .feature_index import FeatureIndex, IndexMatch, cosine_distance
from .features import FeatureService
from .feedback_store import FeedbackStore, NormalizedFeedback
from .identity import CustomerProfile, IdentityService, calculate_weight
from .locks import KeyedLocks
from .merge import FeatureMergeService
from .synthesis_queue import QueueStats, SynthesisQueue
from .synthesizer import SynthesisConfig, SynthesisOutcome, SynthesisPipeline

__all__ = [
    # Errors
    "SynthesisError",
    "NotFoundError",
    "FeedbackNotFoundError",
    "FeatureNotFoundError",
    "InvalidArgumentError",
    "ExtractorUnavailableError",
    "ExtractorTimeoutError",
    "StorageError",
    "EmbeddingDimensionError",
    "TRANSIENT_ERRORS",
    # Extractor boundary
    "ExtractedSignal",
    "ExtractorAdapter",
    "GeminiExtractor",
    "HashingEmbedder",
    "get_extractor",
    # Synthesis (primary)
    "SynthesisPipeline",
    "SynthesisConfig",
    "SynthesisOutcome",
    "SynthesisQueue",
    "QueueStats",
    "KeyedLocks",
    # Features
    "FeatureIndex",
    "IndexMatch",
    "cosine_distance",
    "AggregateMaintainer",
    "FeatureAggregates",
    "FeatureMergeService",
    "FeatureService",
    # Feedback and identity
    "FeedbackStore",
    "NormalizedFeedback",
    "IdentityService",
    "CustomerProfile",
    "calculate_weight",
]
