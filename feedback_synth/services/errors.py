"""Exceptions raised by the synthesis services."""


class SynthesisError(Exception):
    """Base exception for synthesis operations."""
    pass


class NotFoundError(SynthesisError):
    """Referenced record does not exist. Not retried."""
    pass


class FeedbackNotFoundError(NotFoundError):
    """Feedback item does not exist."""
    pass


class FeatureNotFoundError(NotFoundError):
    """Feature does not exist."""
    pass


class InvalidArgumentError(SynthesisError):
    """Operation called with arguments that can never succeed."""
    pass


class ExtractorUnavailableError(SynthesisError):
    """Extractor call failed. Transient: safe to retry later."""
    pass


class ExtractorTimeoutError(ExtractorUnavailableError):
    """Extractor call exceeded its timeout."""
    pass


class StorageError(SynthesisError):
    """Persistence failed mid-transaction; the transaction was rolled back."""
    pass


class EmbeddingDimensionError(SynthesisError):
    """Embedding length does not match the configured dimensionality."""
    pass


# Errors a retry may fix
TRANSIENT_ERRORS = (ExtractorUnavailableError, StorageError)
