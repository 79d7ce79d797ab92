"""Extractor Adapter: structured feature signals and embeddings.

Uses Google Gemini to turn raw feedback text into:
- Feature title
- One-sentence problem summary
- Sentiment
- Urgency (1-10)
- Tags

and to embed text into a fixed-length vector used only for distance
comparison between features.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import numpy as np

from ..core.config import Settings, get_settings
from ..models import Sentiment
from .errors import (
    EmbeddingDimensionError,
    ExtractorTimeoutError,
    ExtractorUnavailableError,
)

logger = logging.getLogger(__name__)

UNKNOWN_FEATURE_TITLE = "Unknown Feature"
DEGRADED_SUMMARY_LENGTH = 200
DEFAULT_URGENCY = 5


@dataclass
class ExtractedSignal:
    """Validated result of structured extraction on one feedback item."""

    title: str
    summary: str
    sentiment: Sentiment = Sentiment.NEUTRAL
    urgency: int = DEFAULT_URGENCY
    tags: list[str] = field(default_factory=list)

    # True when the extractor output was unusable and fallback values were used
    degraded: bool = False

    @classmethod
    def fallback(cls, content: str) -> "ExtractedSignal":
        """Degraded signal built from the raw content alone."""
        return cls(
            title=UNKNOWN_FEATURE_TITLE,
            summary=content[:DEGRADED_SUMMARY_LENGTH],
            sentiment=Sentiment.NEUTRAL,
            urgency=DEFAULT_URGENCY,
            tags=[],
            degraded=True,
        )

    @property
    def embedding_text(self) -> str:
        return f"{self.title} {self.summary}"


# =============================================================================
# RESPONSE PARSING
# =============================================================================


def _strip_code_fences(text: str) -> str:
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]
    return text.strip()


def _validate_sentiment(value: Any) -> Sentiment:
    try:
        return Sentiment(str(value).lower().strip())
    except ValueError:
        return Sentiment.NEUTRAL


def _validate_urgency(value: Any) -> int:
    try:
        urgency = float(value)
    except (TypeError, ValueError):
        return DEFAULT_URGENCY
    if not math.isfinite(urgency):
        return DEFAULT_URGENCY
    urgency = int(round(urgency))
    return min(10, max(1, urgency))


def _validate_tags(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    tags = []
    for tag in value:
        if isinstance(tag, str) and tag.strip():
            normalized = tag.lower().strip()
            if normalized not in tags:
                tags.append(normalized)
    return tags[:20]


def parse_signal(text: str, content: str) -> ExtractedSignal:
    """Parse the model's JSON text into a signal, degrading on bad output."""
    try:
        data = json.loads(_strip_code_fences(text))
        if not isinstance(data, dict):
            raise ValueError("Extraction output is not a JSON object")

        title = str(data.get("feature_title") or "").strip()
        if not title:
            raise ValueError("Extraction output has no feature_title")

        return ExtractedSignal(
            title=title[:255],
            summary=str(data.get("problem_summary") or "").strip(),
            sentiment=_validate_sentiment(data.get("sentiment")),
            urgency=_validate_urgency(data.get("urgency")),
            tags=_validate_tags(data.get("tags")),
        )

    except (json.JSONDecodeError, ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Extraction output unusable, using fallback signal: {e}")
        return ExtractedSignal.fallback(content)


def check_dimensions(vector: list[float], expected: int) -> list[float]:
    if len(vector) != expected:
        raise EmbeddingDimensionError(
            f"Embedding has {len(vector)} dimensions, expected {expected}"
        )
    return vector


# =============================================================================
# ADAPTERS
# =============================================================================


class ExtractorAdapter(ABC):
    """Boundary to the text-to-signal and text-to-vector services."""

    @abstractmethod
    async def extract_signal(self, content: str) -> ExtractedSignal:
        """Extract a structured feature signal. Never raises on bad output."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed text into a fixed-length vector."""


class HashingEmbedder:
    """Local bag-of-characters embedding.

    Needs no external service. Only relative distances are meaningful, and
    only between texts that share vocabulary.
    """

    def __init__(self, dimensions: int):
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        words = text.lower().split()
        vector = np.zeros(self.dimensions)

        for i, word in enumerate(words):
            for j, char in enumerate(word):
                idx = (ord(char) * (i + 1) * (j + 1)) % self.dimensions
                vector[idx] += 1 / len(words)

        magnitude = np.linalg.norm(vector)
        if magnitude > 0:
            vector = vector / magnitude
        return vector.tolist()


class GeminiExtractor(ExtractorAdapter):
    """
    Extractor backed by the Google Gemini REST API.

    Transport errors and non-200 responses raise ExtractorUnavailableError;
    timeouts raise ExtractorTimeoutError. Malformed model output is not an
    error: it degrades to a fallback signal.
    """

    API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    SYSTEM_PROMPT = """You are a Senior Product Manager. Analyze the following user feedback.
Output a JSON object with these keys:
- "feature_title": A short, standard feature name (e.g., "Dark Mode", "SSO Support").
- "problem_summary": A 1-sentence summary of the user's pain.
- "sentiment": "positive", "neutral", or "negative".
- "urgency": 1-10 scale based on emotional language.
- "tags": Array of keywords (e.g., ["ux", "api", "billing"]).

IMPORTANT: Return ONLY valid JSON, no markdown code blocks or extra text."""

    def __init__(
        self,
        settings: Settings | None = None,
        embedder: HashingEmbedder | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = settings or get_settings()
        self.api_key = settings.gemini_api_key
        self.extraction_model = settings.extraction_model
        self.embedding_model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.timeout = settings.extractor_timeout_seconds
        self._embedder = embedder
        self._client = client

    @property
    def is_configured(self) -> bool:
        """Check if Gemini API is configured."""
        return bool(self.api_key)

    async def extract_signal(self, content: str) -> ExtractedSignal:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": self.SYSTEM_PROMPT},
                        {"text": f"\n\nInput Text: {content}"},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.2,
                "maxOutputTokens": 1024,
                "responseMimeType": "application/json",
            },
        }
        response = await self._post(f"{self.extraction_model}:generateContent", payload)

        try:
            text = response["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            logger.warning(f"Gemini response missing text part: {e}")
            return ExtractedSignal.fallback(content)

        return parse_signal(text, content)

    async def embed(self, text: str) -> list[float]:
        if self._embedder is not None:
            return check_dimensions(await self._embedder.embed(text), self.dimensions)

        payload = {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self.dimensions,
        }
        response = await self._post(f"{self.embedding_model}:embedContent", payload)

        try:
            values = [float(v) for v in response["embedding"]["values"]]
        except (KeyError, TypeError, ValueError) as e:
            raise ExtractorUnavailableError(f"Malformed embedding response: {e}") from e

        return check_dimensions(values, self.dimensions)

    async def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to a Gemini model method and return the decoded JSON body."""
        if not self.is_configured:
            raise ExtractorUnavailableError("Gemini API key not configured")

        url = f"{self.API_BASE_URL}/{method}"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=payload, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ExtractorTimeoutError(f"Gemini request timed out: {method}") from e
        except httpx.HTTPError as e:
            raise ExtractorUnavailableError(f"Gemini request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Gemini API error: {response.status_code} - {response.text[:500]}")
            raise ExtractorUnavailableError(f"Gemini API error: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ExtractorUnavailableError(f"Gemini returned non-JSON body: {e}") from e


def get_extractor(settings: Settings | None = None) -> ExtractorAdapter:
    """Build the extractor configured in settings."""
    settings = settings or get_settings()
    embedder = None
    if settings.embedding_provider == "hashing":
        embedder = HashingEmbedder(settings.embedding_dimensions)
    return GeminiExtractor(settings=settings, embedder=embedder)
