"""
Feature Index: nearest-neighbor lookup over feature embeddings.

Distances are cosine distances (1 - cosine similarity), so 0.0 means the
same direction and lower is more similar. Features without an embedding and
features in DECLINED status (including merged-away features) never appear
as candidates.

On PostgreSQL the ranking runs in the database with pgvector's `<=>`
operator and only the winning rows are loaded. Other databases load every
candidate embedding and rank with numpy.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import Float, Select, bindparam, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Feature, FeatureStatus
from .errors import EmbeddingDimensionError, FeatureNotFoundError

SIMILAR_FEATURES_LIMIT = 10


@dataclass
class IndexMatch:
    """A candidate feature and its distance from the query vector."""
    feature: Feature
    distance: float

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


def cosine_distance(a: list[float], b: list[float]) -> float:
    """Cosine distance between two vectors; 1.0 if either is all zeros."""
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 1.0

    return float(1.0 - np.dot(vec_a, vec_b) / (norm_a * norm_b))


def _rank_key(match: IndexMatch) -> tuple[float, datetime, str]:
    """Distance first, then oldest feature, then id: a total order."""
    created = match.feature.created_at
    if created.tzinfo is not None:
        created = created.astimezone(timezone.utc).replace(tzinfo=None)
    return (match.distance, created, str(match.feature.id))


class FeatureIndex:
    """Nearest-neighbor search over the embeddings stored on features."""

    def __init__(self, session: AsyncSession, dimensions: int):
        self._session = session
        self.dimensions = dimensions

    async def nearest(self, vector: list[float]) -> IndexMatch | None:
        """Return the single closest candidate feature, or None."""
        matches = await self._rank(vector, limit=1)
        return matches[0] if matches else None

    async def similar_features(
        self,
        feature_id: UUID,
        threshold: float,
        limit: int = SIMILAR_FEATURES_LIMIT,
    ) -> list[IndexMatch]:
        """
        Features within `threshold` distance of a feature's own embedding.

        Ordered by increasing distance, excluding the feature itself. A
        feature that has no embedding yet has no neighbors.
        """
        feature = await self._session.get(Feature, feature_id)
        if feature is None:
            raise FeatureNotFoundError(f"Feature {feature_id} not found")
        if feature.embedding is None:
            return []

        return await self._rank(
            feature.embedding,
            exclude_id=feature_id,
            threshold=threshold,
            limit=limit,
        )

    def distance_query(
        self,
        vector: list[float],
        exclude_id: UUID | None = None,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> Select:
        """pgvector query yielding (Feature, distance) rows, closest first."""
        distance = Feature.embedding.op("<=>", return_type=Float)(
            bindparam("query_vector", list(vector), type_=Vector())
        )
        query = (
            select(Feature, distance.label("distance"))
            .where(*self._candidate_filters(exclude_id))
            .order_by(distance, Feature.created_at, Feature.id)
        )
        if threshold is not None:
            query = query.where(distance < threshold)
        if limit is not None:
            query = query.limit(limit)
        return query

    async def _rank(
        self,
        vector: list[float],
        exclude_id: UUID | None = None,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> list[IndexMatch]:
        self._check(vector)

        if self._session.get_bind().dialect.name == "postgresql":
            return await self._rank_in_database(vector, exclude_id, threshold, limit)

        matches = await self._rank_in_memory(vector, exclude_id)
        if threshold is not None:
            matches = [m for m in matches if m.distance < threshold]
        return matches[:limit] if limit is not None else matches

    async def _rank_in_database(
        self,
        vector: list[float],
        exclude_id: UUID | None,
        threshold: float | None,
        limit: int | None,
    ) -> list[IndexMatch]:
        query = self.distance_query(vector, exclude_id, threshold, limit)
        try:
            result = await self._session.execute(query)
        except DBAPIError as e:
            if "different vector dimensions" in str(e.orig):
                raise EmbeddingDimensionError(
                    f"Stored embeddings do not match {self.dimensions} dimensions: {e.orig}"
                ) from e
            raise

        return [
            IndexMatch(feature=feature, distance=float(distance))
            for feature, distance in result.all()
        ]

    async def _rank_in_memory(
        self,
        vector: list[float],
        exclude_id: UUID | None,
    ) -> list[IndexMatch]:
        result = await self._session.execute(
            select(Feature).where(*self._candidate_filters(exclude_id))
        )
        candidates = list(result.scalars().all())
        if not candidates:
            return []

        for candidate in candidates:
            self._check(candidate.embedding)

        matrix = np.asarray([c.embedding for c in candidates], dtype=float)
        query_vec = np.asarray(vector, dtype=float)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        dots = matrix @ query_vec
        with np.errstate(divide="ignore", invalid="ignore"):
            distances = np.where(norms > 0, 1.0 - dots / norms, 1.0)

        matches = [
            IndexMatch(feature=c, distance=float(d))
            for c, d in zip(candidates, distances)
        ]
        matches.sort(key=_rank_key)
        return matches

    @staticmethod
    def _candidate_filters(exclude_id: UUID | None) -> list:
        filters = [
            Feature.embedding.is_not(None),
            Feature.status != FeatureStatus.DECLINED,
        ]
        if exclude_id is not None:
            filters.append(Feature.id != exclude_id)
        return filters

    def _check(self, vector: list[float]) -> None:
        if len(vector) != self.dimensions:
            raise EmbeddingDimensionError(
                f"Embedding has {len(vector)} dimensions, index expects {self.dimensions}"
            )
