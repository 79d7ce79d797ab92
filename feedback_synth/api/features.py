"""
Feature API Routes: review tooling and administration.

1. GET /features - List with filters and revenue-first sorting
2. GET /features/{id} - Feature with its linked feedback
3. PATCH /features/{id} - Operator edits (never aggregates)
4. POST /features/merge - Absorb a duplicate into another feature
5. GET /features/{id}/similar - Merge candidates for review
6. POST /features/reprocess - Sweep unprocessed feedback
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..core.config import get_settings
from ..core.dependencies import PipelineDep, SessionDep
from ..jobs.reprocess_sweep import reprocess_unprocessed
from ..models import FeatureStatus
from ..schemas import (
    FeatureDetailResponse,
    FeatureMergeRequest,
    FeatureResponse,
    FeatureSearchParams,
    FeatureSortField,
    FeatureSummary,
    FeatureUpdate,
    PaginatedResponse,
    PaginationParams,
    ReprocessRequest,
    ReprocessResult,
    SimilarFeature,
    SortOrder,
)
from ..services.errors import (
    EmbeddingDimensionError,
    FeatureNotFoundError,
    InvalidArgumentError,
    StorageError,
)
from ..services.feature_index import FeatureIndex
from ..services.features import FeatureService
from ..services.merge import FeatureMergeService

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/features", tags=["features"])


@router.get(
    "",
    response_model=PaginatedResponse,
    summary="List features",
)
async def list_features(
    session: SessionDep,
    pagination: Annotated[PaginationParams, Depends()],
    status_filter: list[FeatureStatus] | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=200),
    sort: FeatureSortField = FeatureSortField.TOTAL_ARR,
    order: SortOrder = SortOrder.DESC,
):
    params = FeatureSearchParams(status=status_filter, search=search, sort=sort, order=order)
    features, total = await FeatureService(session).list_features(
        params,
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return PaginatedResponse.create(
        items=[FeatureSummary.model_validate(f) for f in features],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.post(
    "/merge",
    response_model=FeatureResponse,
    summary="Merge two features",
    description="""
    Move every link from source to target, dropping links for feedback that
    is already on target. Both features' aggregates are recalculated and the
    source is marked declined.
    """,
)
async def merge_features(request: FeatureMergeRequest, session: SessionDep):
    try:
        target = await FeatureMergeService(session).merge(request.source_id, request.target_id)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return FeatureResponse.model_validate(target)


@router.post(
    "/reprocess",
    response_model=ReprocessResult,
    summary="Reprocess unprocessed feedback",
)
async def reprocess_feedback(pipeline: PipelineDep, request: ReprocessRequest | None = None):
    limit = request.limit if request else settings.reprocess_batch_size
    results = await reprocess_unprocessed(pipeline, pipeline.session_factory, limit)
    return ReprocessResult(**results)


@router.get(
    "/{feature_id}",
    response_model=FeatureDetailResponse,
    summary="Get a feature with its feedback",
)
async def get_feature(feature_id: UUID, session: SessionDep):
    service = FeatureService(session)
    try:
        feature = await service.get_feature(feature_id)
        feedback = await service.linked_feedback(feature_id)
    except FeatureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    response = FeatureDetailResponse.model_validate(feature)
    response.feedback = feedback
    return response


@router.patch(
    "/{feature_id}",
    response_model=FeatureResponse,
    summary="Edit a feature",
)
async def update_feature(feature_id: UUID, request: FeatureUpdate, session: SessionDep):
    try:
        feature = await FeatureService(session).update_feature(feature_id, request)
    except FeatureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return FeatureResponse.model_validate(feature)


@router.get(
    "/{feature_id}/similar",
    response_model=list[SimilarFeature],
    summary="Find likely duplicates",
)
async def similar_features(
    feature_id: UUID,
    session: SessionDep,
    pipeline: PipelineDep,
    threshold: float = Query(default=settings.similar_features_threshold, gt=0, le=2),
):
    index = FeatureIndex(session, pipeline.config.embedding_dimensions)
    try:
        matches = await index.similar_features(
            feature_id,
            threshold,
            limit=settings.similar_features_limit,
        )
    except FeatureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except EmbeddingDimensionError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return [
        SimilarFeature(
            id=m.feature.id,
            title=m.feature.title,
            status=m.feature.status,
            feedback_count=m.feature.feedback_count,
            total_arr=m.feature.total_arr,
            distance=m.distance,
            similarity=m.similarity,
        )
        for m in matches
    ]
