"""
Feedback API Routes: collector intake and inspection.

1. POST /feedback - Store a normalized item and queue it for synthesis
2. GET /feedback - List items, optionally by processed state
3. GET /feedback/{id} - Fetch one item with its feature links
4. PUT /feedback/{id}/customer - Apply an identity resolution result
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..core.dependencies import QueueDep, SessionDep
from ..models import FeedbackItem, FeedbackSource
from ..schemas import (
    CustomerProfileIn,
    FeedbackAccepted,
    FeedbackCreate,
    FeedbackResponse,
    PaginatedResponse,
    PaginationParams,
)
from ..services.errors import FeedbackNotFoundError, InvalidArgumentError
from ..services.feedback_store import FeedbackStore, NormalizedFeedback
from ..services.identity import CustomerProfile, IdentityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feedback", tags=["feedback"])


def build_feedback_response(item: FeedbackItem, feature_ids: list[UUID]) -> FeedbackResponse:
    return FeedbackResponse(
        id=item.id,
        source=item.source,
        external_id=item.external_id,
        content=item.content,
        author_email=item.author_email,
        author_name=item.author_name,
        customer_id=item.customer_id,
        metadata=item.metadata_ or {},
        weight=item.weight,
        processed=item.processed,
        created_at=item.created_at,
        feature_ids=feature_ids,
    )


def _to_profile(data: CustomerProfileIn) -> CustomerProfile:
    return CustomerProfile(
        email=str(data.email),
        arr=data.arr,
        name=data.name,
        company_name=data.company_name,
        plan_name=data.plan_name,
    )


@router.post(
    "",
    response_model=FeedbackAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit normalized feedback",
)
async def submit_feedback(
    request: FeedbackCreate,
    session: SessionDep,
    queue: QueueDep,
):
    """
    Store one normalized feedback event and hand it to the synthesis queue.

    A repeated delivery (same source and external_id) returns the stored
    item. It is queued again only if it has not been processed yet.
    """
    store = FeedbackStore(session)
    item, created = await store.save(
        NormalizedFeedback(
            source=FeedbackSource(request.source),
            content=request.content,
            external_id=request.external_id,
            author_email=str(request.author_email) if request.author_email else None,
            author_name=request.author_name,
            metadata=request.metadata,
        )
    )

    if request.customer is not None and created:
        try:
            await IdentityService(session).attach_customer(item.id, _to_profile(request.customer))
        except InvalidArgumentError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    # Workers read through their own sessions; the item must be visible first
    await session.commit()

    queued = not item.processed
    if queued:
        await queue.submit(item.id)

    return FeedbackAccepted(id=item.id, created=created, queued=queued)


@router.get(
    "",
    response_model=PaginatedResponse,
    summary="List feedback",
)
async def list_feedback(
    session: SessionDep,
    pagination: Annotated[PaginationParams, Depends()],
    processed: bool | None = Query(default=None, description="Filter by processed state"),
):
    store = FeedbackStore(session)
    items, total = await store.list_feedback(
        processed=processed,
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    responses = [
        build_feedback_response(item, await store.linked_feature_ids(item.id))
        for item in items
    ]
    return PaginatedResponse.create(
        items=responses,
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get(
    "/{feedback_id}",
    response_model=FeedbackResponse,
    summary="Get a feedback item",
)
async def get_feedback(feedback_id: UUID, session: SessionDep):
    store = FeedbackStore(session)
    try:
        item = await store.get(feedback_id)
    except FeedbackNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return build_feedback_response(item, await store.linked_feature_ids(item.id))


@router.put(
    "/{feedback_id}/customer",
    response_model=FeedbackResponse,
    summary="Attach a resolved customer",
    description="""
    Apply the identifier's result to a feedback item: link the customer,
    set weight = 1 + arr / 1000, and recalculate any feature the item is
    already linked to.
    """,
)
async def attach_customer(
    feedback_id: UUID,
    request: CustomerProfileIn,
    session: SessionDep,
):
    try:
        item = await IdentityService(session).attach_customer(feedback_id, _to_profile(request))
    except FeedbackNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    feature_ids = await FeedbackStore(session).linked_feature_ids(item.id)
    return build_feedback_response(item, feature_ids)
