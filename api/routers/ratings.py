"""Rating workflow endpoints."""

import uuid

from fastapi import APIRouter, Query, status

from api.deps import CurrentActor, RatingServiceDep
from api.models.rating import ChangeRequestStatus
from api.schemas.rating import (
    ChangeRequestCreate,
    ChangeRequestResponse,
    ChangeRequestReview,
    RatingBulkCreate,
    RatingCreate,
    RatingResponse,
)
from api.schemas.responses import SuccessResponse
from api.services.rating_service import RatingSubmission

router = APIRouter(prefix="/ratings", tags=["ratings"])
change_requests_router = APIRouter(prefix="/change-requests", tags=["change-requests"])


@router.post(
    "",
    response_model=SuccessResponse[RatingResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Submit a rating",
)
async def submit_rating(
    rating_in: RatingCreate,
    actor: CurrentActor,
    service: RatingServiceDep,
) -> SuccessResponse[RatingResponse]:
    """
    Rate a goal assignment.

    The new rating supersedes the current one unless the current one is
    approved, in which case a change request must be approved first.
    """
    event = await service.submit_rating(
        actor, rating_in.assignment_id, rating_in.rating, rating_in.notes
    )
    return SuccessResponse(data=RatingResponse.model_validate(event))


@router.post(
    "/bulk",
    response_model=SuccessResponse[list[RatingResponse]],
    status_code=status.HTTP_201_CREATED,
    summary="Submit several ratings at once",
)
async def bulk_submit_ratings(
    bulk_in: RatingBulkCreate,
    actor: CurrentActor,
    service: RatingServiceDep,
) -> SuccessResponse[list[RatingResponse]]:
    """All ratings are stored, or none are."""
    events = await service.bulk_submit_ratings(
        actor,
        [
            RatingSubmission(
                assignment_id=item.assignment_id,
                rating=item.rating,
                notes=item.notes,
            )
            for item in bulk_in.items
        ],
    )
    return SuccessResponse(
        data=[RatingResponse.model_validate(e) for e in events],
        meta={"count": len(events)},
    )


@router.post(
    "/{rating_id}/approve",
    response_model=SuccessResponse[RatingResponse],
    summary="Approve and lock a rating",
)
async def approve_rating(
    rating_id: uuid.UUID,
    actor: CurrentActor,
    service: RatingServiceDep,
) -> SuccessResponse[RatingResponse]:
    event = await service.approve_rating(actor, rating_id)
    return SuccessResponse(data=RatingResponse.model_validate(event))


@router.post(
    "/{rating_id}/change-requests",
    response_model=SuccessResponse[ChangeRequestResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Request a change to an approved rating",
)
async def request_rating_change(
    rating_id: uuid.UUID,
    request_in: ChangeRequestCreate,
    actor: CurrentActor,
    service: RatingServiceDep,
) -> SuccessResponse[ChangeRequestResponse]:
    request = await service.request_rating_change(actor, rating_id, request_in.reason)
    return SuccessResponse(data=ChangeRequestResponse.model_validate(request))


@change_requests_router.get(
    "",
    response_model=SuccessResponse[list[ChangeRequestResponse]],
    summary="List change requests",
)
async def list_change_requests(
    actor: CurrentActor,
    service: RatingServiceDep,
    status_filter: ChangeRequestStatus | None = Query(None, alias="status"),
) -> SuccessResponse[list[ChangeRequestResponse]]:
    requests = await service.list_change_requests(actor, status_filter)
    return SuccessResponse(
        data=[ChangeRequestResponse.model_validate(r) for r in requests],
        meta={"count": len(requests)},
    )


@change_requests_router.post(
    "/{request_id}/review",
    response_model=SuccessResponse[ChangeRequestResponse],
    summary="Approve or reject a change request",
)
async def review_change_request(
    request_id: uuid.UUID,
    review_in: ChangeRequestReview,
    actor: CurrentActor,
    service: RatingServiceDep,
) -> SuccessResponse[ChangeRequestResponse]:
    """
    Decide a pending change request.

    Approving it unlocks the rating so a new one can be submitted.
    """
    request = await service.review_change_request(
        actor, request_id, review_in.approved, review_in.notes
    )
    return SuccessResponse(data=ChangeRequestResponse.model_validate(request))
