"""Score and leaderboard endpoints."""

import uuid

from fastapi import APIRouter, Query

from api.deps import CurrentActor, ScoreServiceDep
from api.permissions import Role
from api.schemas.responses import SuccessResponse
from api.schemas.score import LeaderboardResponse, LeaderboardRow, UserScoreResponse
from worker.scoring.ranking import find_rank

router = APIRouter(tags=["scores"])


@router.get(
    "/scores/users/{user_id}",
    response_model=SuccessResponse[UserScoreResponse],
    summary="Get a user's score breakdown",
)
async def get_user_score(
    user_id: uuid.UUID,
    actor: CurrentActor,
    service: ScoreServiceDep,
) -> SuccessResponse[UserScoreResponse]:
    """
    Composite score for one user.

    Users can always read their own score; managers can read anyone's.
    """
    user, breakdown = await service.compute_user_score(actor, user_id)
    return SuccessResponse(
        data=UserScoreResponse.from_breakdown(user.id, user.name, user.role, breakdown)
    )


@router.get(
    "/leaderboard",
    response_model=SuccessResponse[LeaderboardResponse],
    summary="Get the leaderboard for a role cohort",
)
async def get_leaderboard(
    actor: CurrentActor,
    service: ScoreServiceDep,
    role: Role | None = Query(None, description="Cohort role; defaults to the viewer's"),
) -> SuccessResponse[LeaderboardResponse]:
    entries = await service.leaderboard(actor, role)
    return SuccessResponse(
        data=LeaderboardResponse(
            role=str(role or actor.role),
            entries=[LeaderboardRow.from_entry(e) for e in entries],
            viewer_rank=find_rank(entries, actor.id),
        ),
        meta={"count": len(entries)},
    )
