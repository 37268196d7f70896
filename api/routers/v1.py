"""V1 API router - aggregates all versioned endpoints."""

from fastapi import APIRouter

from api.routers import ratings, scores

router = APIRouter()

# Rating workflow endpoints
router.include_router(ratings.router)
router.include_router(ratings.change_requests_router)

# Score and leaderboard endpoints
router.include_router(scores.router)


@router.get("/")
async def v1_root() -> dict[str, str]:
    """V1 API root endpoint."""
    return {
        "version": "1",
        "status": "active",
    }
