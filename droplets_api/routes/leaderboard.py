"""Leaderboards and per-user stats."""

from fastapi import APIRouter, Query

from ..middleware import ServicesDep
from ..services.leaderboard import DEFAULT_LIMIT, LEADERBOARD_TYPES
from .envelope import ok

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("")
async def leaderboard(
    services: ServicesDep,
    board: str = Query("creators", alias="type", description=" | ".join(LEADERBOARD_TYPES)),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
):
    """Ranked creators, gardeners or most-watered characters."""
    return ok(await services.leaderboard.get(board, limit))


@router.get("/user/{address}")
async def user_stats(address: str, services: ServicesDep):
    return ok(await services.leaderboard.user_stats(address))
