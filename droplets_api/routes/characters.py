"""Character roster, minting and watering."""

from fastapi import APIRouter, Query

from ..middleware import CurrentUser, ServicesDep
from .envelope import ok

router = APIRouter(prefix="/api/characters", tags=["characters"])

MAX_PAGE_SIZE = 100


@router.post("/mint")
async def mint(user: CurrentUser, services: ServicesDep):
    """Mint today's character."""
    return ok(await services.characters.mint(user))


@router.post("/{character_id}/water")
async def water(character_id: str, user: CurrentUser, services: ServicesDep):
    """Water a character; once per user, character and UTC day."""
    return ok(await services.characters.water(user, character_id))


@router.get("")
async def list_characters(
    services: ServicesDep,
    cursor: str | None = Query(None, description="created_at of the last item seen"),
    limit: int = Query(50, ge=1),
):
    characters = await services.characters.list_characters(cursor, min(limit, MAX_PAGE_SIZE))
    next_cursor = characters[-1]["created_at"] if characters else None
    return ok({"characters": characters, "next_cursor": next_cursor})
