"""Lore entries attached to characters."""

from fastapi import APIRouter

from ..middleware import CurrentUser, ServicesDep
from ..models import LoreRequest
from .envelope import ok

router = APIRouter(prefix="/api/lore", tags=["lore"])


@router.post("/characters/{character_id}/lore")
async def add_lore(character_id: str, body: LoreRequest, user: CurrentUser, services: ServicesDep):
    """Add lore to one of your own characters."""
    return ok(await services.lore.add(user, character_id, body.body))


@router.get("/characters/{character_id}/lore")
async def list_lore(character_id: str, services: ServicesDep):
    return ok({"lore": await services.lore.list_for(character_id)})
