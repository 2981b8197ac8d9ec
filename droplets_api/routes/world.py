"""World state, milestones, event feed and admin operations."""

from fastapi import APIRouter, Depends, Query

from ..middleware import ServicesDep, require_admin
from ..models import SeasonRequest
from .envelope import ok

router = APIRouter(prefix="/api/world", tags=["world"])


@router.get("/state")
async def world_state(services: ServicesDep):
    """Current world counters, season and phase."""
    return ok(await services.world.get_state())


@router.get("/milestones")
async def milestones(services: ServicesDep):
    return ok(await services.world.milestones())


@router.get("/events")
async def events(
    services: ServicesDep,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """World events, newest first."""
    return ok({"events": await services.world.list_events(limit, offset)})


@router.post("/admin/season", dependencies=[Depends(require_admin)])
async def set_season(body: SeasonRequest, services: ServicesDep):
    return ok(await services.world.set_season(body.season, body.phase))


@router.post("/admin/reconcile", dependencies=[Depends(require_admin)])
async def reconcile(
    services: ServicesDep,
    older_than: int | None = Query(None, ge=0, description="Minimum intent age in seconds"),
):
    """Finish or abandon creations interrupted mid-way."""
    if older_than is None:
        older_than = services.settings.reconcile_after_seconds
    return ok(await services.reconciler.run(older_than))


@router.post("/admin/fix-overlaps", dependencies=[Depends(require_admin)])
async def fix_overlaps(services: ServicesDep):
    """Spread characters out so none overlap."""
    return ok(await services.world.fix_overlaps())
