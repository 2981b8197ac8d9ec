"""Daily creations and their images."""

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import JSONResponse

from ..middleware import CurrentUser, ServicesDep
from ..models import CreationRequest, RenameRequest
from ..services.creations import IMAGE_CACHE_CONTROL, IMAGE_CONTENT_TYPE
from .envelope import ok

router = APIRouter(prefix="/api/creations", tags=["creations"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_creation(
    request: Request,
    user: CurrentUser,
    services: ServicesDep,
    body: CreationRequest | None = None,
) -> JSONResponse:
    """Generate today's creation.

    Returns 201 with the creation record, or 429 when today's slot is used.
    """
    body = body or CreationRequest()
    base_url = services.settings.public_base_url or str(request.base_url)
    record = await services.creations.create(user, base_url, level=body.level, wallet=body.wallet)
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=ok(record))


@router.get("/can-create")
async def can_create(user: CurrentUser, services: ServicesDep):
    return ok(await services.creations.can_create(user))


@router.get("/{creation_id}")
async def get_creation(creation_id: str, services: ServicesDep):
    return ok(await services.creations.get(creation_id))


@router.get("/{creation_id}/image")
async def get_creation_image(
    creation_id: str,
    services: ServicesDep,
    w: str | None = Query(None, description="Requested width; images are served as stored"),
) -> Response:
    """Serve the stored PNG."""
    blob = await services.creations.get_image(creation_id)
    headers = {"Cache-Control": blob.cache_control or IMAGE_CACHE_CONTROL}
    if blob.etag:
        headers["ETag"] = blob.etag
    return Response(
        content=blob.body,
        media_type=blob.content_type or IMAGE_CONTENT_TYPE,
        headers=headers,
    )


@router.put("/{creation_id}/name")
async def rename_creation(
    creation_id: str, body: RenameRequest, user: CurrentUser, services: ServicesDep
):
    """Rename a creation. Only its owner may do so."""
    return ok(await services.creations.rename(user, creation_id, body.name))
