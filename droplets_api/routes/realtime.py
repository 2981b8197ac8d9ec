"""World room WebSocket and the inbound relay used by other instances."""

from fastapi import APIRouter, Depends, WebSocket, status

from ..exceptions import ConfigurationError
from ..middleware import ServicesDep, require_admin
from ..models import BroadcastRequest
from .envelope import ok

router = APIRouter(tags=["realtime"])


@router.websocket("/api/realtime")
async def realtime(websocket: WebSocket):
    """Join the world room and receive every world event."""
    services = getattr(websocket.app.state, "services", None)
    room = services.room if services else None
    if room is None:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return
    await room.serve(websocket)


@router.post("/api/realtime/broadcast", dependencies=[Depends(require_admin)])
async def broadcast(body: BroadcastRequest, services: ServicesDep):
    """Deliver an event published by another instance to this instance's room."""
    if services.room is None:
        raise ConfigurationError("No world room runs on this instance")
    await services.room.broadcast({"type": body.type, "payload": body.payload})
    return ok({"delivered_to": services.room.connection_count})
