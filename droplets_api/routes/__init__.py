"""HTTP and WebSocket endpoints.

Endpoint groups: auth, characters, creations, lore, leaderboard, world (with
admin operations under /api/world/admin) and realtime. JSON endpoints answer with
the ``{success, data}`` envelope; errors are rendered by the exception
handlers in ``droplets_api.api``.
"""

from fastapi import APIRouter

from .auth import router as auth_router
from .characters import router as characters_router
from .creations import router as creations_router
from .leaderboard import router as leaderboard_router
from .lore import router as lore_router
from .realtime import router as realtime_router
from .world import router as world_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(characters_router)
router.include_router(creations_router)
router.include_router(lore_router)
router.include_router(leaderboard_router)
router.include_router(world_router)
router.include_router(realtime_router)
