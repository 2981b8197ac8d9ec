"""FastAPI application, lifecycle and exception handlers."""

import asyncio
import contextlib
import sys
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import settings
from .exceptions import DropletsAPIError
from .factory import ServiceFactory, detect_environment
from .middleware import ServicesDep, add_request_id, limiter
from .routes import router


def configure_logging() -> None:
    """Configure logging - should be called at startup, not import time."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.log_level,
        serialize=False,
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level=settings.log_level,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    configure_logging()

    services = await ServiceFactory.create_for_environment()
    app.state.services = services

    rotation: asyncio.Task | None = None
    if services.room is not None and settings.phase_rotation_seconds > 0:
        rotation = asyncio.create_task(
            services.room.run_phase_rotation(settings.phase_rotation_seconds)
        )

    logger.info("Application started successfully")

    yield

    if rotation is not None:
        rotation.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await rotation
    await ServiceFactory.shutdown_services(services)
    app.state.services = None
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Droplets API",
    version=__version__,
    description="Daily AI-generated creations for the Droplets of Creation world",
    lifespan=lifespan,
)

app.middleware("http")(add_request_id)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.state.limiter = limiter  # Required by slowapi


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle validation errors with clean messages."""
    error_messages = []

    for error in exc.errors():
        field = error["loc"][-1] if error["loc"] else "field"
        message = error.get("msg", f"Invalid {field}")

        match error["type"]:
            case "missing":
                message = f"Required field '{field}' is missing"
            case "json_invalid":
                message = "Invalid JSON format"

        error_messages.append(message)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "; ".join(error_messages)},
    )


app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]


@app.exception_handler(DropletsAPIError)
async def droplets_api_exception_handler(request: Request, exc: DropletsAPIError) -> JSONResponse:
    """Render domain errors in the response envelope."""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Request limit hit on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"success": False, "error": f"Rate limit exceeded: {exc.detail}"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"},
    )


app.include_router(router)


@app.get("/health", tags=["health"])
async def health_endpoint(
    response: Response,
    services: ServicesDep,
    detailed: bool = Query(False, description="Include detailed environment information"),
) -> dict[str, Any]:
    """Check health status of all components.

    Args:
        detailed: If True, includes version and environment information.

    """
    component_status = await services.health_check()
    all_healthy = all(component_status.values())

    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    result: dict[str, Any] = {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": component_status,
    }

    if detailed:
        result["version"] = __version__
        result["environment"] = {
            "environment": detect_environment(services.settings).value,
            "realtime": "local" if services.room is not None else "relay",
            "rate_limit": services.settings.rate_limit,
        }

    return result


@app.get("/", tags=["health"])
async def root_endpoint() -> dict[str, str]:
    """API information endpoint."""
    return {
        "name": "Droplets API",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
    }


app.openapi_tags = [
    {"name": "auth", "description": "Accounts and sessions"},
    {"name": "characters", "description": "Minting, watering and the roster"},
    {"name": "creations", "description": "Daily AI-generated creations"},
    {"name": "lore", "description": "Character lore"},
    {"name": "leaderboard", "description": "Rankings and per-user stats"},
    {"name": "world", "description": "World state and admin operations"},
    {"name": "realtime", "description": "World room"},
    {"name": "health", "description": "Health checks"},
]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    return app
