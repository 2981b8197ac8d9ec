"""Service factory for dependency injection - clean environment-based setup."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from .config import Settings, settings
from .exceptions import ConfigurationError
from .providers import ImageProvider, create_image_provider
from .rate_limit import DailyRateLimiter
from .realtime import HttpRoomClient, LocalRoomClient, WorldBroadcaster, WorldRoom
from .services import (
    AuthService,
    CharacterService,
    CreationReconciler,
    CreationService,
    LeaderboardService,
    LoreService,
    WorldService,
)
from .storage import (
    BlobStore,
    KVStore,
    SQLDatabase,
    create_blob_store,
    create_database,
    create_kv,
)
from .types import HealthStatus


class Environment(Enum):
    """Explicit environment types - no magic detection."""

    DEVELOPMENT = "development"
    DOCKER = "docker"
    LAMBDA = "lambda"


def detect_environment(config: Settings | None = None) -> Environment:
    """Detect current environment with explicit logic."""
    config = config or settings
    if config.is_lambda_environment:
        return Environment.LAMBDA
    return Environment(config.environment)


@dataclass
class Services:
    """Every long-lived component of the application."""

    settings: Settings
    database: SQLDatabase
    cache: KVStore
    creations_kv: KVStore
    blobs: BlobStore
    image_provider: ImageProvider | None
    room: WorldRoom | None
    broadcaster: WorldBroadcaster
    limiter: DailyRateLimiter
    auth: AuthService
    world: WorldService
    characters: CharacterService
    creations: CreationService
    lore: LoreService
    leaderboard: LeaderboardService
    reconciler: CreationReconciler
    started: bool = field(default=False, compare=False)

    async def startup(self) -> None:
        """Initialize storage backends and restore the room snapshot."""
        await self.database.startup()
        await self.cache.startup()
        await self.creations_kv.startup()
        await self.blobs.startup()
        if self.room is not None:
            await self.room.load()
        self.started = True

    async def shutdown(self) -> None:
        """Clean shutdown of all components."""
        logger.info("Shutting down services")
        await self.broadcaster.aclose()
        if self.image_provider is not None and hasattr(self.image_provider, "aclose"):
            await self.image_provider.aclose()
        for name, component in (
            ("blob store", self.blobs),
            ("creations KV", self.creations_kv),
            ("cache KV", self.cache),
            ("database", self.database),
        ):
            try:
                await component.shutdown()
                logger.debug(f"{name} shutdown complete")
            except (ConnectionError, TimeoutError, OSError) as e:
                logger.warning(f"{name} shutdown failed: {e}")
        self.started = False

    async def health_check(self) -> HealthStatus:
        """Check health of all components."""
        return {
            "database": await self.database.health_check(),
            "cache": await self.cache.health_check() and await self.creations_kv.health_check(),
            "blobs": await self.blobs.health_check(),
            "image_provider": (
                self.image_provider is not None and await self.image_provider.health_check()
            ),
        }


def build_services(
    config: Settings,
    *,
    database: SQLDatabase | None = None,
    cache: KVStore | None = None,
    creations_kv: KVStore | None = None,
    blobs: BlobStore | None = None,
    image_provider: ImageProvider | None | Any = ...,
    room: WorldRoom | None | Any = ...,
) -> Services:
    """Wire services together. Any component can be supplied to override the default."""
    database = database or create_database(config.database_url)
    cache = cache or create_kv("cache", config.redis_url)
    creations_kv = creations_kv or create_kv("creations", config.redis_url)
    blobs = blobs or create_blob_store(config.blob_url, config.aws_region)

    if image_provider is ...:
        try:
            image_provider = create_image_provider(config)
        except ConfigurationError as e:
            logger.warning(f"Image generation disabled: {e}")
            image_provider = None

    if room is ...:
        room = None if config.world_room_url else WorldRoom(cache)
    if room is not None:
        room_client: Any = LocalRoomClient(room)
    else:
        room_client = HttpRoomClient(config.world_room_url or "", config.admin_token)
    broadcaster = WorldBroadcaster(room_client)

    limiter = DailyRateLimiter(cache)
    auth = AuthService(
        database,
        session_ttl_seconds=config.session_ttl_seconds,
        allow_unsigned_signup=config.allow_unsigned_signup,
        bcrypt_rounds=config.bcrypt_rounds,
    )
    world = WorldService(
        database,
        cache,
        broadcaster,
        cache_ttl=config.world_cache_ttl,
        update_attempts=config.world_update_attempts,
        update_base_delay=config.world_update_base_delay,
    )
    characters = CharacterService(database, limiter, world, broadcaster)
    creations = CreationService(
        database,
        creations_kv,
        blobs,
        limiter,
        image_provider,
        characters,
        world,
        broadcaster,
        image_max_attempts=config.image_max_attempts,
        image_retry_base_delay=config.image_retry_base_delay,
    )
    lore = LoreService(database, characters)
    leaderboard = LeaderboardService(
        database,
        cache,
        cache_ttl=config.leaderboard_cache_ttl,
        user_stats_ttl=config.user_stats_cache_ttl,
    )
    reconciler = CreationReconciler(database, creations_kv, blobs, creations, characters)

    return Services(
        settings=config,
        database=database,
        cache=cache,
        creations_kv=creations_kv,
        blobs=blobs,
        image_provider=image_provider,
        room=room,
        broadcaster=broadcaster,
        limiter=limiter,
        auth=auth,
        world=world,
        characters=characters,
        creations=creations,
        lore=lore,
        leaderboard=leaderboard,
        reconciler=reconciler,
    )


class ServiceFactory:
    """Factory for creating configured Services instances."""

    @staticmethod
    async def create_for_environment(config: Settings | None = None) -> Services:
        """Create and start services for the current environment."""
        config = config or settings
        env = detect_environment(config)
        logger.info(f"Creating services for environment: {env.value}")

        if env == Environment.LAMBDA and not config.redis_url:
            logger.warning(
                "Lambda without DROPLETS_REDIS_URL: daily limits and caches are per instance"
            )

        services = build_services(config)
        await services.startup()
        logger.info(f"Services created successfully for {env.value}")
        return services

    @staticmethod
    async def shutdown_services(services: Services) -> None:
        await services.shutdown()
