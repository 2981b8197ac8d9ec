"""Daily creation workflow.

A creation fans out over three stores (image blob, creations KV record and a
``characters`` row). Those writes cannot share a transaction, so every
creation is tracked by a row in ``creation_intents``:

    pending     slot claimed, image being generated
    persisting  image generated, record known, stores being written
    completed   all stores written
    failed      generation failed, slot given back
    abandoned   cleaned up by the reconciler

Every store write is idempotent (blob overwrite, KV put, ``INSERT OR IGNORE``),
so an intent left in ``persisting`` can be finished later by
``CreationReconciler``.
"""

import json
import re
import secrets
import string
from typing import Any

from loguru import logger

from ..exceptions import (
    AuthorizationError,
    ConfigurationError,
    ImageProviderError,
    NotFoundError,
    RateLimitExceededError,
    StorageError,
    ValidationError,
)
from ..game import character_name
from ..providers import GenInput, ImageProvider, generate_seed, generate_with_retry
from ..rate_limit import DailyRateLimiter
from ..realtime import WorldBroadcaster
from ..storage import BlobObject, BlobStore, KVStore, SQLDatabase
from ..storage.schema import creation_intents, now_iso
from ..types import CreationRecord, IntentStatus, UserRecord
from .characters import CharacterService, character_payload, daily_limit_message
from .world import WorldService

CREATION_ID_PREFIX = "cr_"
ID_ALPHABET = string.ascii_letters + string.digits
CREATION_ID_PATTERN = re.compile(r"cr_[A-Za-z0-9]{10}")
IMAGE_CONTENT_TYPE = "image/png"
IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class ImageServiceNotConfiguredError(ConfigurationError):
    public_message = "Image generation service not configured"


def generate_creation_id() -> str:
    return CREATION_ID_PREFIX + "".join(secrets.choice(ID_ALPHABET) for _ in range(10))


def image_key(creation_id: str) -> str:
    return f"{creation_id}.png"


def image_path(creation_id: str) -> str:
    return f"/api/creations/{creation_id}/image"


def check_creation_id(creation_id: str) -> None:
    if not CREATION_ID_PATTERN.fullmatch(creation_id):
        raise ValidationError("Invalid creation ID")


class CreationService:
    """Generates, persists and serves daily creations."""

    def __init__(
        self,
        database: SQLDatabase,
        creations_kv: KVStore,
        blobs: BlobStore,
        limiter: DailyRateLimiter,
        image_provider: ImageProvider | None,
        characters: CharacterService,
        world: WorldService,
        broadcaster: WorldBroadcaster,
        image_max_attempts: int = 3,
        image_retry_base_delay: float = 1.0,
    ) -> None:
        self.db = database.database
        self.creations_kv = creations_kv
        self.blobs = blobs
        self.limiter = limiter
        self.image_provider = image_provider
        self.characters = characters
        self.world = world
        self.broadcaster = broadcaster
        self.image_max_attempts = image_max_attempts
        self.image_retry_base_delay = image_retry_base_delay

    async def _write_intent(self, creation_id: str, user_id: str) -> None:
        now = now_iso()
        await self.db.execute(
            creation_intents.insert().values(
                id=creation_id,
                user_id=user_id,
                status="pending",
                record=None,
                error=None,
                announced=False,
                created_at=now,
                updated_at=now,
            )
        )

    async def set_intent_status(
        self,
        creation_id: str,
        status: IntentStatus,
        *,
        record: CreationRecord | None = None,
        error: str | None = None,
    ) -> None:
        values: dict[str, Any] = {"status": status, "updated_at": now_iso()}
        if record is not None:
            values["record"] = json.dumps(record)
        if error is not None:
            values["error"] = error[:1000]
        await self.db.execute(
            creation_intents.update().where(creation_intents.c.id == creation_id).values(**values)
        )

    async def create(
        self,
        user: UserRecord,
        base_url: str,
        level: int = 1,
        wallet: str | None = None,
    ) -> CreationRecord:
        """Generate and store today's creation for ``user``.

        Raises:
            ImageServiceNotConfiguredError: No image provider is configured.
            RateLimitExceededError: The daily slot is already used.
            ImageProviderError: Generation failed after all attempts (slot released).
            StorageError: Persisting failed (slot kept, intent left for reconciliation).
        """
        if level not in (1, 2, 3):
            raise ValidationError("Level must be 1, 2, or 3")
        if self.image_provider is None:
            raise ImageServiceNotConfiguredError("Image generation service not configured")

        slot = await self.limiter.acquire(user["id"])
        if slot is None:
            raise RateLimitExceededError(daily_limit_message(self.limiter))

        creation_id = generate_creation_id()
        try:
            await self._write_intent(creation_id, user["id"])
        except Exception as e:
            await self.limiter.release(slot)
            raise StorageError(f"Failed to record creation intent: {e}") from e

        seed = generate_seed(f"{wallet or user['id']}_{creation_id}_{now_iso()}")
        logger.info(f"Generating creation {creation_id} with seed {seed[:8]}... at level {level}")

        try:
            output = await generate_with_retry(
                self.image_provider,
                GenInput(seed=seed, level=level),
                attempts=self.image_max_attempts,
                base_delay=self.image_retry_base_delay,
            )
        except ImageProviderError as e:
            logger.error(f"Creation {creation_id} generation failed: {e}")
            await self.limiter.release(slot)
            await self._mark_failed(creation_id, str(e))
            raise

        base = base_url.rstrip("/")
        record: CreationRecord = {
            "id": creation_id,
            "level": level,
            "seed": seed,
            "image_key": image_key(creation_id),
            "image_url": f"{base}{image_path(creation_id)}",
            "preview_url": f"{base}{image_path(creation_id)}?w=512",
            "traits": output.traits,
            "wallet": wallet,
            "user_id": user["id"],
            "name": character_name(self.characters.rng),
            "created_at": now_iso(),
        }

        try:
            await self.set_intent_status(creation_id, "persisting", record=record)
            await self.blobs.put(
                record["image_key"],
                output.png,
                content_type=IMAGE_CONTENT_TYPE,
                cache_control=IMAGE_CACHE_CONTROL,
            )
            await self.persist_record(record, user)
            await self.set_intent_status(creation_id, "completed")
        except Exception as e:
            logger.error(f"Creation {creation_id} could not be persisted: {e}")
            await self._note_intent_error(creation_id, str(e))
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"Failed to persist creation {creation_id}: {e}") from e

        logger.info(f"Creation {creation_id} generated successfully")
        await self.announce(record)
        await self.mark_announced(creation_id)
        return record

    async def _mark_failed(self, creation_id: str, error: str) -> None:
        try:
            await self.set_intent_status(creation_id, "failed", error=error)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Could not mark creation intent {creation_id} failed: {e}")

    async def _note_intent_error(self, creation_id: str, error: str) -> None:
        try:
            await self.db.execute(
                creation_intents.update()
                .where(creation_intents.c.id == creation_id)
                .values(error=error[:1000], updated_at=now_iso())
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Could not note error on creation intent {creation_id}: {e}")

    async def persist_record(self, record: CreationRecord, owner: UserRecord) -> bool:
        """Write the KV record and the character row. Safe to repeat.

        Returns:
            True when the character row was newly inserted.
        """
        await self.creations_kv.put_json(record["id"], record)
        character = self.characters.new_character(
            owner,
            character_id=record["id"],
            level=record["level"],
            name=record["name"],
            wallet=record["wallet"],
            sprite_seed=record["seed"],
            image_url=image_path(record["id"]),
            roll_rarity=False,
        )
        return await self.characters.insert(character)

    async def announce(self, record: CreationRecord) -> None:
        """Update world counters, the event feed and live clients."""
        await self.world.bump("total_characters")
        try:
            character = character_payload(await self.characters.get(record["id"]))
        except NotFoundError:
            character = {"id": record["id"], "name": record["name"], "level": record["level"]}
        payload = {**character, "creation": record}
        await self.world.record_event("character_spawn", payload)
        self.broadcaster.publish("character_spawn", payload)

    async def mark_announced(self, creation_id: str) -> None:
        """Record that ``announce`` ran, so the reconciler does not repeat it."""
        try:
            await self.db.execute(
                creation_intents.update()
                .where(creation_intents.c.id == creation_id)
                .values(announced=True, updated_at=now_iso())
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Could not mark creation intent {creation_id} announced: {e}")

    async def can_create(self, user: UserRecord) -> dict[str, Any]:
        return {
            "can_create": await self.limiter.can_create(user["id"]),
            "next_reset": self.limiter.next_reset().isoformat(),
        }

    async def get(self, creation_id: str) -> CreationRecord:
        check_creation_id(creation_id)
        record = await self.creations_kv.get_json(creation_id)
        if not record:
            raise NotFoundError("Creation not found")
        return record

    async def get_image(self, creation_id: str) -> BlobObject:
        check_creation_id(creation_id)
        blob = await self.blobs.get(image_key(creation_id))
        if blob is None:
            raise NotFoundError("Image not found")
        return blob

    async def rename(self, user: UserRecord, creation_id: str, name: str) -> CreationRecord:
        """Rename a creation owned by ``user``.

        Raises:
            NotFoundError: Unknown creation.
            AuthorizationError: The creation belongs to someone else.
        """
        record = await self.get(creation_id)
        if record.get("user_id") != user["id"]:
            raise AuthorizationError("You can only rename your own creations")

        record["name"] = name
        await self.creations_kv.put_json(creation_id, record)
        await self.characters.rename(creation_id, name)
        logger.info(f"Creation {creation_id} renamed")
        return record
