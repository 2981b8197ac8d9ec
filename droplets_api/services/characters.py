"""Characters: minting, watering and the public roster."""

import json
import random
import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from loguru import logger

from .. import game
from ..exceptions import NotFoundError, RateLimitExceededError, StorageError
from ..rate_limit import DailyRateLimiter
from ..realtime import WorldBroadcaster
from ..storage import SQLDatabase
from ..storage.schema import characters, now_iso, row_to_dict, users, waters
from ..types import CharacterRecord, UserRecord, WaterResult
from .world import WorldService


def character_payload(character: CharacterRecord) -> dict[str, Any]:
    """JSON-friendly character with the palette decoded."""
    data = dict(character)
    palette = data.get("color_palette")
    if isinstance(palette, str):
        try:
            data["color_palette"] = json.loads(palette)
        except json.JSONDecodeError:
            pass
    data["is_legendary"] = bool(data.get("is_legendary"))
    return data


def daily_limit_message(limiter: DailyRateLimiter) -> str:
    reset = limiter.next_reset().isoformat()
    return f"You have already made a creation today. Try again after {reset}"


class CharacterService:
    """Character rows and their water/level lifecycle."""

    def __init__(
        self,
        database: SQLDatabase,
        limiter: DailyRateLimiter,
        world: WorldService,
        broadcaster: WorldBroadcaster,
        rng: random.Random | None = None,
    ) -> None:
        self.db = database.database
        self.limiter = limiter
        self.world = world
        self.broadcaster = broadcaster
        self.rng = rng or random.Random()

    def new_character(
        self,
        owner: UserRecord,
        *,
        character_id: str | None = None,
        level: int = 1,
        name: str | None = None,
        wallet: str | None = None,
        sprite_seed: str | None = None,
        image_url: str | None = None,
        roll_rarity: bool = True,
    ) -> CharacterRecord:
        """Build a fresh level ``level`` character for ``owner``."""
        is_legendary = roll_rarity and game.roll_legendary(self.rng)
        palette = (
            game.color_palette(is_legendary, self.rng)
            if roll_rarity
            else json.dumps(game.DEFAULT_PALETTE)
        )
        x, y = game.spawn_position(self.rng)
        now = now_iso()
        return {
            "id": character_id or str(uuid.uuid4()),
            "owner_user_id": owner["id"],
            "wallet_address": wallet or owner["solana_address"],
            "name": name or game.character_name(self.rng),
            "is_legendary": is_legendary,
            "x": x,
            "y": y,
            "level": level,
            "water_count": 0,
            "sprite_seed": sprite_seed or str(uuid.uuid4()),
            "color_palette": palette,
            "image_url": image_url,
            "created_at": now,
            "updated_at": now,
        }

    async def insert(self, character: CharacterRecord) -> bool:
        """Insert a character row unless one with the same id exists.

        Returns:
            True when a new row was written.
        """
        exists = await self.db.fetch_val(
            sa.select(sa.func.count()).select_from(characters).where(
                characters.c.id == character["id"]
            )
        )
        await self.db.execute(
            characters.insert().prefix_with("OR IGNORE", dialect="sqlite").values(**character)
        )
        return not exists

    async def get(self, character_id: str) -> CharacterRecord:
        row = await self.db.fetch_one(characters.select().where(characters.c.id == character_id))
        if row is None:
            raise NotFoundError("Character not found")
        return row_to_dict(row, characters)  # type: ignore[return-value]

    async def rename(self, character_id: str, name: str) -> None:
        await self.db.execute(
            characters.update()
            .where(characters.c.id == character_id)
            .values(name=name, updated_at=now_iso())
        )

    async def delete(self, character_id: str) -> None:
        await self.db.execute(characters.delete().where(characters.c.id == character_id))

    async def mint(self, user: UserRecord) -> dict[str, Any]:
        """Mint today's character for ``user``.

        Raises:
            RateLimitExceededError: The user already created something today.
            StorageError: The character row could not be written.
        """
        slot = await self.limiter.acquire(user["id"])
        if slot is None:
            raise RateLimitExceededError(daily_limit_message(self.limiter))

        character = self.new_character(user)
        try:
            await self.insert(character)
        except Exception as e:
            await self.limiter.release(slot)
            logger.error(f"Failed to insert minted character: {e}")
            raise StorageError(f"Failed to mint character: {e}") from e

        logger.info(
            f"Minted character {character['id']} ({character['name']}) "
            f"legendary={character['is_legendary']}"
        )
        await self.world.bump("total_characters")
        payload = character_payload(character)
        await self.world.record_event("character_spawn", payload)
        self.broadcaster.publish("character_spawn", payload)
        return payload

    async def water(self, user: UserRecord, character_id: str) -> WaterResult:
        """Water a character once per user per UTC day.

        Raises:
            NotFoundError: Unknown character.
            RateLimitExceededError: Already watered by this user today.
        """
        character = await self.get(character_id)
        water_id = str(uuid.uuid4())
        today = datetime.now(UTC).date().isoformat()

        async with self.db.transaction():
            await self.db.execute(
                waters.insert()
                .prefix_with("OR IGNORE", dialect="sqlite")
                .values(
                    id=water_id,
                    user_id=user["id"],
                    character_id=character_id,
                    water_date=today,
                    created_at=now_iso(),
                )
            )
            inserted = await self.db.fetch_val(
                sa.select(sa.func.count()).select_from(waters).where(waters.c.id == water_id)
            )
            if not inserted:
                raise RateLimitExceededError("Already watered today")

            await self.db.execute(
                characters.update()
                .where(characters.c.id == character_id)
                .values(water_count=characters.c.water_count + 1, updated_at=now_iso())
            )
            row = await self.db.fetch_one(
                sa.select(characters.c.water_count, characters.c.level).where(
                    characters.c.id == character_id
                )
            )
            water_count = row["water_count"]
            level = game.level_for_waters(water_count, row["level"])
            if level != row["level"]:
                await self.db.execute(
                    characters.update().where(characters.c.id == character_id).values(level=level)
                )

        leveled_up = level > character["level"]
        await self.world.bump("total_waters")

        event_type = "level_up" if leveled_up else "water"
        payload = {
            "character_id": character_id,
            "water_count": water_count,
            "level": level,
            "user_id": user["id"],
        }
        await self.world.record_event(event_type, payload)
        self.broadcaster.publish(event_type, payload)
        return {"water_count": water_count, "level": level, "leveled_up": leveled_up}

    async def list_characters(
        self, cursor: str | None = None, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Characters newest first, with the owner's username.

        Args:
            cursor: ``created_at`` of the last character of the previous page.
            limit: Page size.
        """
        query = (
            sa.select(characters, users.c.username.label("owner_username"))
            .select_from(characters.outerjoin(users, characters.c.owner_user_id == users.c.id))
            .order_by(characters.c.created_at.desc())
            .limit(limit)
        )
        if cursor:
            query = query.where(characters.c.created_at < cursor)
        rows = await self.db.fetch_all(query)
        return [character_payload(row_to_dict(row, characters, "owner_username")) for row in rows]
