"""World state: aggregate counters, milestones, event feed and admin controls."""

import json
import random
from typing import Any, Literal

import sqlalchemy as sa
from loguru import logger

from .. import game
from ..exceptions import ValidationError
from ..realtime import WorldBroadcaster
from ..retry import retry_call
from ..storage import KVStore, SQLDatabase
from ..storage.schema import characters, events, now_iso, row_to_dict, world_state
from ..types import WorldStateRecord

WORLD_STATE_CACHE_KEY = "world_state"

Counter = Literal["total_characters", "total_waters"]


def default_world_state() -> WorldStateRecord:
    return {
        "id": 1,
        "total_characters": 0,
        "total_waters": 0,
        "season": "spring",
        "last_milestone_reached": 0,
        "current_phase": "day",
        "updated_at": now_iso(),
    }


class WorldService:
    """Reads and updates the ``world_state`` singleton and the events feed."""

    def __init__(
        self,
        database: SQLDatabase,
        cache: KVStore,
        broadcaster: WorldBroadcaster,
        cache_ttl: int = 60,
        update_attempts: int = 3,
        update_base_delay: float = 0.1,
    ) -> None:
        self.db = database.database
        self.cache = cache
        self.broadcaster = broadcaster
        self.cache_ttl = cache_ttl
        self.update_attempts = update_attempts
        self.update_base_delay = update_base_delay

    async def get_state(self) -> WorldStateRecord:
        """World state, served from the cache when fresh."""
        cached = await self.cache.get_json(WORLD_STATE_CACHE_KEY)
        if cached:
            return cached

        row = await self.db.fetch_one(world_state.select().where(world_state.c.id == 1))
        if row is None:
            state = default_world_state()
            await self.db.execute(
                world_state.insert().prefix_with("OR IGNORE", dialect="sqlite").values(**state)
            )
            logger.info("World state was missing and has been initialized")
        else:
            state = row_to_dict(row, world_state)  # type: ignore[assignment]

        await self.cache.put_json(WORLD_STATE_CACHE_KEY, state, ttl=self.cache_ttl)
        return state

    async def invalidate_cache(self) -> None:
        try:
            await self.cache.delete(WORLD_STATE_CACHE_KEY)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to invalidate world state cache: {e}")

    async def _increment(self, counter: Counter) -> None:
        column = world_state.c[counter]
        await self.db.execute(
            world_state.update()
            .where(world_state.c.id == 1)
            .values({counter: column + 1, "updated_at": now_iso()})
        )

    async def bump(self, counter: Counter) -> bool:
        """Add one to a counter, retrying, then invalidate the cache.

        Failures are logged and reported through the return value only.
        """
        try:
            await retry_call(
                self._increment,
                counter,
                label=f"World state {counter} update",
                attempts=self.update_attempts,
                base_delay=self.update_base_delay,
            )
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to update world state {counter}: {e}")
            return False
        finally:
            await self.invalidate_cache()
        return True

    async def record_event(self, event_type: str, payload: dict[str, Any]) -> None:
        """Append to the events feed. Best effort."""
        try:
            await self.db.execute(
                events.insert().values(
                    type=event_type, payload=json.dumps(payload), created_at=now_iso()
                )
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to record {event_type} event: {e}")

    async def list_events(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        rows = await self.db.fetch_all(
            events.select().order_by(events.c.id.desc()).limit(limit).offset(offset)
        )
        result = []
        for row in rows:
            event = row_to_dict(row, events)
            try:
                event["payload"] = json.loads(event["payload"])
            except (TypeError, json.JSONDecodeError):
                pass
            result.append(event)
        return result

    async def milestones(self) -> dict[str, Any]:
        row = await self.db.fetch_one(
            sa.select(world_state.c.total_characters, world_state.c.last_milestone_reached).where(
                world_state.c.id == 1
            )
        )
        total = row["total_characters"] if row else 0
        return {
            "milestones": game.milestones_status(total),
            "current_characters": total,
            "last_milestone": row["last_milestone_reached"] if row else 0,
        }

    async def set_season(self, season: str | None, phase: str | None) -> dict[str, str | None]:
        """Change season and/or phase, then announce it.

        Raises:
            ValidationError: Neither value is a known season or phase.
        """
        updates: dict[str, Any] = {}
        if season in game.SEASONS:
            updates["season"] = season
        if phase in game.PHASES:
            updates["current_phase"] = phase
        if not updates:
            raise ValidationError("No valid updates provided")

        await self.db.execute(
            world_state.update()
            .where(world_state.c.id == 1)
            .values(**updates, updated_at=now_iso())
        )
        await self.invalidate_cache()

        payload = {"season": updates.get("season"), "phase": updates.get("current_phase")}
        await self.record_event("season_change", payload)
        self.broadcaster.publish("season_change", payload)
        logger.info(f"World season/phase updated: {payload}")
        return payload

    async def fix_overlaps(self, rng: random.Random | None = None) -> dict[str, Any]:
        """Spread every character out so none sits closer than the minimum spacing."""
        rows = await self.db.fetch_all(
            sa.select(characters.c.id).order_by(characters.c.created_at)
        )
        if not rows:
            return {"updated": 0, "message": "No characters found"}

        positions = game.spread_positions(len(rows), rng)
        async with self.db.transaction():
            for row, (x, y) in zip(rows, positions, strict=True):
                await self.db.execute(
                    characters.update()
                    .where(characters.c.id == row["id"])
                    .values(x=x, y=y, updated_at=now_iso())
                )
        await self.invalidate_cache()

        return {
            "updated": len(rows),
            "message": (
                f"Successfully redistributed {len(rows)} characters "
                f"with {game.MIN_SPACING}px minimum spacing"
            ),
        }
