"""Leaderboards and per-user stats.

Results are cached in the ``cache`` KV and expire on their own; nothing
invalidates them early.
"""

from typing import Any

import sqlalchemy as sa
from loguru import logger

from ..exceptions import NotFoundError, ValidationError
from ..storage import KVStore, SQLDatabase
from ..storage.schema import characters, lore_entries, users, waters

DEFAULT_LIMIT = 50
MAX_LIMIT = 100

_legendary = sa.func.sum(sa.case((characters.c.is_legendary == sa.true(), 1), else_=0))


def _creators(limit: int) -> sa.Select:
    character_count = sa.func.count(characters.c.id).label("character_count")
    legendary_count = _legendary.label("legendary_count")
    return (
        sa.select(users.c.username, users.c.solana_address, character_count, legendary_count)
        .select_from(users.join(characters, characters.c.owner_user_id == users.c.id))
        .group_by(users.c.id)
        .order_by(character_count.desc(), legendary_count.desc(), users.c.username)
        .limit(limit)
    )


def _gardeners(limit: int) -> sa.Select:
    waters_given = sa.func.count(waters.c.id).label("waters_given")
    return (
        sa.select(users.c.username, users.c.solana_address, waters_given)
        .select_from(users.join(waters, waters.c.user_id == users.c.id))
        .group_by(users.c.id)
        .order_by(waters_given.desc(), users.c.username)
        .limit(limit)
    )


def _loved(limit: int) -> sa.Select:
    return (
        sa.select(
            characters.c.name,
            characters.c.id,
            characters.c.water_count,
            characters.c.level,
            characters.c.is_legendary,
            users.c.username.label("owner_username"),
            users.c.solana_address.label("owner_address"),
        )
        .select_from(characters.outerjoin(users, characters.c.owner_user_id == users.c.id))
        .order_by(characters.c.water_count.desc(), characters.c.level.desc(), characters.c.id)
        .limit(limit)
    )


QUERIES = {"creators": _creators, "gardeners": _gardeners, "loved": _loved}
LEADERBOARD_TYPES = tuple(QUERIES)

COLUMNS = {
    "creators": ("username", "solana_address", "character_count", "legendary_count"),
    "gardeners": ("username", "solana_address", "waters_given"),
    "loved": (
        "name",
        "id",
        "water_count",
        "level",
        "is_legendary",
        "owner_username",
        "owner_address",
    ),
}


class LeaderboardService:
    """Rankings of creators, gardeners and characters."""

    def __init__(
        self,
        database: SQLDatabase,
        cache: KVStore,
        cache_ttl: int = 300,
        user_stats_ttl: int = 120,
    ) -> None:
        self.db = database.database
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.user_stats_ttl = user_stats_ttl

    async def get(
        self, board: str = "creators", limit: int = DEFAULT_LIMIT
    ) -> list[dict[str, Any]]:
        """Top entries of one leaderboard, ranked from 1.

        Raises:
            ValidationError: Unknown leaderboard type.
        """
        if board not in QUERIES:
            raise ValidationError("Invalid leaderboard type")
        limit = max(1, min(limit, MAX_LIMIT))

        cache_key = f"leaderboard_{board}_{limit}"
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return cached

        rows = await self.db.fetch_all(QUERIES[board](limit))
        ranked = []
        for rank, row in enumerate(rows, start=1):
            entry = {name: row[name] for name in COLUMNS[board]}
            if "legendary_count" in entry:
                entry["legendary_count"] = entry["legendary_count"] or 0
            if "is_legendary" in entry:
                entry["is_legendary"] = bool(entry["is_legendary"])
            entry["rank"] = rank
            ranked.append(entry)

        await self.cache.put_json(cache_key, ranked, ttl=self.cache_ttl)
        logger.debug(f"Leaderboard {board} rebuilt with {len(ranked)} entries")
        return ranked

    async def user_stats(self, address: str) -> dict[str, Any]:
        """Creation, watering and lore totals for the user with this Solana address.

        Raises:
            NotFoundError: No user has this address.
        """
        cache_key = f"user_stats_{address}"
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return cached

        user = await self.db.fetch_one(users.select().where(users.c.solana_address == address))
        if user is None:
            raise NotFoundError("User not found")
        user_id = user["id"]

        created = await self.db.fetch_one(
            sa.select(
                sa.func.count(characters.c.id).label("total"),
                _legendary.label("legendary"),
            ).where(characters.c.owner_user_id == user_id)
        )
        given = await self.db.fetch_val(
            sa.select(sa.func.count(waters.c.id)).where(waters.c.user_id == user_id)
        )
        received = await self.db.fetch_val(
            sa.select(sa.func.count(waters.c.id))
            .select_from(waters.join(characters, waters.c.character_id == characters.c.id))
            .where(characters.c.owner_user_id == user_id)
        )
        lore = await self.db.fetch_val(
            sa.select(sa.func.count(lore_entries.c.id)).where(
                lore_entries.c.author_user_id == user_id
            )
        )

        stats = {
            "user": {
                "username": user["username"],
                "solana_address": user["solana_address"],
                "joined": user["created_at"],
            },
            "characters": {
                "total": created["total"] or 0,
                "legendary": created["legendary"] or 0,
            },
            "waters": {"given": given or 0, "received": received or 0},
            "lore": {"submissions": lore or 0},
        }
        await self.cache.put_json(cache_key, stats, ttl=self.user_stats_ttl)
        return stats
