"""Lore entries written by owners about their characters."""

import secrets
import string
import time

from loguru import logger

from ..exceptions import AuthorizationError
from ..storage import SQLDatabase
from ..storage.schema import lore_entries, now_iso, row_to_dict
from ..types import LoreRecord, UserRecord
from .characters import CharacterService

BASE36 = string.digits + string.ascii_lowercase
LIST_LIMIT = 50


def generate_lore_id() -> str:
    suffix = "".join(secrets.choice(BASE36) for _ in range(9))
    return f"lore_{int(time.time() * 1000)}_{suffix}"


class LoreService:
    def __init__(self, database: SQLDatabase, characters: CharacterService) -> None:
        self.db = database.database
        self.characters = characters

    async def add(self, user: UserRecord, character_id: str, body: str) -> LoreRecord:
        """Append lore to a character owned by ``user``.

        Raises:
            NotFoundError: Unknown character.
            AuthorizationError: The character belongs to someone else.
        """
        character = await self.characters.get(character_id)
        if character["owner_user_id"] != user["id"]:
            raise AuthorizationError("You can only add lore to your own creations")

        entry: LoreRecord = {
            "id": generate_lore_id(),
            "character_id": character_id,
            "author_user_id": user["id"],
            "body": body,
            "created_at": now_iso(),
        }
        await self.db.execute(lore_entries.insert().values(**entry))
        logger.info(f"Lore {entry['id']} added to character {character_id}")
        return entry

    async def list_for(self, character_id: str, limit: int = LIST_LIMIT) -> list[LoreRecord]:
        rows = await self.db.fetch_all(
            lore_entries.select()
            .where(lore_entries.c.character_id == character_id)
            .order_by(lore_entries.c.created_at.desc())
            .limit(limit)
        )
        return [row_to_dict(row, lore_entries) for row in rows]  # type: ignore[misc]
