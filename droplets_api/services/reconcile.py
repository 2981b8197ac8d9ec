"""Repair of creations interrupted between image generation and persistence."""

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import sqlalchemy as sa
from loguru import logger

from ..storage import BlobStore, KVStore, SQLDatabase
from ..storage.schema import creation_intents, users
from ..types import CreationRecord, ReconcileReport, UserRecord
from .auth import public_user
from .characters import CharacterService
from .creations import CreationService, image_key

OPEN_STATUSES = ("pending", "persisting")


class CreationReconciler:
    """Finish or roll back creation intents that stopped making progress."""

    def __init__(
        self,
        database: SQLDatabase,
        creations_kv: KVStore,
        blobs: BlobStore,
        creations: CreationService,
        characters: CharacterService,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.db = database.database
        self.creations_kv = creations_kv
        self.blobs = blobs
        self.creations = creations
        self.characters = characters
        self.clock = clock

    async def run(self, older_than_seconds: int = 300) -> ReconcileReport:
        """Reconcile intents last touched more than ``older_than_seconds`` ago.

        Open intents are finished or abandoned. Completed intents whose world
        update never ran are announced.
        """
        cutoff = self.clock() - timedelta(seconds=older_than_seconds)
        rows = await self.db.fetch_all(
            creation_intents.select().where(
                sa.or_(
                    creation_intents.c.status.in_(OPEN_STATUSES),
                    sa.and_(
                        creation_intents.c.status == "completed",
                        sa.not_(creation_intents.c.announced),
                    ),
                )
            )
        )
        stale = [row for row in rows if datetime.fromisoformat(row["updated_at"]) < cutoff]

        report: ReconcileReport = {
            "checked": 0,
            "completed": 0,
            "announced": 0,
            "abandoned": 0,
            "orphans_removed": 0,
        }
        for row in stale:
            report["checked"] += 1
            try:
                if row["status"] == "completed":
                    await self._announce(row, report)
                elif row["status"] == "persisting" and row["record"]:
                    await self._finish_or_abandon(row, report)
                else:
                    await self._abandon(row["id"], report, "generation never finished")
            except Exception as e:  # noqa: BLE001
                logger.error(f"Reconciliation of creation {row['id']} failed: {e}")

        logger.info(f"Creation reconciliation finished: {report}")
        return report

    async def _owner(self, user_id: str) -> UserRecord | None:
        row = await self.db.fetch_one(users.select().where(users.c.id == user_id))
        return public_user(row) if row else None

    async def _finish_or_abandon(self, row, report: ReconcileReport) -> None:
        record: CreationRecord = json.loads(row["record"])
        owner = await self._owner(record["user_id"])

        if owner is not None and await self.blobs.exists(record["image_key"]):
            inserted = await self.creations.persist_record(record, owner)
            await self.creations.set_intent_status(row["id"], "completed")
            report["completed"] += 1
            logger.info(
                f"Completed interrupted creation {row['id']} (character row new: {inserted})"
            )
            await self._announce(row, report)
            return

        await self.creations_kv.delete(row["id"])
        await self.characters.delete(row["id"])
        await self._abandon(row["id"], report, "image missing")

    async def _announce(self, row, report: ReconcileReport) -> None:
        if row["announced"]:
            return
        if not row["record"]:
            logger.warning(f"Completed creation {row['id']} has no record to announce")
        else:
            await self.creations.announce(json.loads(row["record"]))
            report["announced"] += 1
        await self.creations.mark_announced(row["id"])

    async def _abandon(self, creation_id: str, report: ReconcileReport, reason: str) -> None:
        key = image_key(creation_id)
        if await self.blobs.exists(key):
            await self.blobs.delete(key)
            report["orphans_removed"] += 1
        await self.creations.set_intent_status(creation_id, "abandoned", error=reason)
        report["abandoned"] += 1
        logger.info(f"Abandoned creation {creation_id}: {reason}")
