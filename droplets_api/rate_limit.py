"""Per-user daily creation limit backed by a KV namespace."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from .storage import KVStore

KEY_PREFIX = "daily_creation_limit"


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class DailySlot:
    """A claimed creation slot for one user on one UTC date."""

    user_id: str
    date: str
    key: str


class DailyRateLimiter:
    """Allow one creation per user per UTC calendar day.

    The check and the claim are a single ``put_if_absent`` call, so two
    concurrent requests for the same user and day cannot both succeed.
    """

    def __init__(self, kv: KVStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.kv = kv
        self.clock = clock

    def _key(self, user_id: str, date: str) -> str:
        return f"{KEY_PREFIX}:{user_id}:{date}"

    def next_reset(self, now: datetime | None = None) -> datetime:
        """Next UTC midnight after ``now`` (default: the current time)."""
        now = now or self.clock()
        return datetime(now.year, now.month, now.day, tzinfo=UTC) + timedelta(days=1)

    def seconds_until_reset(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        return max(1, int((self.next_reset(now) - now).total_seconds()))

    async def acquire(self, user_id: str) -> DailySlot | None:
        """Claim today's slot for ``user_id``.

        Returns:
            The claimed slot, or None when it is already held.
        """
        now = self.clock()
        date = now.date().isoformat()
        key = self._key(user_id, date)
        claimed = await self.kv.put_if_absent(
            key, now.isoformat(), ttl=self.seconds_until_reset(now)
        )
        if not claimed:
            logger.info(f"Daily creation slot already used for user {user_id[:8]} on {date}")
            return None
        return DailySlot(user_id=user_id, date=date, key=key)

    async def check_daily_rate_limit(self, user_id: str) -> bool:
        """Claim today's slot. False when the user already created today."""
        return await self.acquire(user_id) is not None

    async def release(self, slot: DailySlot) -> None:
        """Give a claimed slot back, e.g. when generation failed."""
        await self.kv.delete(slot.key)
        logger.info(f"Released daily creation slot for user {slot.user_id[:8]} on {slot.date}")

    async def can_create(self, user_id: str) -> bool:
        """Read-only check of whether today's slot is still free."""
        date = self.clock().date().isoformat()
        return await self.kv.get(self._key(user_id, date)) is None
