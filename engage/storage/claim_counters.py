from typing import Optional

import aiosqlite


class ClaimCounterRepo:
    """Per-day claim counters and last-claim timestamps per (user, campaign)."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get_attempts(self, user_id: str, campaign_id: int, date_key: str) -> int:
        async with self._db.execute(
            "SELECT attempts FROM daily_claim_counters "
            "WHERE user_id = ? AND campaign_id = ? AND date_key = ?",
            (user_id, campaign_id, date_key),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def increment(
        self, user_id: str, campaign_id: int, date_key: str, limit: int, now: float,
    ) -> Optional[int]:
        """Add one attempt unless the counter already sits at ``limit``.

        Returns the new count, or None if the guard refused the increment.
        """
        cursor = await self._db.execute(
            "INSERT INTO daily_claim_counters (user_id, campaign_id, date_key, attempts, updated_at) "
            "SELECT ?, ?, ?, 1, ? WHERE ? > 0 "
            "ON CONFLICT (user_id, campaign_id, date_key) DO UPDATE SET "
            "attempts = attempts + 1, updated_at = excluded.updated_at "
            "WHERE daily_claim_counters.attempts < ?",
            (user_id, campaign_id, date_key, now, limit, limit),
        )
        if cursor.rowcount != 1:
            return None
        return await self.get_attempts(user_id, campaign_id, date_key)

    async def get_last_claimed(self, user_id: str, campaign_id: int) -> Optional[float]:
        async with self._db.execute(
            "SELECT last_claimed_at FROM claim_activity WHERE user_id = ? AND campaign_id = ?",
            (user_id, campaign_id),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def touch_activity(self, user_id: str, campaign_id: int, now: float):
        await self._db.execute(
            "INSERT INTO claim_activity (user_id, campaign_id, last_claimed_at) VALUES (?, ?, ?) "
            "ON CONFLICT (user_id, campaign_id) DO UPDATE SET last_claimed_at = excluded.last_claimed_at",
            (user_id, campaign_id, now),
        )

    async def purge_before(self, date_key: str) -> int:
        cursor = await self._db.execute(
            "DELETE FROM daily_claim_counters WHERE date_key < ?", (date_key,),
        )
        return cursor.rowcount
