from typing import Optional

import aiosqlite


class ConsolationRepo:
    """Consolation payouts plus the per-day counts their caps are checked against."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def insert(
        self,
        session_token: str,
        campaign_id: Optional[int],
        origin_campaign_id: int,
        user_id: str,
        amount_milli: int,
        reason: str,
        date_key: str,
        now: float,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO consolation_rewards (session_token, campaign_id, origin_campaign_id, "
            "user_id, amount_milli, reason, date_key, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (session_token, campaign_id, origin_campaign_id, user_id, amount_milli,
             reason, date_key, now),
        )
        return cursor.lastrowid

    async def get_by_token(self, session_token: str) -> Optional[dict]:
        async with self._db.execute(
            "SELECT id, session_token, campaign_id, origin_campaign_id, user_id, amount_milli, "
            "reason, date_key, created_at FROM consolation_rewards WHERE session_token = ?",
            (session_token,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "id": row[0],
            "session_token": row[1],
            "campaign_id": row[2],
            "origin_campaign_id": row[3],
            "user_id": row[4],
            "amount_milli": row[5],
            "reason": row[6],
            "date_key": row[7],
            "created_at": row[8],
        }

    async def count_for_user_day(self, user_id: str, date_key: str) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM consolation_rewards WHERE user_id = ? AND date_key = ?",
            (user_id, date_key),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def count_for_campaign_day(self, origin_campaign_id: int, date_key: str) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM consolation_rewards WHERE origin_campaign_id = ? AND date_key = ?",
            (origin_campaign_id, date_key),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def total_for_day(self, date_key: str) -> int:
        async with self._db.execute(
            "SELECT COALESCE(SUM(amount_milli), 0) FROM consolation_rewards WHERE date_key = ?",
            (date_key,),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def last_for_pair(self, user_id: str, origin_campaign_id: int) -> Optional[float]:
        async with self._db.execute(
            "SELECT MAX(created_at) FROM consolation_rewards "
            "WHERE user_id = ? AND origin_campaign_id = ?",
            (user_id, origin_campaign_id),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None
