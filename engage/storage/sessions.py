from typing import Optional

import aiosqlite


class SessionRepo:
    """Single-use claim session tokens."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(self, token: str, user_id: str, campaign_id: int, now: float, expires_at: float):
        await self._db.execute(
            "INSERT INTO claim_sessions (token, user_id, campaign_id, created_at, expires_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (token, user_id, campaign_id, now, expires_at),
        )

    async def get(self, token: str) -> Optional[dict]:
        async with self._db.execute(
            "SELECT token, user_id, campaign_id, created_at, expires_at, consumed_at "
            "FROM claim_sessions WHERE token = ?",
            (token,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "token": row[0],
            "user_id": row[1],
            "campaign_id": row[2],
            "created_at": row[3],
            "expires_at": row[4],
            "consumed_at": row[5],
        }

    async def find_open(self, user_id: str, campaign_id: int, now: float) -> Optional[str]:
        async with self._db.execute(
            "SELECT token FROM claim_sessions WHERE user_id = ? AND campaign_id = ? "
            "AND consumed_at IS NULL AND expires_at > ? ORDER BY created_at DESC LIMIT 1",
            (user_id, campaign_id, now),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def consume(self, token: str, now: float) -> bool:
        cursor = await self._db.execute(
            "UPDATE claim_sessions SET consumed_at = ? WHERE token = ? AND consumed_at IS NULL",
            (now, token),
        )
        return cursor.rowcount == 1

    async def delete_expired(self, before: float) -> int:
        cursor = await self._db.execute(
            "DELETE FROM claim_sessions WHERE expires_at < ? AND consumed_at IS NULL",
            (before,),
        )
        return cursor.rowcount
