from typing import Optional

import aiosqlite


class RotationRepo:
    """Per-user serve history used by queue rotation."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get(self, user_id: str, campaign_id: int) -> Optional[dict]:
        async with self._db.execute(
            "SELECT last_served_at, serve_count FROM rotation_tracking "
            "WHERE user_id = ? AND campaign_id = ?",
            (user_id, campaign_id),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {"last_served_at": row[0], "serve_count": row[1]}

    async def mark_served(self, user_id: str, campaign_id: int, now: float):
        await self._db.execute(
            "INSERT INTO rotation_tracking (user_id, campaign_id, last_served_at, serve_count) "
            "VALUES (?, ?, ?, 1) "
            "ON CONFLICT (user_id, campaign_id) DO UPDATE SET "
            "last_served_at = excluded.last_served_at, serve_count = serve_count + 1",
            (user_id, campaign_id, now),
        )
