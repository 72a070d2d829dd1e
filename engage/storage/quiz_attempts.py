from typing import Optional

import aiosqlite


class QuizAttemptRepo:
    """Write-once grading results keyed by session token."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def insert(
        self,
        session_token: str,
        campaign_id: int,
        user_id: str,
        correct_count: int,
        total_count: int,
        passed: bool,
        multiplier: float,
        reward_milli: int,
        now: float,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO quiz_attempts (session_token, campaign_id, user_id, correct_count, "
            "total_count, passed, multiplier, reward_milli, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (session_token, campaign_id, user_id, correct_count, total_count,
             int(passed), multiplier, reward_milli, now),
        )
        return cursor.lastrowid

    async def get_by_token(self, session_token: str) -> Optional[dict]:
        async with self._db.execute(
            "SELECT id, session_token, campaign_id, user_id, correct_count, total_count, "
            "passed, multiplier, reward_milli, created_at FROM quiz_attempts WHERE session_token = ?",
            (session_token,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "id": row[0],
            "session_token": row[1],
            "campaign_id": row[2],
            "user_id": row[3],
            "correct_count": row[4],
            "total_count": row[5],
            "passed": bool(row[6]),
            "multiplier": row[7],
            "reward_milli": row[8],
            "created_at": row[9],
        }
