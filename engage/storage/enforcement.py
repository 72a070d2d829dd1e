from typing import List, Optional

import aiosqlite


def _where(user_id, campaign_id, outcome, since):
    clauses = []
    params: list = []
    if user_id:
        clauses.append("user_id = ?")
        params.append(user_id)
    if campaign_id is not None:
        clauses.append("campaign_id = ?")
        params.append(campaign_id)
    if outcome:
        clauses.append("outcome = ?")
        params.append(outcome)
    if since is not None:
        clauses.append("created_at >= ?")
        params.append(since)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


class EnforcementLogRepo:
    """Write-only from the eligibility engine; queried by admins."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def record(
        self,
        user_id: str,
        campaign_id: int,
        payout_milli: int,
        tier: str,
        outcome: str,
        attempts: int,
        attempt_limit: int,
        seconds_since_last: Optional[float],
        retry_after_sec: Optional[int],
        now: float,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO enforcement_logs (user_id, campaign_id, payout_milli, tier, outcome, "
            "attempts, attempt_limit, seconds_since_last, retry_after_sec, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (user_id, campaign_id, payout_milli, tier, outcome, attempts, attempt_limit,
             seconds_since_last, retry_after_sec, now),
        )
        return cursor.lastrowid

    async def query(
        self,
        user_id: Optional[str] = None,
        campaign_id: Optional[int] = None,
        outcome: Optional[str] = None,
        since: Optional[float] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[dict]:
        where, params = _where(user_id, campaign_id, outcome, since)
        results = []
        async with self._db.execute(
            "SELECT id, user_id, campaign_id, payout_milli, tier, outcome, attempts, attempt_limit, "
            f"seconds_since_last, retry_after_sec, created_at FROM enforcement_logs {where} "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ) as cursor:
            async for row in cursor:
                results.append({
                    "id": row[0],
                    "user_id": row[1],
                    "campaign_id": row[2],
                    "payout_milli": row[3],
                    "tier": row[4],
                    "outcome": row[5],
                    "attempts": row[6],
                    "attempt_limit": row[7],
                    "seconds_since_last": row[8],
                    "retry_after_sec": row[9],
                    "created_at": row[10],
                })
        return results

    async def count(
        self,
        user_id: Optional[str] = None,
        campaign_id: Optional[int] = None,
        outcome: Optional[str] = None,
        since: Optional[float] = None,
    ) -> int:
        where, params = _where(user_id, campaign_id, outcome, since)
        async with self._db.execute(f"SELECT COUNT(*) FROM enforcement_logs {where}", params) as cursor:
            row = await cursor.fetchone()
        return row[0]
