from typing import List, Optional

import aiosqlite

_CAMPAIGN_COLUMNS = (
    "c.id, c.owner_id, c.title, c.url, c.payout_milli, c.watch_duration, "
    "c.total_completions, c.served_completions, c.is_paused, c.is_finished, "
    "c.total_paid_milli, c.created_at, c.updated_at"
)

# columns the owner may change after creation
UPDATABLE_FIELDS = ("title", "url", "payout_milli", "watch_duration", "is_paused", "total_paid_milli")


def _to_campaign(row) -> dict:
    return {
        "id": row[0],
        "owner_id": row[1],
        "title": row[2],
        "url": row[3],
        "payout_milli": row[4],
        "watch_duration": row[5],
        "total_completions": row[6],
        "served_completions": row[7],
        "is_paused": bool(row[8]),
        "is_finished": bool(row[9]),
        "total_paid_milli": row[10],
        "created_at": row[11],
        "updated_at": row[12],
    }


class CampaignRepo:
    """CRUD operations for the campaigns table."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(
        self,
        owner_id: str,
        title: str,
        url: str,
        payout_milli: int,
        watch_duration: int,
        total_completions: int,
        total_paid_milli: int,
        now: float,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO campaigns (owner_id, title, url, payout_milli, watch_duration, "
            "total_completions, total_paid_milli, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (owner_id, title, url, payout_milli, watch_duration,
             total_completions, total_paid_milli, now, now),
        )
        return cursor.lastrowid

    async def get(self, campaign_id: int) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_CAMPAIGN_COLUMNS} FROM campaigns c WHERE c.id = ?",
            (campaign_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _to_campaign(row)

    async def list_for_owner(self, owner_id: str) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {_CAMPAIGN_COLUMNS} FROM campaigns c "
            "WHERE c.owner_id = ? ORDER BY c.created_at DESC, c.id DESC",
            (owner_id,),
        ) as cursor:
            async for row in cursor:
                results.append(_to_campaign(row))
        return results

    async def list_claimable(self, user_id: str, limit: Optional[int] = None) -> List[dict]:
        """Campaigns a user could be shown: not theirs, live, with visits left.

        Joined with the user's rotation row and today's state is left to the
        caller.
        """
        query = (
            f"SELECT {_CAMPAIGN_COLUMNS}, r.last_served_at, r.serve_count "
            "FROM campaigns c "
            "LEFT JOIN rotation_tracking r ON r.campaign_id = c.id AND r.user_id = ? "
            "WHERE c.owner_id != ? AND c.is_paused = 0 AND c.is_finished = 0 "
            "AND c.served_completions < c.total_completions "
            "ORDER BY c.created_at DESC, c.id DESC"
        )
        params: list = [user_id, user_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        results = []
        async with self._db.execute(query, params) as cursor:
            async for row in cursor:
                campaign = _to_campaign(row)
                campaign["last_served_at"] = row[13]
                campaign["serve_count"] = row[14] or 0
                results.append(campaign)
        return results

    async def update_fields(self, campaign_id: int, fields: dict, now: float):
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update campaign fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [int(v) if isinstance(v, bool) else v for v in fields.values()]
        await self._db.execute(
            f"UPDATE campaigns SET {assignments}, updated_at = ? WHERE id = ?",
            (*values, now, campaign_id),
        )

    async def increment_served(self, campaign_id: int, now: float) -> bool:
        """Count one completed visit; flips is_finished on the last one.

        Returns False if the campaign was already full.
        """
        cursor = await self._db.execute(
            "UPDATE campaigns SET served_completions = served_completions + 1, "
            "is_finished = CASE WHEN served_completions + 1 >= total_completions THEN 1 ELSE is_finished END, "
            "updated_at = ? "
            "WHERE id = ? AND served_completions < total_completions",
            (now, campaign_id),
        )
        return cursor.rowcount == 1

    async def delete(self, campaign_id: int) -> bool:
        await self._db.execute(
            "DELETE FROM enforcement_logs WHERE campaign_id = ?", (campaign_id,),
        )
        cursor = await self._db.execute(
            "DELETE FROM campaigns WHERE id = ?", (campaign_id,),
        )
        return cursor.rowcount == 1

    async def count(self) -> int:
        async with self._db.execute("SELECT COUNT(*) FROM campaigns") as cursor:
            row = await cursor.fetchone()
        return row[0]
