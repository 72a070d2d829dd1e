import json
from typing import List, Optional

import aiosqlite


class AuditRepo:
    """Insert + query for the wallet audit log."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def record(
        self,
        actor_type: str,
        actor_id: Optional[str],
        user_id: str,
        action: str,
        now: float,
        txn_id: Optional[int] = None,
        amount_milli: Optional[int] = None,
        reason: str = "",
        metadata: Optional[dict] = None,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO wallet_audit_logs (actor_type, actor_id, user_id, action, txn_id, "
            "amount_milli, reason, metadata_json, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (actor_type, actor_id, user_id, action, txn_id, amount_milli, reason,
             json.dumps(metadata or {}, sort_keys=True), now),
        )
        return cursor.lastrowid

    async def query(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        actor_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[dict]:
        clauses = []
        params: list = []
        if user_id:
            clauses.append("user_id = ?")
            params.append(user_id)
        if action:
            clauses.append("action = ?")
            params.append(action)
        if actor_type:
            clauses.append("actor_type = ?")
            params.append(actor_type)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        results = []
        async with self._db.execute(
            "SELECT id, actor_type, actor_id, user_id, action, txn_id, amount_milli, reason, "
            f"metadata_json, created_at FROM wallet_audit_logs {where} "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ) as cursor:
            async for row in cursor:
                results.append({
                    "id": row[0],
                    "actor_type": row[1],
                    "actor_id": row[2],
                    "user_id": row[3],
                    "action": row[4],
                    "txn_id": row[5],
                    "amount_milli": row[6],
                    "reason": row[7],
                    "metadata": json.loads(row[8]) if row[8] else {},
                    "created_at": row[9],
                })
        return results
