import json
from typing import List, Optional, Sequence

import aiosqlite

_TXN_COLUMNS = (
    "id, user_id, type, sign, amount_milli, status, balance_after_milli, campaign_id, "
    "source, reference_id, metadata_json, created_at"
)


def _to_txn(row) -> dict:
    return {
        "id": row[0],
        "user_id": row[1],
        "type": row[2],
        "sign": row[3],
        "amount_milli": row[4],
        "status": row[5],
        "balance_after_milli": row[6],
        "campaign_id": row[7],
        "source": row[8],
        "reference_id": row[9],
        "metadata": json.loads(row[10]) if row[10] else {},
        "created_at": row[11],
    }


def _filters(
    user_id: str,
    types: Optional[Sequence[str]] = None,
    statuses: Optional[Sequence[str]] = None,
    campaign_id: Optional[int] = None,
    since: Optional[float] = None,
    until: Optional[float] = None,
    search: Optional[str] = None,
):
    clauses = ["user_id = ?"]
    params: list = [user_id]
    if types:
        clauses.append(f"type IN ({', '.join('?' for _ in types)})")
        params.extend(types)
    if statuses:
        clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
        params.extend(statuses)
    if campaign_id is not None:
        clauses.append("campaign_id = ?")
        params.append(campaign_id)
    if since is not None:
        clauses.append("created_at >= ?")
        params.append(since)
    if until is not None:
        clauses.append("created_at < ?")
        params.append(until)
    if search:
        clauses.append("(reference_id LIKE ? OR source LIKE ? OR metadata_json LIKE ?)")
        pattern = f"%{search}%"
        params.extend([pattern, pattern, pattern])
    return " AND ".join(clauses), params


class WalletTxnRepo:
    """Append-only wallet ledger rows."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def insert(
        self,
        user_id: str,
        txn_type: str,
        sign: str,
        amount_milli: int,
        status: str,
        balance_after_milli: Optional[int],
        campaign_id: Optional[int],
        source: str,
        reference_id: str,
        metadata: Optional[dict],
        now: float,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO wallet_transactions (user_id, type, sign, amount_milli, status, "
            "balance_after_milli, campaign_id, source, reference_id, metadata_json, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (user_id, txn_type, sign, amount_milli, status, balance_after_milli, campaign_id,
             source, reference_id, json.dumps(metadata or {}, sort_keys=True), now),
        )
        return cursor.lastrowid

    async def get(self, txn_id: int, user_id: Optional[str] = None) -> Optional[dict]:
        query = f"SELECT {_TXN_COLUMNS} FROM wallet_transactions WHERE id = ?"
        params: list = [txn_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        async with self._db.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return _to_txn(row) if row else None

    async def get_by_reference(self, reference_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_TXN_COLUMNS} FROM wallet_transactions WHERE reference_id = ?",
            (reference_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _to_txn(row) if row else None

    async def list_for_user(self, user_id: str, limit: int = 20, offset: int = 0, **filters) -> List[dict]:
        where, params = _filters(user_id, **filters)
        results = []
        async with self._db.execute(
            f"SELECT {_TXN_COLUMNS} FROM wallet_transactions WHERE {where} "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ) as cursor:
            async for row in cursor:
                results.append(_to_txn(row))
        return results

    async def count_for_user(self, user_id: str, **filters) -> int:
        where, params = _filters(user_id, **filters)
        async with self._db.execute(
            f"SELECT COUNT(*) FROM wallet_transactions WHERE {where}", params,
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]
