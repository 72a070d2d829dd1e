from typing import Optional

import aiosqlite

# transaction types counted towards lifetime totals
EARNING_TYPES = ("EARNED", "BONUS", "ADMIN_CREDIT", "REFUND")
SPENDING_TYPES = ("SPENT", "ADMIN_DEBIT")


class WalletRepo:
    """Cached balance rows, one per user."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def ensure(self, user_id: str, now: float) -> bool:
        """Create the wallet row if missing. Returns True if it was created."""
        cursor = await self._db.execute(
            "INSERT OR IGNORE INTO wallets (user_id, created_at, updated_at) VALUES (?, ?, ?)",
            (user_id, now, now),
        )
        return cursor.rowcount == 1

    async def get(self, user_id: str) -> Optional[dict]:
        async with self._db.execute(
            "SELECT user_id, available_milli, locked_milli, lifetime_earned_milli, "
            "lifetime_spent_milli, created_at, updated_at FROM wallets WHERE user_id = ?",
            (user_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "user_id": row[0],
            "available_milli": row[1],
            "locked_milli": row[2],
            "lifetime_earned_milli": row[3],
            "lifetime_spent_milli": row[4],
            "created_at": row[5],
            "updated_at": row[6],
        }

    async def credit(self, user_id: str, amount_milli: int, count_as_earned: bool, now: float):
        await self._db.execute(
            "UPDATE wallets SET available_milli = available_milli + ?, "
            "lifetime_earned_milli = lifetime_earned_milli + ?, updated_at = ? "
            "WHERE user_id = ?",
            (amount_milli, amount_milli if count_as_earned else 0, now, user_id),
        )

    async def debit(self, user_id: str, amount_milli: int, count_as_spent: bool, now: float) -> bool:
        """Guarded debit. Returns False (and changes nothing) on shortfall."""
        cursor = await self._db.execute(
            "UPDATE wallets SET available_milli = available_milli - ?, "
            "lifetime_spent_milli = lifetime_spent_milli + ?, updated_at = ? "
            "WHERE user_id = ? AND available_milli >= ?",
            (amount_milli, amount_milli if count_as_spent else 0, now, user_id, amount_milli),
        )
        return cursor.rowcount == 1

    async def overwrite(
        self, user_id: str, available_milli: int, earned_milli: int, spent_milli: int, now: float,
    ):
        await self._db.execute(
            "UPDATE wallets SET available_milli = ?, lifetime_earned_milli = ?, "
            "lifetime_spent_milli = ?, updated_at = ? WHERE user_id = ?",
            (available_milli, earned_milli, spent_milli, now, user_id),
        )

    async def aggregate_from_ledger(self, user_id: str) -> dict:
        """Recompute balance and lifetime totals from SUCCESS transactions."""
        earning = ", ".join("?" for _ in EARNING_TYPES)
        spending = ", ".join("?" for _ in SPENDING_TYPES)
        async with self._db.execute(
            "SELECT "
            "COALESCE(SUM(CASE WHEN sign = 'PLUS' THEN amount_milli ELSE -amount_milli END), 0), "
            f"COALESCE(SUM(CASE WHEN sign = 'PLUS' AND type IN ({earning}) THEN amount_milli ELSE 0 END), 0), "
            f"COALESCE(SUM(CASE WHEN sign = 'MINUS' AND type IN ({spending}) THEN amount_milli ELSE 0 END), 0) "
            "FROM wallet_transactions WHERE user_id = ? AND status = 'SUCCESS'",
            (*EARNING_TYPES, *SPENDING_TYPES, user_id),
        ) as cursor:
            row = await cursor.fetchone()
        return {
            "available_milli": row[0],
            "lifetime_earned_milli": row[1],
            "lifetime_spent_milli": row[2],
        }
