"""
ledger.py - Wallet ledger.

Every balance change is one wallet_transactions row keyed by a caller-derived
reference id. Writing the row, moving the cached balance and appending the
audit entry happen in one transaction, and replaying a reference id returns
the stored row without touching the balance again.

The wallets table is a cache: available = sum(PLUS) - sum(MINUS) over SUCCESS
rows. recalculate_aggregates() rebuilds it from the ledger.
"""

import hashlib
import logging
import secrets
from typing import TYPE_CHECKING, List, Optional, Sequence

from engage.errors import InsufficientFunds, NotFound, ValidationError
from engage.money import milli_to_float, to_milli
from engage.storage.wallets import EARNING_TYPES, SPENDING_TYPES

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.storage import StorageManager

logger = logging.getLogger("ledger")

TXN_TYPES = ("EARNED", "SPENT", "BONUS", "REFUND", "ADMIN_CREDIT", "ADMIN_DEBIT")
SIGNS = ("PLUS", "MINUS")
STATUSES = ("SUCCESS", "PENDING", "FAILED", "REVERSED")
ACTOR_TYPES = ("SYSTEM", "ADMIN")

AUDIT_ACTIONS = (
    "CREATE_TXN",
    "REVERSE_TXN",
    "ADJUST_BALANCE",
    "RECALC_AGGREGATES",
    "CREATE_WALLET",
    "LOCK_FUNDS",
    "UNLOCK_FUNDS",
)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def generate_reference_id(purpose: str, user_id: str, unique_key) -> str:
    """Stable idempotency key: same inputs, same id."""
    digest = hashlib.sha256(f"{purpose}-{user_id}-{unique_key}".encode()).hexdigest()[:32]
    return f"{purpose}_{user_id}_{digest}"


def _render_txn(row: dict, is_existing: bool = False) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "type": row["type"],
        "sign": row["sign"],
        "amount": milli_to_float(row["amount_milli"]),
        "status": row["status"],
        "balance_after": (
            milli_to_float(row["balance_after_milli"])
            if row["balance_after_milli"] is not None else None
        ),
        "campaign_id": row["campaign_id"],
        "source": row["source"],
        "reference_id": row["reference_id"],
        "metadata": row["metadata"],
        "created_at": row["created_at"],
        "is_existing": is_existing,
    }


def _render_wallet(user_id: str, wallet: Optional[dict]) -> dict:
    wallet = wallet or {}
    return {
        "user_id": user_id,
        "available": milli_to_float(wallet.get("available_milli", 0)),
        "locked": milli_to_float(wallet.get("locked_milli", 0)),
        "lifetime_earned": milli_to_float(wallet.get("lifetime_earned_milli", 0)),
        "lifetime_spent": milli_to_float(wallet.get("lifetime_spent_milli", 0)),
    }


class LedgerService:
    """Idempotent, audited wallet mutations."""

    def __init__(self, storage: "StorageManager", clock: "CivilClock"):
        self._storage = storage
        self._clock = clock

    async def create_transaction(
        self,
        user_id: str,
        txn_type: str,
        sign: str,
        amount,
        source: str,
        reference_id: str,
        campaign_id: Optional[int] = None,
        metadata: Optional[dict] = None,
        status: str = "SUCCESS",
        actor_type: str = "SYSTEM",
        actor_id: Optional[str] = None,
        audit_action: str = "CREATE_TXN",
        reason: str = "",
    ) -> dict:
        if not user_id:
            raise ValidationError("user_id is required")
        if txn_type not in TXN_TYPES:
            raise ValidationError(f"Invalid transaction type: {txn_type}")
        if sign not in SIGNS:
            raise ValidationError(f"Invalid sign: {sign}")
        if status not in STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        if actor_type not in ACTOR_TYPES:
            raise ValidationError(f"Invalid actor type: {actor_type}")
        if not reference_id:
            raise ValidationError("reference_id is required")
        amount_milli = to_milli(amount)
        if amount_milli <= 0:
            raise ValidationError("Amount must be positive")

        storage = self._storage
        async with storage.transaction():
            existing = await storage.wallet_txns.get_by_reference(reference_id)
            if existing is not None:
                logger.info("Replay of %s for user %s, returning txn %d",
                            reference_id, user_id, existing["id"])
                return _render_txn(existing, is_existing=True)
            if campaign_id is not None and await storage.campaigns.get(campaign_id) is None:
                raise NotFound(f"Campaign {campaign_id} not found")

            now = self._clock.now()
            await self._ensure_wallet(user_id, now)

            balance_after = None
            if status == "SUCCESS":
                if sign == "PLUS":
                    await storage.wallets.credit(
                        user_id, amount_milli, txn_type in EARNING_TYPES, now,
                    )
                else:
                    ok = await storage.wallets.debit(
                        user_id, amount_milli, txn_type in SPENDING_TYPES, now,
                    )
                    if not ok:
                        wallet = await storage.wallets.get(user_id)
                        available = wallet["available_milli"] if wallet else 0
                        raise InsufficientFunds(
                            "Insufficient balance",
                            details={
                                "available": milli_to_float(available),
                                "required": milli_to_float(amount_milli),
                            },
                        )
                wallet = await storage.wallets.get(user_id)
                balance_after = wallet["available_milli"]

            txn_id = await storage.wallet_txns.insert(
                user_id=user_id,
                txn_type=txn_type,
                sign=sign,
                amount_milli=amount_milli,
                status=status,
                balance_after_milli=balance_after,
                campaign_id=campaign_id,
                source=source,
                reference_id=reference_id,
                metadata=metadata,
                now=now,
            )
            await storage.audit.record(
                actor_type=actor_type,
                actor_id=actor_id,
                user_id=user_id,
                action=audit_action,
                now=now,
                txn_id=txn_id,
                amount_milli=amount_milli,
                reason=reason or source,
                metadata={"type": txn_type, "sign": sign, "reference_id": reference_id},
            )
            row = await storage.wallet_txns.get(txn_id)

        logger.info("Txn %d %s %s %.3f user=%s ref=%s",
                    txn_id, txn_type, sign, milli_to_float(amount_milli), user_id, reference_id)
        return _render_txn(row)

    async def _ensure_wallet(self, user_id: str, now: float):
        if await self._storage.wallets.ensure(user_id, now):
            await self._storage.audit.record(
                actor_type="SYSTEM", actor_id=None, user_id=user_id,
                action="CREATE_WALLET", now=now, reason="auto-created",
            )
            logger.info("Created wallet for %s", user_id)

    async def get_balance(self, user_id: str) -> dict:
        async with self._storage.read():
            wallet = await self._storage.wallets.get(user_id)
        return _render_wallet(user_id, wallet)

    async def recalculate_aggregates(
        self, user_id: str, actor_type: str = "ADMIN", actor_id: Optional[str] = None,
    ) -> dict:
        """Rebuild the cached balance from SUCCESS ledger rows."""
        storage = self._storage
        async with storage.transaction():
            now = self._clock.now()
            await self._ensure_wallet(user_id, now)
            before = await storage.wallets.get(user_id)
            totals = await storage.wallets.aggregate_from_ledger(user_id)
            await storage.wallets.overwrite(
                user_id,
                totals["available_milli"],
                totals["lifetime_earned_milli"],
                totals["lifetime_spent_milli"],
                now,
            )
            drift = before["available_milli"] - totals["available_milli"]
            await storage.audit.record(
                actor_type=actor_type,
                actor_id=actor_id,
                user_id=user_id,
                action="RECALC_AGGREGATES",
                now=now,
                amount_milli=totals["available_milli"],
                reason="recalculate aggregates",
                metadata={
                    "before_available_milli": before["available_milli"],
                    "after_available_milli": totals["available_milli"],
                },
            )
            after = await storage.wallets.get(user_id)
        if drift:
            logger.warning("Repaired wallet drift for %s: %.3f", user_id, milli_to_float(drift))
        return {
            "before": _render_wallet(user_id, before),
            "after": _render_wallet(user_id, after),
            "drift": milli_to_float(drift),
        }

    async def list_transactions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        types: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        campaign_id: Optional[int] = None,
        since: Optional[float] = None,
        until: Optional[float] = None,
        search: Optional[str] = None,
    ) -> dict:
        for t in types or ():
            if t not in TXN_TYPES:
                raise ValidationError(f"Invalid transaction type: {t}")
        for s in statuses or ():
            if s not in STATUSES:
                raise ValidationError(f"Invalid status: {s}")
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)
        filters = dict(
            types=types, statuses=statuses, campaign_id=campaign_id,
            since=since, until=until, search=search,
        )
        async with self._storage.read():
            rows = await self._storage.wallet_txns.list_for_user(
                user_id, limit=limit, offset=(page - 1) * limit, **filters,
            )
            total = await self._storage.wallet_txns.count_for_user(user_id, **filters)
        return {
            "items": [_render_txn(r) for r in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    async def get_transaction(self, user_id: str, txn_id: int) -> dict:
        async with self._storage.read():
            row = await self._storage.wallet_txns.get(txn_id, user_id=user_id)
        if row is None:
            raise NotFound("Transaction not found")
        return _render_txn(row)

    async def list_audit_logs(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        actor_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[dict]:
        if action and action not in AUDIT_ACTIONS:
            raise ValidationError(f"Invalid audit action: {action}")
        async with self._storage.read():
            rows = await self._storage.audit.query(
                user_id=user_id, action=action, actor_type=actor_type,
                limit=min(max(1, limit), MAX_PAGE_SIZE), offset=max(0, offset),
            )
        for r in rows:
            amount_milli = r.pop("amount_milli")
            r["amount"] = milli_to_float(amount_milli) if amount_milli is not None else None
        return rows

    async def admin_adjust(
        self,
        admin_id: str,
        user_id: str,
        amount,
        direction: str,
        reason: str,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Manual credit or debit by an operator."""
        if direction not in ("credit", "debit"):
            raise ValidationError("direction must be 'credit' or 'debit'")
        if not reason or not reason.strip():
            raise ValidationError("reason is required")
        key = idempotency_key or f"{admin_id}-{secrets.token_hex(8)}"
        txn_type, sign = ("ADMIN_CREDIT", "PLUS") if direction == "credit" else ("ADMIN_DEBIT", "MINUS")
        return await self.create_transaction(
            user_id=user_id,
            txn_type=txn_type,
            sign=sign,
            amount=amount,
            source="admin_adjustment",
            reference_id=generate_reference_id("admin_adjust", user_id, key),
            metadata={"admin_id": admin_id, "reason": reason.strip()},
            actor_type="ADMIN",
            actor_id=admin_id,
            audit_action="ADJUST_BALANCE",
            reason=reason.strip(),
        )
