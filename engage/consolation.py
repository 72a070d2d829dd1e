"""
consolation.py - Platform-funded consolation payouts.

When a campaign is deleted, paused or runs out of visits while a user is
mid-task, the user gets a small fixed reward instead of nothing. At most one
consolation per session token, never alongside a graded quiz attempt for the
same token, and subject to per-civil-day caps:

 - per user                          (user_daily_limit)
 - per user and campaign, spacing    (user_campaign_cooldown_hours)
 - per campaign                      (campaign_daily_limit)
 - platform-wide amount              (global_daily_budget)
"""

import logging
from typing import TYPE_CHECKING, Optional

from engage.errors import ValidationError
from engage.ledger import generate_reference_id
from engage.money import milli_to_float, to_milli

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.ledger import LedgerService
    from engage.limits_config import LimitConfigStore
    from engage.storage import StorageManager

logger = logging.getLogger("consolation")

EXHAUSTED_VISITS_CAP = "EXHAUSTED_VISITS_CAP"
EXHAUSTED_COINS = "EXHAUSTED_COINS"
CAMPAIGN_PAUSED = "CAMPAIGN_PAUSED"
CAMPAIGN_DELETED = "CAMPAIGN_DELETED"
REASONS = (EXHAUSTED_VISITS_CAP, EXHAUSTED_COINS, CAMPAIGN_PAUSED, CAMPAIGN_DELETED)


def consolation_reference(user_id: str, session_token: str) -> str:
    return generate_reference_id("consolation", user_id, session_token)


class ConsolationService:
    """Eligibility checks and issuance for consolation rewards."""

    def __init__(
        self,
        storage: "StorageManager",
        ledger: "LedgerService",
        config: "LimitConfigStore",
        clock: "CivilClock",
    ):
        self._storage = storage
        self._ledger = ledger
        self._config = config
        self._clock = clock

    async def check_eligibility(
        self, user_id: str, campaign_id: int, session_token: str, reason: str,
    ) -> dict:
        if reason not in REASONS:
            raise ValidationError(f"Invalid consolation reason: {reason}")
        async with self._storage.read():
            return await self._check_caps(user_id, campaign_id, session_token)

    async def _check_caps(self, user_id: str, campaign_id: int, session_token: str) -> dict:
        storage = self._storage
        if await storage.consolations.get_by_token(session_token) is not None:
            return {"eligible": False, "reason": "ALREADY_ISSUED"}
        if await storage.quiz_attempts.get_by_token(session_token) is not None:
            return {"eligible": False, "reason": "QUIZ_ALREADY_SUBMITTED"}

        cfg = (await self._config.get()).consolation_config
        now = self._clock.now()
        date_key = self._clock.date_key(now)

        if await storage.consolations.count_for_user_day(user_id, date_key) >= cfg.user_daily_limit:
            return {"eligible": False, "reason": "USER_DAILY_LIMIT"}
        last = await storage.consolations.last_for_pair(user_id, campaign_id)
        if last is not None and now - last < cfg.user_campaign_cooldown_hours * 3600:
            return {"eligible": False, "reason": "USER_CAMPAIGN_COOLDOWN"}
        if await storage.consolations.count_for_campaign_day(campaign_id, date_key) >= cfg.campaign_daily_limit:
            return {"eligible": False, "reason": "CAMPAIGN_DAILY_LIMIT"}
        spent = await storage.consolations.total_for_day(date_key)
        if spent + to_milli(cfg.amount) > to_milli(cfg.global_daily_budget):
            return {"eligible": False, "reason": "GLOBAL_DAILY_BUDGET"}
        return {"eligible": True}

    async def issue(self, user_id: str, campaign_id: int, session_token: str, reason: str) -> dict:
        """Credit the consolation. Replays for the same token return the stored payout."""
        storage = self._storage
        async with storage.transaction():
            existing = await storage.consolations.get_by_token(session_token)
            if existing is not None:
                return await self.payload_for(existing)
            check = await self.check_eligibility(user_id, campaign_id, session_token, reason)
            if not check["eligible"]:
                raise ValidationError(f"Consolation not allowed: {check['reason']}",
                                      details={"reason": check["reason"]})

            cfg = (await self._config.get()).consolation_config
            now = self._clock.now()
            campaign = await storage.campaigns.get(campaign_id)
            link = campaign_id if campaign is not None else None
            txn = await self._ledger.create_transaction(
                user_id=user_id,
                txn_type="BONUS",
                sign="PLUS",
                amount=cfg.amount,
                source="consolation",
                reference_id=consolation_reference(user_id, session_token),
                campaign_id=link,
                metadata={"reason": reason, "origin_campaign_id": campaign_id},
            )
            row_id = await storage.consolations.insert(
                session_token=session_token,
                campaign_id=link,
                origin_campaign_id=campaign_id,
                user_id=user_id,
                amount_milli=to_milli(cfg.amount),
                reason=reason,
                date_key=self._clock.date_key(now),
                now=now,
            )
        logger.info("Consolation #%d %.3f to %s for campaign %s (%s)",
                    row_id, txn["amount"], user_id, campaign_id, reason)
        return {"amount": txn["amount"], "new_balance": txn["balance_after"], "reason": reason}

    async def payload_for(self, row: dict) -> dict:
        txn = await self._storage.wallet_txns.get_by_reference(
            consolation_reference(row["user_id"], row["session_token"]),
        )
        balance: Optional[float] = None
        if txn is not None and txn["balance_after_milli"] is not None:
            balance = milli_to_float(txn["balance_after_milli"])
        return {
            "amount": milli_to_float(row["amount_milli"]),
            "new_balance": balance,
            "reason": row["reason"],
        }
