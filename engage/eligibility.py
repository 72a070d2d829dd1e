"""
eligibility.py - Per-user, per-campaign claim eligibility.

Decides whether a user may claim a campaign's reward right now:

 - Tier:     HIGH if payout >= high threshold, MEDIUM if >= medium, else LOW
 - Cap:      successful claims per civil day, by tier (defaults 2 / 3 / 5)
 - Cooldown: spacing between claims, HIGH tier only (default 3600s)

Counters are keyed by the civil date in the platform timezone, so they reset
at local midnight without any background job. Callers run the check and the
matching record_successful_claim() inside one storage transaction; the write
lock held by that transaction is what makes check-then-increment safe.
"""

import logging
import math
from typing import TYPE_CHECKING, List, Optional

import aiosqlite

from engage.errors import EligibilityDenied
from engage.money import milli_to_float, to_amount, to_milli

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.limits_config import AttemptLimits, LimitConfigStore, ValueThresholds
    from engage.storage import StorageManager

logger = logging.getLogger("eligibility")

TIER_HIGH = "HIGH"
TIER_MEDIUM = "MEDIUM"
TIER_LOW = "LOW"

ALLOW = "ALLOW"
LIMIT_REACHED = "LIMIT_REACHED"
COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
ACTIVE_SESSION_EXISTS = "ACTIVE_SESSION_EXISTS"
CAMPAIGN_UNAVAILABLE = "CAMPAIGN_UNAVAILABLE"


def classify_tier(payout, thresholds: "ValueThresholds") -> str:
    value = to_amount(payout)
    if value >= to_amount(thresholds.high):
        return TIER_HIGH
    if value >= to_amount(thresholds.medium):
        return TIER_MEDIUM
    return TIER_LOW


def attempt_limit(tier: str, limits: "AttemptLimits") -> int:
    return getattr(limits, tier.lower())


class EligibilityEngine:
    """Tiered daily caps + cooldown, backed by ClaimCounterRepo."""

    def __init__(self, storage: "StorageManager", config: "LimitConfigStore", clock: "CivilClock"):
        self._storage = storage
        self._config = config
        self._clock = clock

    async def evaluate(self, user_id: str, campaign_id: int, payout) -> dict:
        """Compute the decision without logging it."""
        async with self._storage.read():
            return await self._decide(user_id, campaign_id, payout)

    async def _decide(self, user_id: str, campaign_id: int, payout) -> dict:
        cfg = await self._config.get()
        tier = classify_tier(payout, cfg.value_thresholds)
        limit = attempt_limit(tier, cfg.attempt_limits)
        now = self._clock.now()
        date_key = self._clock.date_key(now)

        counters = self._storage.claim_counters
        attempts = await counters.get_attempts(user_id, campaign_id, date_key)
        last_claimed = await counters.get_last_claimed(user_id, campaign_id)
        since_last = (now - last_claimed) if last_claimed is not None else None

        decision = {
            "allowed": False,
            "outcome": ALLOW,
            "message": "",
            "retry_after_sec": None,
            "tier": tier,
            "attempts": attempts,
            "limit": limit,
            "user_id": user_id,
            "campaign_id": campaign_id,
            "payout": float(to_amount(payout)),
            "seconds_since_last": since_last,
        }

        if attempts >= limit:
            decision["outcome"] = LIMIT_REACHED
            decision["retry_after_sec"] = self._clock.seconds_until_midnight(now)
            decision["message"] = (
                f"Daily limit reached for this campaign ({attempts}/{limit}). "
                f"Try again in {self._clock.format_until_midnight(now)}."
            )
            return decision

        cooldown = cfg.cooldown_seconds.value
        if tier == TIER_HIGH and since_last is not None and since_last < cooldown:
            decision["outcome"] = COOLDOWN_ACTIVE
            decision["retry_after_sec"] = max(1, math.ceil(cooldown - since_last))
            decision["message"] = (
                f"Please wait {decision['retry_after_sec']} seconds before claiming this campaign again."
            )
            return decision

        decision["allowed"] = True
        decision["message"] = "Eligible"
        return decision

    async def check_claim_eligibility(self, user_id: str, campaign_id: int, payout) -> dict:
        decision = await self.evaluate(user_id, campaign_id, payout)
        await self.log_decision(decision)
        if not decision["allowed"]:
            logger.info("Claim denied user=%s campaign=%s outcome=%s retry=%s",
                        user_id, campaign_id, decision["outcome"], decision["retry_after_sec"])
        return decision

    async def record_successful_claim(self, user_id: str, campaign_id: int, payout) -> int:
        """Count one successful claim for today and stamp the cooldown clock."""
        cfg = await self._config.get()
        tier = classify_tier(payout, cfg.value_thresholds)
        limit = attempt_limit(tier, cfg.attempt_limits)
        now = self._clock.now()
        date_key = self._clock.date_key(now)

        new_count = await self._storage.claim_counters.increment(
            user_id, campaign_id, date_key, limit, now,
        )
        if new_count is None:
            # the check in the same transaction said ALLOW; refuse rather than overshoot
            raise EligibilityDenied({
                "allowed": False,
                "outcome": LIMIT_REACHED,
                "message": "Daily limit reached for this campaign.",
                "retry_after_sec": self._clock.seconds_until_midnight(now),
                "tier": tier,
            })
        await self._storage.claim_counters.touch_activity(user_id, campaign_id, now)
        logger.debug("Recorded claim user=%s campaign=%s count=%d/%d",
                     user_id, campaign_id, new_count, limit)
        return new_count

    async def log_decision(self, decision: dict):
        """Append an enforcement log row. Failures never change the decision."""
        try:
            await self._storage.enforcement.record(
                user_id=decision["user_id"],
                campaign_id=decision["campaign_id"],
                payout_milli=to_milli(decision["payout"]),
                tier=decision["tier"],
                outcome=decision["outcome"],
                attempts=decision.get("attempts", 0),
                attempt_limit=decision.get("limit", 0),
                seconds_since_last=decision.get("seconds_since_last"),
                retry_after_sec=decision.get("retry_after_sec"),
                now=self._clock.now(),
            )
        except aiosqlite.Error:
            logger.exception("Failed to write enforcement log for user=%s campaign=%s",
                             decision["user_id"], decision["campaign_id"])

    async def log_unavailable(self, user_id: str, campaign: Optional[dict], campaign_id: int):
        cfg = await self._config.get()
        payout_milli = campaign["payout_milli"] if campaign else 1
        await self.log_decision({
            "user_id": user_id,
            "campaign_id": campaign_id,
            "payout": milli_to_float(payout_milli),
            "tier": classify_tier(milli_to_float(payout_milli), cfg.value_thresholds),
            "outcome": CAMPAIGN_UNAVAILABLE,
        })

    async def list_enforcement_logs(
        self,
        user_id: Optional[str] = None,
        campaign_id: Optional[int] = None,
        outcome: Optional[str] = None,
        since: Optional[float] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[dict]:
        async with self._storage.read():
            rows = await self._storage.enforcement.query(
                user_id=user_id, campaign_id=campaign_id, outcome=outcome, since=since,
                limit=min(max(1, limit), 500), offset=max(0, offset),
            )
        for r in rows:
            r["payout"] = milli_to_float(r.pop("payout_milli"))
        return rows

    async def purge_counters_before(self, date_key: str) -> int:
        async with self._storage.transaction():
            removed = await self._storage.claim_counters.purge_before(date_key)
        logger.info("Purged %d daily counters older than %s", removed, date_key)
        return removed
