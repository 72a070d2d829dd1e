"""
scoring.py - Campaign queue ranking and rotation.

Score for one candidate (weights from scoring_config):

    payout    1.00 x min-max normalised payout across the candidate set
    progress  0.50 x remaining / total visits
    fresh     0.25 x (1 - clamp(age / freshness_cap, 0, 1))
    recent   -1.50 if this user was shown it within its tier's rotation window
    jitter    uniform in [-band, +band]

Ties break on payout, then newest first. Jitter comes from an injectable
random.Random so ranking can be reproduced in tests.
"""

import logging
import random
from typing import TYPE_CHECKING, List, Optional

from engage.eligibility import classify_tier
from engage.money import milli_to_float
from engage.pricing import reward_per_visit

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.eligibility import EligibilityEngine
    from engage.limits_config import LimitConfigStore
    from engage.storage import StorageManager

logger = logging.getLogger("scoring")

DEFAULT_QUEUE_SIZE = 10
MAX_QUEUE_SIZE = 50


class ScoringEngine:
    """Ranks claimable campaigns for one user and records what was shown."""

    def __init__(
        self,
        storage: "StorageManager",
        config: "LimitConfigStore",
        eligibility: "EligibilityEngine",
        clock: "CivilClock",
        rng: Optional[random.Random] = None,
    ):
        self._storage = storage
        self._config = config
        self._eligibility = eligibility
        self._clock = clock
        self._rng = rng or random.SystemRandom()

    async def rank_campaigns(self, candidates: List[dict], user_id: Optional[str] = None) -> List[dict]:
        """Score and sort candidates (highest first). Does not truncate."""
        if not candidates:
            return []
        cfg = await self._config.get()
        scoring = cfg.scoring_config
        weights = scoring.weights
        now = self._clock.now()

        payouts = [c["payout_milli"] for c in candidates]
        lo, hi = min(payouts), max(payouts)

        ranked = []
        for c in candidates:
            last_served = c.get("last_served_at")
            if "last_served_at" not in c and user_id is not None:
                async with self._storage.read():
                    row = await self._storage.rotation.get(user_id, c["id"])
                last_served = row["last_served_at"] if row else None

            payout_norm = 1.0 if hi == lo else (c["payout_milli"] - lo) / (hi - lo)
            total = c["total_completions"]
            remaining = max(0, total - c["served_completions"])
            progress = remaining / total if total > 0 else 0.0
            age = max(0.0, now - c["created_at"])
            fresh = 1.0 - min(max(age / scoring.freshness_cap_sec, 0.0), 1.0)
            tier = classify_tier(milli_to_float(c["payout_milli"]), cfg.value_thresholds)
            window = getattr(cfg.rotation_windows, tier.lower())
            recent = 1.0 if last_served is not None and now - last_served <= window else 0.0
            band = scoring.jitter_band
            jitter = self._rng.uniform(-band, band) if band > 0 else 0.0

            score = (
                weights.payout * payout_norm
                + weights.progress * progress
                + weights.fresh * fresh
                - weights.recent_penalty * recent
                + jitter
            )
            item = dict(c)
            item["tier"] = tier
            item["score"] = score
            item["score_components"] = {
                "payout": round(payout_norm, 4),
                "progress": round(progress, 4),
                "fresh": round(fresh, 4),
                "recent": recent,
                "jitter": round(jitter, 4),
            }
            ranked.append(item)

        ranked.sort(key=lambda c: (-c["score"], -c["payout_milli"], -c["created_at"]))
        return ranked

    async def mark_served(self, user_id: str, campaign_id: int):
        async with self._storage.transaction():
            await self._storage.rotation.mark_served(user_id, campaign_id, self._clock.now())

    async def build_queue(self, user_id: str, limit: int = DEFAULT_QUEUE_SIZE) -> List[dict]:
        """Ranked campaigns the user can claim right now; marks them served."""
        limit = min(max(1, limit), MAX_QUEUE_SIZE)
        async with self._storage.transaction():
            candidates = await self._storage.campaigns.list_claimable(user_id)
            eligible = []
            for c in candidates:
                decision = await self._eligibility.evaluate(
                    user_id, c["id"], milli_to_float(c["payout_milli"]),
                )
                if decision["allowed"]:
                    eligible.append(c)
            ranked = await self.rank_campaigns(eligible, user_id)
            chosen = ranked[:limit]
            for c in chosen:
                await self.mark_served(user_id, c["id"])
        logger.debug("Queue for %s: %d candidates, %d eligible, %d shown",
                     user_id, len(candidates), len(eligible), len(chosen))
        return [_render_queue_item(c) for c in chosen]


def _render_queue_item(c: dict) -> dict:
    return {
        "id": c["id"],
        "title": c["title"],
        "url": c["url"],
        "payout": milli_to_float(c["payout_milli"]),
        "full_reward": float(reward_per_visit(
            milli_to_float(c["payout_milli"]), c["watch_duration"], c["total_completions"],
        )),
        "watch_duration": c["watch_duration"],
        "remaining": c["total_completions"] - c["served_completions"],
        "tier": c["tier"],
        "score": round(c["score"], 4),
    }
