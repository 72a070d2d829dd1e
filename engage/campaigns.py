"""
campaigns.py - Advertiser campaign lifecycle.

Creating a campaign charges its full cost up front (SPENT). Changing the
payout or watch time settles the unserved visits at the new terms. Deleting one
refunds the visits that were never served (REFUND), capped at what was
paid. Both money movements and the campaign rows share one transaction.
"""

import logging
import random
from typing import TYPE_CHECKING, List, Optional

from engage.errors import Forbidden, NotFound, ValidationError
from engage.ledger import generate_reference_id
from engage.money import from_milli, milli_to_float, to_milli
from engage.pricing import (
    refund_for_remaining,
    reward_per_visit,
    total_campaign_cost,
    validate_payout,
    validate_total_completions,
    validate_watch_duration,
)
from engage.quiz import public_questions, reward_tiers, validate_campaign_questions
from engage.url_check import validate_campaign_url

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.ledger import LedgerService
    from engage.storage import StorageManager

logger = logging.getLogger("campaigns")

MAX_TITLE_LENGTH = 120
MAX_URL_LENGTH = 512
DEFAULT_WATCH_DURATION = 30


def validate_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required")
    title = " ".join(title.split())
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title cannot exceed {MAX_TITLE_LENGTH} characters")
    return title


def validate_url(url) -> str:
    if isinstance(url, str) and len(url.strip()) > MAX_URL_LENGTH:
        raise ValidationError(f"URL cannot exceed {MAX_URL_LENGTH} characters")
    return validate_campaign_url(url)


def render_campaign(c: dict) -> dict:
    total = c["total_completions"]
    served = c["served_completions"]
    return {
        "id": c["id"],
        "owner_id": c["owner_id"],
        "title": c["title"],
        "url": c["url"],
        "payout": milli_to_float(c["payout_milli"]),
        "watch_duration": c["watch_duration"],
        "total_completions": total,
        "served_completions": served,
        "remaining": max(0, total - served),
        "full_reward": float(reward_per_visit(milli_to_float(c["payout_milli"]), c["watch_duration"], total)),
        "total_paid": milli_to_float(c["total_paid_milli"]),
        "is_paused": c["is_paused"],
        "is_finished": c["is_finished"],
        "created_at": c["created_at"],
        "updated_at": c["updated_at"],
    }


class CampaignService:
    """Create, edit, delete and inspect campaigns."""

    def __init__(
        self,
        storage: "StorageManager",
        ledger: "LedgerService",
        clock: "CivilClock",
        rng: Optional[random.Random] = None,
    ):
        self._storage = storage
        self._ledger = ledger
        self._clock = clock
        self._rng = rng

    async def create(
        self,
        owner_id: str,
        title,
        url,
        payout,
        total_completions,
        questions,
        watch_duration=DEFAULT_WATCH_DURATION,
    ) -> dict:
        title = validate_title(title)
        url = validate_url(url)
        payout = validate_payout(payout)
        watch_duration = validate_watch_duration(watch_duration)
        total_completions = validate_total_completions(total_completions)
        cleaned = validate_campaign_questions(questions)
        cost = total_campaign_cost(payout, watch_duration, total_completions)

        storage = self._storage
        async with storage.transaction():
            now = self._clock.now()
            campaign_id = await storage.campaigns.create(
                owner_id=owner_id,
                title=title,
                url=url,
                payout_milli=to_milli(payout),
                watch_duration=watch_duration,
                total_completions=total_completions,
                total_paid_milli=to_milli(cost),
                now=now,
            )
            await storage.questions.add_many(campaign_id, cleaned)
            txn = await self._ledger.create_transaction(
                user_id=owner_id,
                txn_type="SPENT",
                sign="MINUS",
                amount=cost,
                source="campaign_create",
                reference_id=generate_reference_id("campaign_create", owner_id, campaign_id),
                campaign_id=campaign_id,
                metadata={
                    "payout": float(payout),
                    "watch_duration": watch_duration,
                    "total_completions": total_completions,
                },
            )
            campaign = await storage.campaigns.get(campaign_id)

        logger.info("Campaign %d created by %s: %d visits at %.3f, cost %.3f",
                    campaign_id, owner_id, total_completions, payout, cost)
        result = render_campaign(campaign)
        result["new_balance"] = txn["balance_after"]
        return result

    async def _owned(self, owner_id: str, campaign_id: int) -> dict:
        campaign = await self._storage.campaigns.get(campaign_id)
        if campaign is None or campaign["owner_id"] != owner_id:
            raise NotFound("Campaign not found")
        return campaign

    async def get(self, campaign_id: int, owner_id: Optional[str] = None) -> dict:
        async with self._storage.read():
            if owner_id is not None:
                return render_campaign(await self._owned(owner_id, campaign_id))
            campaign = await self._storage.campaigns.get(campaign_id)
        if campaign is None:
            raise NotFound("Campaign not found")
        return render_campaign(campaign)

    async def list_for_owner(self, owner_id: str) -> List[dict]:
        async with self._storage.read():
            rows = await self._storage.campaigns.list_for_owner(owner_id)
        return [render_campaign(c) for c in rows]

    async def update(self, owner_id: str, campaign_id: int, changes: dict) -> dict:
        fields = {}
        if changes.get("title") is not None:
            fields["title"] = validate_title(changes["title"])
        if changes.get("url") is not None:
            fields["url"] = validate_url(changes["url"])
        if changes.get("payout") is not None:
            fields["payout_milli"] = to_milli(validate_payout(changes["payout"]))
        if changes.get("watch_duration") is not None:
            fields["watch_duration"] = validate_watch_duration(changes["watch_duration"])
        if changes.get("is_paused") is not None:
            fields["is_paused"] = bool(changes["is_paused"])
        if not fields:
            raise ValidationError("No fields to update")

        storage = self._storage
        txn = None
        async with storage.transaction():
            campaign = await self._owned(owner_id, campaign_id)
            if "payout_milli" in fields or "watch_duration" in fields:
                txn = await self._reprice(owner_id, campaign, fields)
            await storage.campaigns.update_fields(campaign_id, fields, self._clock.now())
            campaign = await storage.campaigns.get(campaign_id)
        logger.info("Campaign %d updated by %s: %s", campaign_id, owner_id, sorted(fields))
        result = render_campaign(campaign)
        if txn is not None:
            result["new_balance"] = txn["balance_after"]
        return result

    async def _reprice(self, owner_id: str, campaign: dict, fields: dict) -> Optional[dict]:
        """Settle the unserved visits at the new payout and watch time.

        Raising the terms charges the owner the difference (SPENT), lowering
        them refunds it (REFUND, never more than was paid). total_paid_milli
        is adjusted in ``fields`` so the deletion refund cap follows.
        """
        total = campaign["total_completions"]
        served = campaign["served_completions"]
        old_cost = refund_for_remaining(
            from_milli(campaign["payout_milli"]), campaign["watch_duration"], total, served,
        )
        new_cost = refund_for_remaining(
            from_milli(fields.get("payout_milli", campaign["payout_milli"])),
            fields.get("watch_duration", campaign["watch_duration"]),
            total,
            served,
        )
        paid = campaign["total_paid_milli"]
        delta_milli = to_milli(new_cost) - to_milli(old_cost)
        if delta_milli < 0:
            delta_milli = -min(-delta_milli, paid)
        if delta_milli == 0:
            return None

        # one ledger row per repricing; the sequence keeps reference ids unique
        seq = await self._storage.wallet_txns.count_for_user(owner_id, campaign_id=campaign["id"])
        charge = delta_milli > 0
        txn = await self._ledger.create_transaction(
            user_id=owner_id,
            txn_type="SPENT" if charge else "REFUND",
            sign="MINUS" if charge else "PLUS",
            amount=from_milli(abs(delta_milli)),
            source="campaign_reprice",
            reference_id=generate_reference_id("campaign_reprice", owner_id, f"{campaign['id']}-{seq}"),
            campaign_id=campaign["id"],
            metadata={
                "remaining": max(0, total - served),
                "old_cost": float(old_cost),
                "new_cost": float(new_cost),
            },
        )
        fields["total_paid_milli"] = paid + delta_milli
        logger.info("Campaign %d repriced by %s: %s %.3f",
                    campaign["id"], owner_id, "charged" if charge else "refunded",
                    milli_to_float(abs(delta_milli)))
        return txn

    async def delete(self, owner_id: str, campaign_id: int) -> dict:
        """Delete the campaign and refund its unserved visits."""
        storage = self._storage
        async with storage.transaction():
            campaign = await self._owned(owner_id, campaign_id)
            total = campaign["total_completions"]
            served = campaign["served_completions"]
            refund = refund_for_remaining(
                milli_to_float(campaign["payout_milli"]), campaign["watch_duration"], total, served,
            )
            refund_milli = min(to_milli(refund), campaign["total_paid_milli"])
            if refund_milli < to_milli(refund):
                logger.warning("Refund for campaign %d capped at amount paid (%.3f > %.3f)",
                               campaign_id, refund, milli_to_float(refund_milli))
            balance = None
            if refund_milli > 0:
                txn = await self._ledger.create_transaction(
                    user_id=owner_id,
                    txn_type="REFUND",
                    sign="PLUS",
                    amount=milli_to_float(refund_milli),
                    source="campaign_refund",
                    reference_id=generate_reference_id("campaign_refund", owner_id, campaign_id),
                    campaign_id=campaign_id,
                    metadata={"remaining": total - served, "total_completions": total},
                )
                balance = txn["balance_after"]
            await storage.campaigns.delete(campaign_id)

        logger.info("Campaign %d deleted by %s, refunded %.3f",
                    campaign_id, owner_id, milli_to_float(refund_milli))
        return {
            "id": campaign_id,
            "deleted": True,
            "refunded": milli_to_float(refund_milli),
            "new_balance": balance,
        }

    async def quiz_for(self, campaign_id: int, viewer_id: Optional[str] = None) -> dict:
        """Questions a visitor sees, answers stripped."""
        async with self._storage.read():
            campaign = await self._storage.campaigns.get(campaign_id)
            if campaign is None:
                raise NotFound("Campaign not found")
            if viewer_id is not None and campaign["owner_id"] == viewer_id:
                raise Forbidden("Cannot take quiz on your own campaign")
            questions = await self._storage.questions.list_for_campaign(campaign_id)
        full = reward_per_visit(
            milli_to_float(campaign["payout_milli"]), campaign["watch_duration"], campaign["total_completions"],
        )
        return {
            "campaign_id": campaign_id,
            "title": campaign["title"],
            "questions": public_questions(questions, self._rng),
            "full_reward": float(full),
            "reward_tiers": reward_tiers(full),
        }
