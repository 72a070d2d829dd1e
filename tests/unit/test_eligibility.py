"""
test_eligibility.py - Tier classification, daily caps, HIGH-tier cooldown,
civil-day rollover and the enforcement log.
"""

import aiosqlite
import pytest

from engage.eligibility import (
    ALLOW,
    COOLDOWN_ACTIVE,
    LIMIT_REACHED,
    TIER_HIGH,
    TIER_LOW,
    TIER_MEDIUM,
    classify_tier,
)
from engage.errors import EligibilityDenied
from engage.limits_config import ValueThresholds

pytestmark = pytest.mark.asyncio

LOCAL_MIDNIGHT = 1705343400.0   # 2024-01-16 00:00:00 IST
ONE_MINUTE_TO_MIDNIGHT = LOCAL_MIDNIGHT - 60


async def _claim(storage, eligibility, user_id, campaign_id, payout):
    """Check + record in one transaction, the way the claim path does it."""
    async with storage.transaction():
        decision = await eligibility.check_claim_eligibility(user_id, campaign_id, payout)
        if decision["allowed"]:
            await eligibility.record_successful_claim(user_id, campaign_id, payout)
    return decision


# ── Tiers ──────────────────────────────────────────────────────────────────

class TestTiers:

    @pytest.mark.parametrize("payout,tier", [
        (10, TIER_HIGH),
        (250.5, TIER_HIGH),
        (9.999, TIER_MEDIUM),
        (5, TIER_MEDIUM),
        (4.999, TIER_LOW),
        (0.001, TIER_LOW),
    ])
    async def test_boundaries(self, payout, tier):
        assert classify_tier(payout, ValueThresholds()) == tier

    async def test_thresholds_from_config(self, eligibility, set_limit, make_campaign):
        await set_limit("value_thresholds", {"high": 3, "medium": 2})
        campaign = await make_campaign(payout=3.0)
        decision = await eligibility.evaluate("viewer", campaign["id"], 3.0)
        assert decision["tier"] == TIER_HIGH
        assert decision["limit"] == 2


# ── Decisions ──────────────────────────────────────────────────────────────

class TestHighTierScenario:

    async def test_cooldown_then_daily_cap(self, storage, clock, eligibility, make_campaign):
        campaign = await make_campaign(payout=10.0)
        cid = campaign["id"]

        first = await _claim(storage, eligibility, "viewer", cid, 10.0)
        assert first["outcome"] == ALLOW
        assert first["tier"] == TIER_HIGH

        clock.advance(60)
        cooling = await _claim(storage, eligibility, "viewer", cid, 10.0)
        assert cooling["outcome"] == COOLDOWN_ACTIVE
        assert cooling["retry_after_sec"] == 3540

        clock.advance(3540)
        second = await _claim(storage, eligibility, "viewer", cid, 10.0)
        assert second["outcome"] == ALLOW

        clock.advance(3600)
        capped = await _claim(storage, eligibility, "viewer", cid, 10.0)
        assert capped["outcome"] == LIMIT_REACHED
        assert capped["attempts"] == 2
        assert capped["retry_after_sec"] == int(LOCAL_MIDNIGHT - clock.now())
        assert "2/2" in capped["message"]

    async def test_cooldown_only_applies_to_high(self, storage, eligibility, make_campaign):
        campaign = await make_campaign(payout=5.0)
        for _ in range(3):
            decision = await _claim(storage, eligibility, "viewer", campaign["id"], 5.0)
            assert decision["outcome"] == ALLOW
        decision = await _claim(storage, eligibility, "viewer", campaign["id"], 5.0)
        assert decision["outcome"] == LIMIT_REACHED

    async def test_counters_are_per_user(self, storage, eligibility, set_limit, make_campaign):
        await set_limit("attempt_limits", {"low": 1})
        campaign = await make_campaign(payout=1.0)
        assert (await _claim(storage, eligibility, "a", campaign["id"], 1.0))["allowed"]
        assert not (await _claim(storage, eligibility, "a", campaign["id"], 1.0))["allowed"]
        assert (await _claim(storage, eligibility, "b", campaign["id"], 1.0))["allowed"]

    async def test_zero_limit_denies_everything(self, eligibility, set_limit, make_campaign):
        await set_limit("attempt_limits", {"low": 0})
        campaign = await make_campaign(payout=1.0)
        decision = await eligibility.evaluate("viewer", campaign["id"], 1.0)
        assert decision["outcome"] == LIMIT_REACHED


class TestRollover:

    async def test_counter_resets_at_local_midnight(self, storage, clock, eligibility,
                                                     set_limit, make_campaign):
        await set_limit("attempt_limits", {"low": 1})
        campaign = await make_campaign(payout=1.0)

        clock.set(ONE_MINUTE_TO_MIDNIGHT)
        assert (await _claim(storage, eligibility, "viewer", campaign["id"], 1.0))["allowed"]
        denied = await eligibility.evaluate("viewer", campaign["id"], 1.0)
        assert denied["outcome"] == LIMIT_REACHED
        assert denied["retry_after_sec"] == 60

        clock.set(LOCAL_MIDNIGHT + 60)
        assert (await eligibility.evaluate("viewer", campaign["id"], 1.0))["outcome"] == ALLOW


class TestRecording:

    async def test_record_refuses_to_overshoot(self, storage, eligibility, set_limit, make_campaign):
        await set_limit("attempt_limits", {"low": 1})
        campaign = await make_campaign(payout=1.0)
        async with storage.transaction():
            assert await eligibility.record_successful_claim("viewer", campaign["id"], 1.0) == 1
        with pytest.raises(EligibilityDenied) as exc:
            async with storage.transaction():
                await eligibility.record_successful_claim("viewer", campaign["id"], 1.0)
        assert exc.value.code == LIMIT_REACHED
        today = "2024-01-15"
        assert await storage.claim_counters.get_attempts("viewer", campaign["id"], today) == 1

    async def test_purge_old_counters(self, storage, clock, eligibility, make_campaign):
        campaign = await make_campaign(payout=1.0)
        await _claim(storage, eligibility, "viewer", campaign["id"], 1.0)
        clock.set(LOCAL_MIDNIGHT + 10)
        await _claim(storage, eligibility, "viewer", campaign["id"], 1.0)

        assert await eligibility.purge_counters_before("2024-01-16") == 1
        assert await storage.claim_counters.get_attempts("viewer", campaign["id"], "2024-01-16") == 1


# ── Enforcement log ────────────────────────────────────────────────────────

class TestEnforcementLog:

    async def test_every_decision_logged(self, storage, clock, eligibility, make_campaign):
        campaign = await make_campaign(payout=10.0)
        await _claim(storage, eligibility, "viewer", campaign["id"], 10.0)
        clock.advance(10)
        await _claim(storage, eligibility, "viewer", campaign["id"], 10.0)

        logs = await eligibility.list_enforcement_logs(campaign_id=campaign["id"])
        assert [log["outcome"] for log in logs] == [COOLDOWN_ACTIVE, ALLOW]
        assert logs[0]["retry_after_sec"] == 3590
        assert logs[0]["seconds_since_last"] == 10
        assert logs[1]["payout"] == 10.0
        assert logs[1]["tier"] == TIER_HIGH
        assert await storage.enforcement.count(outcome=ALLOW) == 1

    async def test_evaluate_alone_does_not_log(self, storage, eligibility, make_campaign):
        campaign = await make_campaign(payout=1.0)
        await eligibility.evaluate("viewer", campaign["id"], 1.0)
        assert await storage.enforcement.count() == 0

    async def test_log_failure_keeps_decision(self, storage, eligibility, make_campaign, monkeypatch):
        campaign = await make_campaign(payout=1.0)

        async def broken(**kwargs):
            raise aiosqlite.OperationalError("disk I/O error")
        monkeypatch.setattr(storage.enforcement, "record", broken)

        decision = await _claim(storage, eligibility, "viewer", campaign["id"], 1.0)
        assert decision["outcome"] == ALLOW
        assert await storage.claim_counters.get_attempts("viewer", campaign["id"], "2024-01-15") == 1
