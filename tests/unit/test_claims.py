"""
test_claims.py - Start/submit claim flow: crediting, idempotent replay,
consolation on interrupted visits and eligibility enforcement.
"""

import asyncio

import pytest

from engage.claims import ClaimState, unavailable_reason
from engage.eligibility import ACTIVE_SESSION_EXISTS, COOLDOWN_ACTIVE, LIMIT_REACHED
from engage.errors import (
    CampaignUnavailable,
    EligibilityDenied,
    Forbidden,
    NotFound,
    SessionInvalid,
    ValidationError,
)

pytestmark = pytest.mark.asyncio

TODAY = "2024-01-15"


# ── Helpers ────────────────────────────────────────────────────────────────

class TestUnavailableReason:

    async def test_reasons(self):
        live = {"is_finished": False, "is_paused": False, "served_completions": 1, "total_completions": 5}
        assert unavailable_reason(live) is None
        assert unavailable_reason(None) == "CAMPAIGN_DELETED"
        assert unavailable_reason(dict(live, is_paused=True)) == "CAMPAIGN_PAUSED"
        assert unavailable_reason(dict(live, served_completions=5)) == "EXHAUSTED_VISITS_CAP"
        # a full campaign reports exhaustion even when also paused
        assert unavailable_reason(dict(live, is_finished=True, is_paused=True)) == "EXHAUSTED_VISITS_CAP"


# ── Happy path ─────────────────────────────────────────────────────────────

class TestClaimFlow:

    async def test_start_then_submit_credits(self, storage, ledger, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        assert len(started["token"]) == 64
        assert started["full_reward"] == 1.0
        assert started["resumed"] is False

        result = await claims.submit("viewer", started["token"], answers_with(5))
        assert result == {
            "status": ClaimState.CREDITED.value,
            "passed": True,
            "correct_count": 5,
            "total_count": 5,
            "multiplier": 1.0,
            "reward_amount": 1.0,
            "new_balance": 1.0,
        }

        assert (await storage.campaigns.get(campaign["id"]))["served_completions"] == 1
        assert await storage.claim_counters.get_attempts("viewer", campaign["id"], TODAY) == 1
        assert (await storage.sessions.get(started["token"]))["consumed_at"] is not None
        assert (await ledger.get_balance("viewer"))["lifetime_earned"] == 1.0

    @pytest.mark.parametrize("correct,reward", [(4, 0.8), (3, 0.6)])
    async def test_partial_credit(self, claims, make_campaign, answers_with, correct, reward):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        result = await claims.submit("viewer", started["token"], answers_with(correct))
        assert result["status"] == ClaimState.CREDITED.value
        assert result["reward_amount"] == reward

    async def test_watch_time_share_in_reward(self, claims, make_campaign, answers_with):
        # 60s adds 10 coins over 4 visits: 2.5 each on top of the payout
        campaign = await make_campaign(payout=2.0, total=4, watch_duration=60)
        started = await claims.start("viewer", campaign["id"])
        assert started["full_reward"] == 4.5
        result = await claims.submit("viewer", started["token"], answers_with(5))
        assert result["reward_amount"] == 4.5

    async def test_failed_quiz_pays_nothing(self, storage, ledger, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        result = await claims.submit("viewer", started["token"], answers_with(2))
        assert result["status"] == ClaimState.GRADED.value
        assert result["passed"] is False
        assert result["reward_amount"] == 0.0
        assert result["new_balance"] is None

        assert (await ledger.list_transactions("viewer"))["total"] == 0
        assert (await storage.campaigns.get(campaign["id"]))["served_completions"] == 0
        assert await storage.claim_counters.get_attempts("viewer", campaign["id"], TODAY) == 0
        assert await claims.submit("viewer", started["token"], answers_with(5)) == result


# ── Idempotency ────────────────────────────────────────────────────────────

class TestReplay:

    async def test_resubmit_returns_stored_result(self, storage, ledger, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        first = await claims.submit("viewer", started["token"], answers_with(5))
        await ledger.admin_adjust("admin-1", "viewer", 10, "credit", "unrelated")

        again = await claims.submit("viewer", started["token"], answers_with(3))
        assert again == first
        assert (await ledger.list_transactions("viewer", types=["EARNED"]))["total"] == 1
        assert (await storage.campaigns.get(campaign["id"]))["served_completions"] == 1

    async def test_replay_by_other_user(self, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        await claims.submit("viewer", started["token"], answers_with(5))
        with pytest.raises(Forbidden):
            await claims.submit("mallory", started["token"], answers_with(5))

    async def test_concurrent_submits_respect_daily_cap(self, storage, ledger, sessions, claims,
                                                       make_campaign, answers_with):
        campaign = await make_campaign(total=30)
        tokens = [(await sessions.issue("viewer", campaign["id"]))["token"] for _ in range(20)]

        results = await asyncio.gather(
            *(claims.submit("viewer", t, answers_with(5)) for t in tokens),
            return_exceptions=True,
        )
        credited = [r for r in results if isinstance(r, dict) and r["status"] == ClaimState.CREDITED.value]
        denied = [r for r in results if isinstance(r, EligibilityDenied)]
        assert len(credited) == 5
        assert len(denied) == 15
        assert all(e.code == LIMIT_REACHED for e in denied)

        assert (await ledger.get_balance("viewer"))["available"] == 5.0
        assert (await storage.campaigns.get(campaign["id"]))["served_completions"] == 5
        assert await storage.claim_counters.get_attempts("viewer", campaign["id"], TODAY) == 5


# ── Start ──────────────────────────────────────────────────────────────────

class TestStart:

    async def test_unknown_campaign(self, claims):
        with pytest.raises(NotFound):
            await claims.start("viewer", 12345)

    async def test_own_campaign(self, claims, make_campaign):
        campaign = await make_campaign(owner="viewer")
        with pytest.raises(Forbidden):
            await claims.start("viewer", campaign["id"])

    async def test_paused_campaign(self, campaigns, claims, make_campaign):
        campaign = await make_campaign()
        await campaigns.update("owner-1", campaign["id"], {"is_paused": True})
        with pytest.raises(CampaignUnavailable) as exc:
            await claims.start("viewer", campaign["id"])
        assert exc.value.details == {"reason": "CAMPAIGN_PAUSED"}

    async def test_open_session_is_resumed(self, storage, claims, make_campaign):
        campaign = await make_campaign()
        first = await claims.start("viewer", campaign["id"])
        second = await claims.start("viewer", campaign["id"])
        assert second["token"] == first["token"]
        assert second["resumed"] is True
        assert await storage.enforcement.count(outcome=ACTIVE_SESSION_EXISTS) == 1

    async def test_expired_session_is_replaced(self, clock, claims, make_campaign):
        campaign = await make_campaign()
        first = await claims.start("viewer", campaign["id"])
        clock.advance(601)
        second = await claims.start("viewer", campaign["id"])
        assert second["token"] != first["token"]
        assert second["resumed"] is False

    async def test_denial_keeps_enforcement_log(self, storage, claims, make_campaign, answers_with):
        campaign = await make_campaign(payout=10.0)
        started = await claims.start("viewer", campaign["id"])
        await claims.submit("viewer", started["token"], answers_with(5))

        with pytest.raises(EligibilityDenied) as exc:
            await claims.start("viewer", campaign["id"])
        assert exc.value.code == COOLDOWN_ACTIVE
        assert exc.value.retry_after == 3600
        assert await storage.enforcement.count(outcome=COOLDOWN_ACTIVE) == 1


# ── Submit errors ──────────────────────────────────────────────────────────

class TestSubmitErrors:

    async def test_expired_token(self, clock, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        clock.advance(600)
        with pytest.raises(SessionInvalid):
            await claims.submit("viewer", started["token"], answers_with(5))

    async def test_unknown_token(self, claims, answers_with):
        with pytest.raises(NotFound):
            await claims.submit("viewer", "f" * 64, answers_with(5))

    async def test_token_of_other_user(self, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        with pytest.raises(Forbidden):
            await claims.submit("mallory", started["token"], answers_with(5))

    @pytest.mark.parametrize("answers", [
        [],
        [{"question_id": 1, "answer": "Blue"}] * 4,
        ["Blue"] * 5,
        "Blue",
        [{"question_id": [1], "answer": "Blue"}] + [{"question_id": i, "answer": "x"} for i in (2, 3, 6, 16)],
        [{"question_id": True, "answer": "Blue"}] + [{"question_id": i, "answer": "x"} for i in (2, 3, 6, 16)],
        [{"question_id": "1", "answer": "Blue"}] + [{"question_id": i, "answer": "x"} for i in (2, 3, 6, 16)],
        [{"question_id": 1, "answer": ["Blue"]}] + [{"question_id": i, "answer": "x"} for i in (2, 3, 6, 16)],
    ])
    async def test_malformed_answers(self, claims, answers):
        with pytest.raises(ValidationError):
            await claims.submit("viewer", "f" * 64, answers)

    async def test_malformed_answer_leaves_session_usable(self, storage, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        answers = answers_with(5)
        answers[0] = {"question_id": [1], "answer": "Blue"}
        with pytest.raises(ValidationError):
            await claims.submit("viewer", started["token"], answers)
        assert (await storage.sessions.get(started["token"]))["consumed_at"] is None

        result = await claims.submit("viewer", started["token"], answers_with(5))
        assert result["status"] == ClaimState.CREDITED.value

    async def test_unanswered_question_counts_as_wrong(self, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        answers = answers_with(5)
        answers[4] = {"question_id": 16, "answer": None}
        result = await claims.submit("viewer", started["token"], answers)
        assert result["correct_count"] == 4

    async def test_cooldown_at_submit(self, sessions, claims, make_campaign, answers_with):
        campaign = await make_campaign(payout=10.0)
        first = await sessions.issue("viewer", campaign["id"])
        second = await sessions.issue("viewer", campaign["id"])
        await claims.submit("viewer", first["token"], answers_with(5))
        with pytest.raises(EligibilityDenied) as exc:
            await claims.submit("viewer", second["token"], answers_with(5))
        assert exc.value.code == COOLDOWN_ACTIVE


# ── Interrupted visits ─────────────────────────────────────────────────────

class TestInterrupted:

    async def test_deleted_campaign_pays_consolation(self, storage, campaigns, claims,
                                                     make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        await campaigns.delete("owner-1", campaign["id"])

        result = await claims.submit("viewer", started["token"], answers_with(5))
        assert result == {
            "status": ClaimState.CONSOLATION_INTERRUPTED.value,
            "amount": 1.0,
            "new_balance": 1.0,
            "reason": "CAMPAIGN_DELETED",
        }
        assert await claims.submit("viewer", started["token"], answers_with(5)) == result
        assert await storage.enforcement.count(outcome="CAMPAIGN_UNAVAILABLE") == 1

    async def test_paused_campaign_pays_consolation(self, campaigns, claims, make_campaign, answers_with):
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        await campaigns.update("owner-1", campaign["id"], {"is_paused": True})
        result = await claims.submit("viewer", started["token"], answers_with(5))
        assert result["reason"] == "CAMPAIGN_PAUSED"

    async def test_exhausted_campaign(self, claims, make_campaign, answers_with):
        campaign = await make_campaign(total=1)
        late = await claims.start("late", campaign["id"])
        early = await claims.start("early", campaign["id"])
        assert (await claims.submit("early", early["token"], answers_with(5)))["reward_amount"] == 1.0

        result = await claims.submit("late", late["token"], answers_with(5))
        assert result["status"] == ClaimState.CONSOLATION_INTERRUPTED.value
        assert result["reason"] == "EXHAUSTED_VISITS_CAP"

    async def test_caps_exhausted_raises(self, storage, ledger, campaigns, claims, set_limit,
                                         make_campaign, answers_with):
        await set_limit("consolation_config", {"user_daily_limit": 0})
        campaign = await make_campaign()
        started = await claims.start("viewer", campaign["id"])
        await campaigns.delete("owner-1", campaign["id"])

        with pytest.raises(CampaignUnavailable) as exc:
            await claims.submit("viewer", started["token"], answers_with(5))
        assert exc.value.details == {"reason": "CAMPAIGN_DELETED"}
        assert (await ledger.get_balance("viewer"))["available"] == 0.0
        assert await storage.enforcement.count(outcome="CAMPAIGN_UNAVAILABLE") == 1
        assert (await storage.sessions.get(started["token"]))["consumed_at"] is None
