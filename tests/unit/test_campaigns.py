"""
test_campaigns.py - Campaign creation charges, edits, deletion refunds and
the visitor-facing quiz view.
"""

import pytest

from engage.errors import Forbidden, InsufficientFunds, NotFound, ValidationError

pytestmark = pytest.mark.asyncio


async def _serve(storage, campaign_id, n):
    async with storage.transaction():
        for _ in range(n):
            assert await storage.campaigns.increment_served(campaign_id, 1.0)


# ── Create ─────────────────────────────────────────────────────────────────

class TestCreate:

    async def test_charges_full_cost(self, storage, ledger, make_campaign):
        campaign = await make_campaign(payout=1.0, total=10)
        assert campaign["total_paid"] == 10.0
        assert campaign["remaining"] == 10
        assert campaign["new_balance"] == 200.0

        spent = await ledger.list_transactions("owner-1", types=["SPENT"])
        assert spent["total"] == 1
        assert spent["items"][0]["campaign_id"] == campaign["id"]
        assert len(await storage.questions.list_for_campaign(campaign["id"])) == 5

    async def test_watch_time_fee(self, make_campaign):
        campaign = await make_campaign(payout=2.0, total=4, watch_duration=60)
        assert campaign["total_paid"] == 18.0
        assert campaign["full_reward"] == 4.5

    async def test_insufficient_funds_rolls_back(self, storage, ledger, campaigns, fund, questions):
        await fund("poor", 5)
        with pytest.raises(InsufficientFunds):
            await campaigns.create("poor", "Acme", "https://acme.example.com", 1.0, 10, questions)
        assert await storage.campaigns.count() == 0
        assert (await ledger.get_balance("poor"))["available"] == 5.0

    @pytest.mark.parametrize("field,value", [
        ("title", "   "),
        ("title", "x" * 121),
        ("url", "http://localhost:8000"),
        ("url", "https://10.0.0.1/admin"),
        ("payout", 0),
        ("total_completions", 0),
        ("watch_duration", 40),
    ])
    async def test_rejects_bad_input(self, storage, campaigns, fund, questions, field, value):
        await fund("owner-1", 100)
        args = dict(
            owner_id="owner-1", title="Acme", url="https://acme.example.com",
            payout=1.0, total_completions=10, questions=questions, watch_duration=30,
        )
        args[field] = value
        with pytest.raises(ValidationError):
            await campaigns.create(**args)
        assert await storage.campaigns.count() == 0

    async def test_rejects_short_question_list(self, campaigns, fund, questions):
        await fund("owner-1", 100)
        with pytest.raises(ValidationError):
            await campaigns.create("owner-1", "Acme", "https://acme.example.com", 1.0, 10, questions[:4])

    async def test_title_whitespace_collapsed(self, make_campaign):
        campaign = await make_campaign(title="  Acme    Store ")
        assert campaign["title"] == "Acme Store"


# ── Read / update ──────────────────────────────────────────────────────────

class TestUpdate:

    async def test_owner_can_pause(self, campaigns, make_campaign):
        campaign = await make_campaign()
        updated = await campaigns.update("owner-1", campaign["id"], {"is_paused": True, "title": "New"})
        assert updated["is_paused"] is True
        assert updated["title"] == "New"

    async def test_other_owner_sees_not_found(self, campaigns, make_campaign):
        campaign = await make_campaign()
        with pytest.raises(NotFound):
            await campaigns.update("owner-2", campaign["id"], {"title": "Mine now"})
        with pytest.raises(NotFound):
            await campaigns.get(campaign["id"], owner_id="owner-2")

    async def test_empty_update(self, campaigns, make_campaign):
        campaign = await make_campaign()
        with pytest.raises(ValidationError):
            await campaigns.update("owner-1", campaign["id"], {"title": None})

    async def test_title_change_leaves_ledger_alone(self, ledger, campaigns, make_campaign):
        campaign = await make_campaign()
        updated = await campaigns.update("owner-1", campaign["id"], {"title": "New", "payout": 1.0})
        assert "new_balance" not in updated
        assert (await ledger.list_transactions("owner-1", campaign_id=campaign["id"]))["total"] == 1

    async def test_list_for_owner(self, campaigns, make_campaign):
        await make_campaign(owner="owner-1", title="One")
        await make_campaign(owner="owner-1", title="Two")
        await make_campaign(owner="owner-2", title="Other")
        titles = {c["title"] for c in await campaigns.list_for_owner("owner-1")}
        assert titles == {"One", "Two"}


# ── Repricing ──────────────────────────────────────────────────────────────

class TestReprice:

    async def test_payout_increase_charges_unserved_visits(self, storage, ledger, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=10)
        await _serve(storage, campaign["id"], 3)

        updated = await campaigns.update("owner-1", campaign["id"], {"payout": 2.0})
        assert updated["new_balance"] == 193.0
        assert updated["total_paid"] == 17.0
        spent = await ledger.list_transactions("owner-1", types=["SPENT"], campaign_id=campaign["id"])
        assert spent["total"] == 2
        assert spent["items"][0]["source"] == "campaign_reprice"
        assert spent["items"][0]["amount"] == 7.0

    async def test_watch_time_increase_charges_fee(self, campaigns, make_campaign):
        campaign = await make_campaign(payout=2.0, total=4)
        updated = await campaigns.update("owner-1", campaign["id"], {"watch_duration": 60})
        assert updated["new_balance"] == 190.0
        assert updated["total_paid"] == 18.0
        assert updated["full_reward"] == 4.5

    async def test_payout_decrease_refunds(self, ledger, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=10)
        updated = await campaigns.update("owner-1", campaign["id"], {"payout": 0.5})
        assert updated["new_balance"] == 205.0
        assert updated["total_paid"] == 5.0

        result = await campaigns.delete("owner-1", campaign["id"])
        assert result["refunded"] == 5.0
        assert (await ledger.get_balance("owner-1"))["available"] == 210.0

    async def test_increase_without_funds_keeps_terms(self, ledger, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=1)
        with pytest.raises(InsufficientFunds):
            await campaigns.update("owner-1", campaign["id"], {"payout": 900.0})
        current = await campaigns.get(campaign["id"])
        assert current["payout"] == 1.0
        assert current["total_paid"] == 1.0
        assert (await ledger.get_balance("owner-1"))["available"] == 200.0

    async def test_repeated_changes_each_settle(self, ledger, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=10)
        await campaigns.update("owner-1", campaign["id"], {"payout": 2.0})
        await campaigns.update("owner-1", campaign["id"], {"payout": 1.0})
        updated = await campaigns.update("owner-1", campaign["id"], {"payout": 2.0})
        assert updated["new_balance"] == 190.0
        assert updated["total_paid"] == 20.0
        history = await ledger.list_transactions("owner-1", campaign_id=campaign["id"])
        assert [t["type"] for t in history["items"]] == ["SPENT", "REFUND", "SPENT", "SPENT"]

    async def test_rewards_never_exceed_what_owner_paid(self, ledger, campaigns, claims,
                                                       make_campaign, answers_with):
        campaign = await make_campaign(payout=1.0, total=1)
        updated = await campaigns.update("owner-1", campaign["id"], {"payout": 150.0})
        assert updated["new_balance"] == 51.0

        started = await claims.start("viewer", campaign["id"])
        result = await claims.submit("viewer", started["token"], answers_with(5))
        assert result["reward_amount"] == 150.0
        assert result["reward_amount"] <= (await campaigns.get(campaign["id"]))["total_paid"]
        owner = await ledger.get_balance("owner-1")
        assert owner["lifetime_spent"] == 150.0


# ── Delete ─────────────────────────────────────────────────────────────────

class TestDelete:

    async def test_refunds_unserved_visits(self, storage, ledger, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=10)
        await _serve(storage, campaign["id"], 3)

        result = await campaigns.delete("owner-1", campaign["id"])
        assert result == {"id": campaign["id"], "deleted": True, "refunded": 7.0, "new_balance": 207.0}
        assert await storage.campaigns.get(campaign["id"]) is None

        refunds = await ledger.list_transactions("owner-1", types=["REFUND"])
        assert refunds["total"] == 1

    async def test_refund_includes_watch_time_share(self, storage, campaigns, make_campaign):
        campaign = await make_campaign(payout=2.0, total=4, watch_duration=60)
        await _serve(storage, campaign["id"], 1)
        result = await campaigns.delete("owner-1", campaign["id"])
        assert result["refunded"] == 13.5

    async def test_refund_after_payout_increase(self, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=10)
        updated = await campaigns.update("owner-1", campaign["id"], {"payout": 5.0})
        assert updated["new_balance"] == 160.0
        result = await campaigns.delete("owner-1", campaign["id"])
        assert result["refunded"] == 50.0
        assert result["new_balance"] == 210.0

    async def test_fully_served_refunds_nothing(self, storage, ledger, campaigns, make_campaign):
        campaign = await make_campaign(payout=1.0, total=2)
        await _serve(storage, campaign["id"], 2)
        result = await campaigns.delete("owner-1", campaign["id"])
        assert result["refunded"] == 0.0
        assert result["new_balance"] is None
        assert (await ledger.list_transactions("owner-1", types=["REFUND"]))["total"] == 0

    async def test_only_owner_deletes(self, storage, campaigns, make_campaign):
        campaign = await make_campaign()
        with pytest.raises(NotFound):
            await campaigns.delete("owner-2", campaign["id"])
        assert await storage.campaigns.get(campaign["id"]) is not None


# ── Quiz view ──────────────────────────────────────────────────────────────

class TestQuizView:

    async def test_strips_answers(self, campaigns, make_campaign):
        campaign = await make_campaign()
        view = await campaigns.quiz_for(campaign["id"], viewer_id="viewer")
        assert view["full_reward"] == 1.0
        assert [t["correct"] for t in view["reward_tiers"]] == [5, 4, 3]
        assert sorted(q["question_id"] for q in view["questions"]) == [1, 2, 3, 6, 16]
        for q in view["questions"]:
            assert "correct_answer" not in q
            assert "synonyms" not in q
        mcq = next(q for q in view["questions"] if q["question_id"] == 1)
        assert sorted(mcq["options"]) == ["Black", "Blue", "Green", "Red"]

    async def test_owner_cannot_take_quiz(self, campaigns, make_campaign):
        campaign = await make_campaign()
        with pytest.raises(Forbidden):
            await campaigns.quiz_for(campaign["id"], viewer_id="owner-1")

    async def test_unknown_campaign(self, campaigns):
        with pytest.raises(NotFound):
            await campaigns.quiz_for(4040)
