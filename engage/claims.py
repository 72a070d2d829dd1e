"""
claims.py - Claim flow: start a visit, then submit the quiz for the reward.

    STARTED --submit--> GRADED (passed or failed) --reward > 0--> CREDITED
    STARTED --campaign gone / paused / full--> CONSOLATION_INTERRUPTED

A submission is one storage transaction: grading, the quiz attempt row, the
ledger credit, the campaign's served count, the daily counter and the
session consumption commit together or not at all. Submitting the same
token again returns the stored result (ALREADY_CREDITED) without paying
twice.
"""

import enum
import logging
from typing import TYPE_CHECKING, List, Optional

import aiosqlite

from engage.eligibility import ACTIVE_SESSION_EXISTS
from engage.errors import (
    CampaignUnavailable,
    EligibilityDenied,
    Forbidden,
    InternalError,
    NotFound,
    ValidationError,
)
from engage.ledger import generate_reference_id
from engage.money import milli_to_float, to_milli
from engage.pricing import reward_per_visit
from engage.quiz import QUESTIONS_PER_CAMPAIGN, calculate_reward, grade_answers

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.consolation import ConsolationService
    from engage.eligibility import EligibilityEngine
    from engage.ledger import LedgerService
    from engage.sessions import SessionTokenService
    from engage.storage import StorageManager

logger = logging.getLogger("claims")


class ClaimState(str, enum.Enum):
    STARTED = "STARTED"
    GRADED = "GRADED"
    CREDITED = "CREDITED"
    CONSOLATION_INTERRUPTED = "CONSOLATION_INTERRUPTED"
    ALREADY_CREDITED = "ALREADY_CREDITED"


def unavailable_reason(campaign: Optional[dict]) -> Optional[str]:
    """Consolation reason when ``campaign`` can no longer be claimed."""
    if campaign is None:
        return "CAMPAIGN_DELETED"
    if campaign["is_finished"] or campaign["served_completions"] >= campaign["total_completions"]:
        return "EXHAUSTED_VISITS_CAP"
    if campaign["is_paused"]:
        return "CAMPAIGN_PAUSED"
    return None


def _full_reward(campaign: dict):
    return reward_per_visit(
        milli_to_float(campaign["payout_milli"]), campaign["watch_duration"], campaign["total_completions"],
    )


def _check_answers(answers) -> List[dict]:
    if not isinstance(answers, list) or len(answers) != QUESTIONS_PER_CAMPAIGN:
        raise ValidationError(f"Exactly {QUESTIONS_PER_CAMPAIGN} answers required")
    for item in answers:
        if not isinstance(item, dict) or "question_id" not in item:
            raise ValidationError("Each answer needs a question_id and an answer")
        qid = item["question_id"]
        if isinstance(qid, bool) or not isinstance(qid, int):
            raise ValidationError("question_id must be an integer")
        if item.get("answer") is not None and not isinstance(item["answer"], str):
            raise ValidationError("answer must be a string")
    return answers


class ClaimService:
    """Starts claim sessions and settles quiz submissions."""

    def __init__(
        self,
        storage: "StorageManager",
        ledger: "LedgerService",
        eligibility: "EligibilityEngine",
        consolation: "ConsolationService",
        sessions: "SessionTokenService",
        clock: "CivilClock",
    ):
        self._storage = storage
        self._ledger = ledger
        self._eligibility = eligibility
        self._consolation = consolation
        self._sessions = sessions
        self._clock = clock

    # -------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------

    async def start(self, user_id: str, campaign_id: int) -> dict:
        storage = self._storage
        denied = None
        async with storage.transaction():
            campaign = await storage.campaigns.get(campaign_id)
            if campaign is None:
                raise NotFound("Campaign not found")
            if campaign["owner_id"] == user_id:
                raise Forbidden("Cannot visit your own campaign")
            reason = unavailable_reason(campaign)
            if reason is not None:
                raise CampaignUnavailable("Campaign is not accepting visits", details={"reason": reason})

            payout = milli_to_float(campaign["payout_milli"])
            open_session = await self._sessions.find_open(user_id, campaign_id)
            if open_session is not None:
                decision = await self._eligibility.evaluate(user_id, campaign_id, payout)
                decision["outcome"] = ACTIVE_SESSION_EXISTS
                await self._eligibility.log_decision(decision)
                logger.info("User %s resumed session on campaign %d", user_id, campaign_id)
                return self._start_payload(campaign, open_session, resumed=True)

            decision = await self._eligibility.check_claim_eligibility(user_id, campaign_id, payout)
            if decision["allowed"]:
                session = await self._sessions.issue(user_id, campaign_id)
                logger.info("%s: user %s campaign %d", ClaimState.STARTED.value, user_id, campaign_id)
                return self._start_payload(campaign, session, resumed=False)
            denied = decision
        # outside the transaction so the enforcement log row is kept
        raise EligibilityDenied(denied)

    @staticmethod
    def _start_payload(campaign: dict, session: dict, resumed: bool) -> dict:
        return {
            "token": session["token"],
            "expires_at": session["expires_at"],
            "campaign_id": campaign["id"],
            "watch_duration": campaign["watch_duration"],
            "full_reward": float(_full_reward(campaign)),
            "resumed": resumed,
        }

    # -------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------

    async def submit(self, user_id: str, token: str, answers) -> dict:
        if not isinstance(token, str) or not token:
            raise ValidationError("Session token is required")
        answers = _check_answers(answers)

        storage = self._storage
        failure: Optional[Exception] = None
        async with storage.transaction():
            replay = await self._replay(user_id, token)
            if replay is not None:
                return replay

            session = await self._sessions.resolve(token, user_id)
            self._sessions.ensure_usable(session)
            campaign_id = session["campaign_id"]
            campaign = await storage.campaigns.get(campaign_id)

            reason = unavailable_reason(campaign)
            if reason is not None:
                await self._eligibility.log_unavailable(user_id, campaign, campaign_id)
                payload = await self._try_consolation(user_id, campaign_id, token, reason)
                if payload is not None:
                    await self._sessions.consume(token)
                    return payload
                failure = CampaignUnavailable(
                    "Campaign is no longer available", details={"reason": reason},
                )
            else:
                payout = milli_to_float(campaign["payout_milli"])
                decision = await self._eligibility.check_claim_eligibility(user_id, campaign_id, payout)
                if decision["allowed"]:
                    return await self._grade_and_credit(user_id, token, campaign, answers)
                failure = EligibilityDenied(decision)
        raise failure

    async def _replay(self, user_id: str, token: str) -> Optional[dict]:
        attempt = await self._storage.quiz_attempts.get_by_token(token)
        if attempt is not None:
            if attempt["user_id"] != user_id:
                raise Forbidden("Session token belongs to another user")
            logger.info("%s: user %s token %s..", ClaimState.ALREADY_CREDITED.value, user_id, token[:8])
            return await self._attempt_payload(attempt)
        row = await self._storage.consolations.get_by_token(token)
        if row is not None:
            if row["user_id"] != user_id:
                raise Forbidden("Session token belongs to another user")
            return {
                "status": ClaimState.CONSOLATION_INTERRUPTED.value,
                **(await self._consolation.payload_for(row)),
            }
        return None

    async def _try_consolation(self, user_id: str, campaign_id: int, token: str, reason: str) -> Optional[dict]:
        try:
            async with self._storage.savepoint("consolation"):
                issued = await self._consolation.issue(user_id, campaign_id, token, reason)
        except ValidationError as e:
            logger.info("No consolation for user %s campaign %d: %s",
                        user_id, campaign_id, e.details.get("reason", e.message))
            return None
        except aiosqlite.Error:
            logger.exception("Consolation failed for user %s campaign %d", user_id, campaign_id)
            return None
        logger.info("%s: user %s campaign %d (%s)",
                    ClaimState.CONSOLATION_INTERRUPTED.value, user_id, campaign_id, reason)
        return {"status": ClaimState.CONSOLATION_INTERRUPTED.value, **issued}

    async def _grade_and_credit(self, user_id: str, token: str, campaign: dict, answers: List[dict]) -> dict:
        storage = self._storage
        campaign_id = campaign["id"]
        questions = await storage.questions.list_for_campaign(campaign_id)
        if len(questions) != QUESTIONS_PER_CAMPAIGN:
            raise InternalError(f"Campaign {campaign_id} does not have {QUESTIONS_PER_CAMPAIGN} questions")

        now = self._clock.now()
        correct = grade_answers(questions, answers)
        result = calculate_reward(_full_reward(campaign), correct)
        await storage.quiz_attempts.insert(
            session_token=token,
            campaign_id=campaign_id,
            user_id=user_id,
            correct_count=correct,
            total_count=len(questions),
            passed=result["passed"],
            multiplier=float(result["multiplier"]),
            reward_milli=to_milli(result["reward"]),
            now=now,
        )

        if result["reward"] > 0:
            if not await storage.campaigns.increment_served(campaign_id, now):
                raise CampaignUnavailable("Campaign has no visits left")
            await self._ledger.create_transaction(
                user_id=user_id,
                txn_type="EARNED",
                sign="PLUS",
                amount=result["reward"],
                source="quiz_reward",
                reference_id=generate_reference_id("quiz_reward", user_id, token),
                campaign_id=campaign_id,
                metadata={"correct_count": correct, "multiplier": float(result["multiplier"])},
            )
            await self._eligibility.record_successful_claim(
                user_id, campaign_id, milli_to_float(campaign["payout_milli"]),
            )

        await self._sessions.consume(token)
        state = ClaimState.CREDITED if result["reward"] > 0 else ClaimState.GRADED
        logger.info("%s: user %s campaign %d correct=%d reward=%.3f",
                    state.value, user_id, campaign_id, correct, result["reward"])
        attempt = await storage.quiz_attempts.get_by_token(token)
        return await self._attempt_payload(attempt)

    async def _attempt_payload(self, attempt: dict) -> dict:
        reward_milli = attempt["reward_milli"]
        balance = None
        if reward_milli > 0:
            txn = await self._storage.wallet_txns.get_by_reference(
                generate_reference_id("quiz_reward", attempt["user_id"], attempt["session_token"]),
            )
            if txn is not None and txn["balance_after_milli"] is not None:
                balance = milli_to_float(txn["balance_after_milli"])
        state = ClaimState.CREDITED if reward_milli > 0 else ClaimState.GRADED
        return {
            "status": state.value,
            "passed": attempt["passed"],
            "correct_count": attempt["correct_count"],
            "total_count": attempt["total_count"],
            "multiplier": attempt["multiplier"],
            "reward_amount": milli_to_float(reward_milli),
            "new_balance": balance,
        }
