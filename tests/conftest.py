"""
Shared fixtures for the engage test suite.

Every test gets its own in-memory SQLite database and a FrozenClock parked
at 2024-01-15 12:00:00 Asia/Kolkata, so civil-day arithmetic is exact.
"""

import pytest
import pytest_asyncio

from engage.campaigns import CampaignService
from engage.claims import ClaimService
from engage.clock import FrozenClock
from engage.consolation import ConsolationService
from engage.eligibility import EligibilityEngine
from engage.ledger import LedgerService
from engage.limits_config import LimitConfigStore
from engage.sessions import SessionTokenService
from engage.storage import StorageManager


# ── Constants ──────────────────────────────────────────────────────────────

BASE_TS = 1705300200.0        # 2024-01-15 12:00:00 IST
LOCAL_MIDNIGHT = 1705343400.0  # 2024-01-16 00:00:00 IST

QUESTIONS = [
    {
        "question_id": 1,
        "input_type": "mcq",
        "config": {"options": [
            {"text": "Blue", "is_correct": True},
            {"text": "Red"},
            {"text": "Green"},
            {"text": "Black"},
        ]},
    },
    {
        "question_id": 2,
        "input_type": "dropdown",
        "config": {"options": [
            {"text": "Shoes", "is_correct": True},
            {"text": "Hats"},
            {"text": "Bags"},
        ]},
    },
    {
        "question_id": 3,
        "input_type": "free_text",
        "config": {"correct_answer": "Acme Corp", "synonyms": ["Acme"]},
    },
    {
        "question_id": 6,
        "input_type": "mcq",
        "config": {"options": [
            {"text": "Buy now", "is_correct": True},
            {"text": "Sign up"},
            {"text": "Learn more"},
            {"text": "Contact us"},
        ]},
    },
    {
        "question_id": 16,
        "input_type": "free_text",
        "config": {"correct_answer": "Retail"},
    },
]

CORRECT_ANSWERS = [
    {"question_id": 1, "answer": "Blue"},
    {"question_id": 2, "answer": "Shoes"},
    {"question_id": 3, "answer": "  acme   CORP "},
    {"question_id": 6, "answer": "Buy now"},
    {"question_id": 16, "answer": "retail"},
]


# ── Core fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return FrozenClock(BASE_TS)


@pytest_asyncio.fixture
async def storage():
    sm = StorageManager(":memory:")
    await sm.initialize()
    yield sm
    await sm.close()


@pytest.fixture
def config(storage, clock):
    return LimitConfigStore(storage, clock)


@pytest.fixture
def ledger(storage, clock):
    return LedgerService(storage, clock)


@pytest.fixture
def eligibility(storage, config, clock):
    return EligibilityEngine(storage, config, clock)


@pytest.fixture
def consolation(storage, ledger, config, clock):
    return ConsolationService(storage, ledger, config, clock)


@pytest.fixture
def sessions(storage, clock):
    return SessionTokenService(storage, clock)


@pytest.fixture
def campaigns(storage, ledger, clock):
    return CampaignService(storage, ledger, clock)


@pytest.fixture
def claims(storage, ledger, eligibility, consolation, sessions, clock):
    return ClaimService(storage, ledger, eligibility, consolation, sessions, clock)


# ── Factories ──────────────────────────────────────────────────────────────

@pytest.fixture
def questions():
    return [dict(q, config=dict(q["config"])) for q in QUESTIONS]


@pytest.fixture
def answers_with():
    """answers_with(n) -> five answers, the first n of them correct."""
    def _make(correct: int):
        result = []
        for i, item in enumerate(CORRECT_ANSWERS):
            answer = item["answer"] if i < correct else "definitely wrong"
            result.append({"question_id": item["question_id"], "answer": answer})
        return result
    return _make


@pytest.fixture
def fund(ledger):
    async def _fund(user_id: str, amount: float):
        return await ledger.admin_adjust("admin-1", user_id, amount, "credit", "test funding")
    return _fund


@pytest.fixture
def make_campaign(campaigns, fund, questions):
    """make_campaign(owner, payout=..., total=...) funds the owner and creates a campaign."""
    async def _make(owner: str = "owner-1", payout: float = 1.0, total: int = 10,
                    watch_duration: int = 30, title: str = "Acme Store"):
        await fund(owner, payout * total + 200)
        return await campaigns.create(
            owner_id=owner,
            title=title,
            url="https://acme.example.com/shop",
            payout=payout,
            total_completions=total,
            questions=questions,
            watch_duration=watch_duration,
        )
    return _make


@pytest.fixture
def set_limit(config):
    async def _set(key: str, value: dict):
        return await config.set(key, value)
    return _set
